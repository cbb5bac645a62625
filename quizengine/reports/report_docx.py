from docx import Document


def generate_report_docx(report: dict, file_path: str):
    doc = Document()

    # Title
    title = report["quiz"]["title"] or "Quiz"
    doc.add_heading(f"{title} - Attempt Report", level=1)

    # Summary
    doc.add_heading("Summary", level=2)
    for line in report["summary"]:
        doc.add_paragraph(line)

    # Scores
    doc.add_heading("Overall Score", level=2)
    scores = report["scores"]
    doc.add_paragraph(
        f"Score: {scores['earned_points']:g} / {scores['total_points']} "
        f"({scores['percentage']}%)"
    )
    doc.add_paragraph(f"Level: {scores['level']}")
    doc.add_paragraph(f"Status: {scores['status']}")

    # Per type
    doc.add_heading("By Question Type", level=2)
    table = doc.add_table(rows=1, cols=4)
    header = table.rows[0].cells
    header[0].text = "Type"
    header[1].text = "Questions"
    header[2].text = "Correct"
    header[3].text = "Points"
    for entry in report["type_breakdown"].values():
        cells = table.add_row().cells
        cells[0].text = entry["label"]
        cells[1].text = str(entry["questions"])
        cells[2].text = str(entry["correct"])
        cells[3].text = f"{entry['earned']:g} / {entry['max_points']}"

    if report["strengths"]:
        doc.add_heading("Strengths", level=2)
        for s in report["strengths"]:
            doc.add_paragraph(s, style="List Bullet")

    if report["improvements"]:
        doc.add_heading("Areas to Improve", level=2)
        for i in report["improvements"]:
            doc.add_paragraph(i, style="List Bullet")

    if report["needs_review"]:
        doc.add_heading("Awaiting Manual Review", level=2)
        for item in report["needs_review"]:
            doc.add_paragraph(f"{item['prompt']} ({item['max_points']} pts)", style="List Number")

    doc.save(file_path)
