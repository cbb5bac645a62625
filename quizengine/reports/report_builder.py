from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from quizengine.schemas.attempt import Result
from quizengine.schemas.question import Question, QuestionType
from quizengine.schemas.quiz import QuizMeta

TYPE_LABELS = {
    QuestionType.SINGLE_CHOICE: "Single choice",
    QuestionType.MULTIPLE_CHOICE: "Multiple choice",
    QuestionType.TRUE_FALSE: "True / false",
    QuestionType.FILL_BLANK: "Fill in the blank",
    QuestionType.ESSAY: "Essay",
    QuestionType.MATCHING: "Matching",
    QuestionType.ORDERING: "Ordering",
}


def _level(percentage: int) -> str:
    if percentage >= 75:
        return "Advanced"
    elif percentage >= 50:
        return "Intermediate"
    return "Beginner"


def _status(result: Result) -> str:
    if result.passed is None:
        return "Pending review" if result.pending_review else "Not graded"
    return "Pass" if result.passed else "Fail"


def build_attempt_report(
    result: Result,
    questions: Sequence[Question],
    meta: QuizMeta,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:

    by_id = {q.id: q for q in questions}
    percentage = result.percentage
    level = _level(percentage)
    status = _status(result)

    # -------------------------
    # PER-TYPE BREAKDOWN
    # -------------------------
    type_breakdown: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    question_breakdown: List[Dict[str, Any]] = []

    for outcome in result.per_question:
        question = by_id.get(outcome.question_id)
        entry = type_breakdown.setdefault(outcome.question_type, {
            "label": TYPE_LABELS[QuestionType(outcome.question_type)],
            "questions": 0,
            "correct": 0,
            "earned": 0.0,
            "max_points": 0,
        })
        entry["questions"] += 1
        entry["correct"] += 1 if outcome.is_correct is True else 0
        entry["earned"] += outcome.earned
        entry["max_points"] += outcome.max_points

        question_breakdown.append({
            "question_id": outcome.question_id,
            "type": outcome.question_type,
            "prompt": question.prompt if question else "",
            "is_correct": outcome.is_correct,
            "earned": round(outcome.earned, 2),
            "max_points": outcome.max_points,
            "explanation": question.explanation if question else None,
        })

    # -------------------------
    # MANUAL REVIEW
    # -------------------------
    needs_review = [
        {
            "question_id": qid,
            "prompt": by_id[qid].prompt if qid in by_id else "",
            "max_points": by_id[qid].points if qid in by_id else 0,
        }
        for qid in result.pending_review
    ]

    # -------------------------
    # FEEDBACK
    # -------------------------
    strengths: List[str] = []
    improvements: List[str] = []

    for question_type, entry in type_breakdown.items():
        if entry["max_points"] == 0 or question_type == QuestionType.ESSAY.value:
            continue
        ratio = entry["earned"] / entry["max_points"]
        score = f"{entry['earned']:g}/{entry['max_points']}"
        if ratio >= 0.7:
            strengths.append(f"Strong results on {entry['label'].lower()} questions (score: {score}).")
        elif ratio <= 0.4:
            improvements.append(f"Review the material behind {entry['label'].lower()} questions (score: {score}).")

    summary = [
        f"Scored {result.earned_points:g} out of {result.total_points} points ({percentage}%).",
        f"Answered {result.correct_count} of {len(result.per_question)} questions correctly.",
        f"Passing score for this quiz is {meta.passing_score}%; status: {status}.",
    ]
    if needs_review:
        summary.append(
            f"{len(needs_review)} essay question(s) await manual review and are not part of the pass/fail decision."
        )

    return {
        "attempt_id": result.attempt_id,
        "user_id": user_id,
        "quiz": {
            "quiz_id": meta.quiz_id,
            "title": meta.title,
        },
        "summary": summary,
        "scores": {
            "earned_points": result.earned_points,
            "total_points": result.total_points,
            "percentage": percentage,
            "passing_score": meta.passing_score,
            "passed": result.passed,
            "level": level,
            "status": status,
        },
        "type_breakdown": dict(type_breakdown),
        "question_breakdown": question_breakdown,
        "needs_review": needs_review,
        "strengths": strengths,
        "improvements": improvements,
        "graded_at": result.graded_at.isoformat(),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
