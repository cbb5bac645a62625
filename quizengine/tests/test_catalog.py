"""SQL catalog and result sink"""
import json
import logging

import pytest

from quizengine.core.exceptions import QuizNotFoundError, StorageUnavailableError
from quizengine.engine.scorer import grade
from quizengine.models.attempt import QuizAttemptRecord
from quizengine.models.quiz import QuizQuestion
from quizengine.schemas.attempt import AttemptSnapshot, AttemptStatus
from quizengine.schemas.question import QuestionDraft
from quizengine.schemas.quiz import QuizCreateRequest
from quizengine.services.catalog import SqlQuizCatalog, SqlResultSink, row_from_question


@pytest.fixture
def catalog(session_factory):
    return SqlQuizCatalog(session_factory)


@pytest.fixture
def quiz(catalog):
    return catalog.create_quiz(QuizCreateRequest(title="Geography", time_limit_seconds=300, max_attempts=2))


class TestQuizzes:

    def test_create_and_load_meta(self, catalog, quiz):
        meta = catalog.load_quiz_meta(quiz.quiz_id)
        assert meta.title == "Geography"
        assert meta.time_limit_seconds == 300
        assert meta.passing_score == 70
        assert meta.max_attempts == 2

    def test_unknown_quiz(self, catalog):
        with pytest.raises(QuizNotFoundError):
            catalog.load_quiz_meta("missing")

    def test_unknown_quiz_has_no_questions(self, catalog):
        assert catalog.load_questions("missing") == []


class TestSaveQuestion:

    def test_invalid_draft_is_not_stored(self, catalog, quiz):
        validation, question = catalog.save_question(
            quiz.quiz_id, QuestionDraft(type="single_choice", prompt="", options=["a"]),
        )
        assert not validation.is_valid
        assert question is None
        assert catalog.load_questions(quiz.quiz_id) == []

    def test_unknown_quiz_raises(self, catalog):
        with pytest.raises(QuizNotFoundError):
            catalog.save_question("missing", QuestionDraft(type="true_false", prompt="?", correct_answer=True))

    def test_questions_keep_insertion_order(self, catalog, quiz):
        for prompt in ("first", "second", "third"):
            catalog.save_question(quiz.quiz_id, QuestionDraft(type="true_false", prompt=prompt, correct_answer=True))
        loaded = catalog.load_questions(quiz.quiz_id)
        assert [q.prompt for q in loaded] == ["first", "second", "third"]
        assert [q.order_index for q in loaded] == [0, 1, 2]

    def test_warnings_do_not_block(self, catalog, quiz):
        validation, question = catalog.save_question(
            quiz.quiz_id, QuestionDraft(type="essay", prompt="Describe your town."),
        )
        assert validation.warning_codes() == ["ESSAY_ANSWER_MISSING"]
        assert question is not None


class TestSlotRoundTrip:
    """Every type survives the trip through the three answer columns"""

    def test_all_types(self, catalog, quiz, session_factory, questions):
        db = session_factory()
        for index, question in enumerate(questions):
            stored = question.model_copy(update={"order_index": index})
            db.add(row_from_question(quiz.quiz_id, stored))
        db.commit()
        db.close()

        loaded = catalog.load_questions(quiz.quiz_id)
        assert [q.id for q in loaded] == [q.id for q in questions]
        for original, restored in zip(questions, loaded):
            assert restored.correct_answer == original.correct_answer
            assert restored.kind == original.kind
            assert restored.points == original.points

    def test_slots_used_per_type(self, catalog, quiz, session_factory, single_choice, fill_blank, ordering):
        for draft in (
            QuestionDraft(**single_choice.model_dump(mode="json", exclude={"id"})),
            QuestionDraft(**fill_blank.model_dump(mode="json", exclude={"id"})),
            QuestionDraft(**ordering.model_dump(mode="json", exclude={"id"})),
        ):
            catalog.save_question(quiz.quiz_id, draft)

        db = session_factory()
        rows = {r.question_type: r for r in db.query(QuizQuestion).all()}
        db.close()

        assert rows["single_choice"].correct_answer == 2
        assert rows["single_choice"].correct_answer_text is None
        assert rows["fill_blank"].correct_answer_text == "brown"
        assert rows["fill_blank"].correct_answer is None
        assert json.loads(rows["ordering"].correct_answer_json) == [1, 2, 3]
        assert rows["ordering"].options == [
            {"id": 1, "text": "one"}, {"id": 2, "text": "two"}, {"id": 3, "text": "three"},
        ]

    def test_malformed_row_is_skipped(self, catalog, quiz, session_factory, caplog):
        db = session_factory()
        db.add(QuizQuestion(
            quiz_id=quiz.quiz_id, order_index=0, question_type="single_choice",
            question_text="Broken", options=["only one"], correct_answer=0,
        ))
        db.add(QuizQuestion(
            quiz_id=quiz.quiz_id, order_index=1, question_type="true_false",
            question_text="Fine", correct_answer=1,
        ))
        db.commit()
        db.close()

        with caplog.at_level(logging.WARNING):
            loaded = catalog.load_questions(quiz.quiz_id)
        assert [q.prompt for q in loaded] == ["Fine"]
        assert loaded[0].correct_answer is True
        assert "Skipping malformed question" in caplog.text

    def test_corrupt_structured_slot_reads_empty(self, catalog, quiz, session_factory):
        db = session_factory()
        db.add(QuizQuestion(
            quiz_id=quiz.quiz_id, order_index=0, question_type="multiple_choice",
            question_text="Pick", options=["a", "b"], correct_answer_json="{oops",
        ))
        db.commit()
        db.close()

        assert catalog.load_questions(quiz.quiz_id)[0].correct_answer == []


class TestResultSink:

    def _snapshot(self, quiz_id, clock):
        return AttemptSnapshot(
            attempt_id="attempt-1",
            quiz_id=quiz_id,
            user_id="student-1",
            attempt_number=1,
            status=AttemptStatus.SUBMITTED,
            started_at=clock(),
            submitted_at=clock(),
            current_question_index=0,
            question_count=7,
            answered_count=1,
            answers={"q-single": 2},
        )

    def test_persist_and_count(self, catalog, quiz, session_factory, questions, clock):
        sink = SqlResultSink(session_factory)
        result = grade(questions, {"q-single": 2}, "attempt-1", passing_score=70)

        sink.persist_result("attempt-1", result, self._snapshot(quiz.quiz_id, clock))
        # Retrying the same attempt overwrites rather than duplicating
        sink.persist_result("attempt-1", result, self._snapshot(quiz.quiz_id, clock))

        assert catalog.count_attempts(quiz.quiz_id, "student-1") == 1
        assert catalog.count_attempts(quiz.quiz_id, "student-2") == 0

        db = session_factory()
        record = db.get(QuizAttemptRecord, "attempt-1")
        assert record.percentage == result.percentage
        assert record.pending_review == ["q-essay"]
        assert record.answers == {"q-single": 2}
        assert record.time_taken_seconds == 0
        db.close()

    def test_database_error_becomes_storage_error(self, quiz, session_factory, questions, clock):
        sink = SqlResultSink(session_factory)
        result = grade(questions, {}, "attempt-1")
        # user_id is NOT NULL in the table
        broken = self._snapshot(quiz.quiz_id, clock).model_copy(update={"user_id": None})

        with pytest.raises(StorageUnavailableError):
            sink.persist_result("attempt-1", result, broken)

    def test_stored_attempt_reads_back(self, catalog, quiz, session_factory, questions, clock):
        result = grade(questions, {"q-single": 2}, "attempt-1", passing_score=70)
        SqlResultSink(session_factory).persist_result("attempt-1", result, self._snapshot(quiz.quiz_id, clock))

        stored = catalog.load_attempt("attempt-1")

        assert stored.status == AttemptStatus.SUBMITTED
        assert stored.quiz_id == quiz.quiz_id
        assert stored.user_id == "student-1"
        assert stored.answers == {"q-single": 2}
        assert stored.question_count == len(questions)
        assert stored.result.earned_points == result.earned_points
        assert stored.result.per_question == result.per_question
        assert stored.result.pending_review == ["q-essay"]
        assert stored.result.passed is False

    def test_unknown_stored_attempt(self, catalog):
        assert catalog.load_attempt("missing") is None
