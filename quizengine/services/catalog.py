# quizengine/services/catalog.py

"""
Boundary between the engine and the rest of the platform.

Inbound: ``QuizCatalog`` supplies questions and quiz settings.
Outbound: ``ResultSink`` receives graded results; it is called once per
submission and never retried here.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizengine.core.exceptions import QuizNotFoundError, StorageUnavailableError
from quizengine.engine.codec import AnswerSlots, decode, encode_question
from quizengine.engine.validator import validate_question
from quizengine.models.attempt import QuizAttemptRecord
from quizengine.models.quiz import Quiz, QuizQuestion
from quizengine.schemas.attempt import AttemptSnapshot, AttemptStatus, QuestionResult, Result
from quizengine.schemas.question import (
    CHOICE_TYPES,
    Question,
    QuestionDraft,
    QuestionType,
    parse_question,
)
from quizengine.schemas.quiz import QuizCreateRequest, QuizMeta, ValidationResult

logger = logging.getLogger(__name__)


class QuizCatalog(ABC):

    @abstractmethod
    def load_questions(self, quiz_id: str) -> List[Question]:
        """Ordered questions of a quiz."""
        pass

    @abstractmethod
    def load_quiz_meta(self, quiz_id: str) -> QuizMeta:
        pass

    def count_attempts(self, quiz_id: str, user_id: str) -> int:
        return 0

    def load_attempt(self, attempt_id: str) -> Optional[AttemptSnapshot]:
        """Stored snapshot (with result) of a finished attempt, or None."""
        return None


class ResultSink(ABC):

    @abstractmethod
    def persist_result(self, attempt_id: str, result: Result, snapshot: AttemptSnapshot) -> None:
        """Store a graded result; raise on failure."""
        pass


# =========================
# Row <-> question mapping
# =========================
def question_from_row(row: QuizQuestion) -> Question:
    """
    Build the typed question for a stored row. Raises ``ValueError`` (or
    pydantic's ``ValidationError``) when the row cannot form a question.
    """
    kind = QuestionType(row.question_type)
    slots = AnswerSlots(
        numeric=row.correct_answer,
        text=row.correct_answer_text,
        structured=row.correct_answer_json,
    )

    data: Dict[str, Any] = {
        "id": row.id,
        "type": kind.value,
        "prompt": row.question_text,
        "points": row.points,
        "difficulty": row.difficulty_level,
        "explanation": row.explanation,
        "hint": row.hint,
        "order_index": row.order_index,
        "correct_answer": decode(kind.value, slots),
    }

    options = row.options
    if kind in CHOICE_TYPES:
        data["options"] = options or []
        data["shuffle"] = bool(row.randomize_options)
    elif kind == QuestionType.FILL_BLANK:
        data["case_sensitive"] = bool(row.case_sensitive)
    elif kind == QuestionType.ESSAY:
        data["min_words"] = row.min_words
        data["max_words"] = row.max_words
    elif kind == QuestionType.MATCHING:
        options = options or {}
        data["left"] = options.get("left") or []
        data["right"] = options.get("right") or []
        data["partial_credit"] = bool(row.partial_credit)
    elif kind == QuestionType.ORDERING:
        data["items"] = options or []
        data["shuffle"] = bool(row.randomize_options)
        data["partial_credit"] = bool(row.partial_credit)

    return parse_question(data)


def row_from_question(quiz_id: str, question: Question) -> QuizQuestion:
    slots = encode_question(question)
    kind = question.kind

    options: Any = None
    if kind in CHOICE_TYPES:
        options = list(question.options)
    elif kind == QuestionType.MATCHING:
        options = {
            "left": [item.model_dump(mode="json") for item in question.left],
            "right": [item.model_dump(mode="json") for item in question.right],
        }
    elif kind == QuestionType.ORDERING:
        options = [item.model_dump(mode="json") for item in question.items]

    return QuizQuestion(
        id=question.id,
        quiz_id=quiz_id,
        order_index=question.order_index,
        question_type=kind.value,
        question_text=question.prompt,
        points=question.points,
        difficulty_level=question.difficulty.value,
        options=options,
        correct_answer=slots.numeric,
        correct_answer_text=slots.text,
        correct_answer_json=slots.structured,
        randomize_options=bool(getattr(question, "shuffle", False)),
        case_sensitive=bool(getattr(question, "case_sensitive", False)),
        partial_credit=bool(getattr(question, "partial_credit", False)),
        min_words=getattr(question, "min_words", None),
        max_words=getattr(question, "max_words", None),
        explanation=question.explanation,
        hint=question.hint,
    )


def _meta_from_row(quiz: Quiz) -> QuizMeta:
    return QuizMeta(
        quiz_id=quiz.id,
        title=quiz.title,
        time_limit_seconds=quiz.time_limit_seconds,
        passing_score=quiz.passing_score,
        max_attempts=quiz.max_attempts,
    )


# =========================
# SQL implementations
# =========================
class SqlQuizCatalog(QuizCatalog):

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def create_quiz(self, request: QuizCreateRequest) -> QuizMeta:
        db = self._session_factory()
        try:
            quiz = Quiz(
                title=request.title,
                time_limit_seconds=request.time_limit_seconds,
                passing_score=request.passing_score,
                max_attempts=request.max_attempts,
            )
            db.add(quiz)
            db.commit()
            db.refresh(quiz)
            logger.info(f"Created quiz {quiz.id} '{quiz.title}'")
            return _meta_from_row(quiz)
        finally:
            db.close()

    def save_question(
        self,
        quiz_id: str,
        draft: QuestionDraft,
    ) -> Tuple[ValidationResult, Optional[Question]]:
        """
        Validate, encode and store one question.

        Returns the validation result and the stored question; nothing is
        written (and the question is None) when validation has errors.
        """
        validation = validate_question(draft)
        if not validation.is_valid:
            return validation, None

        db = self._session_factory()
        try:
            if db.get(Quiz, quiz_id) is None:
                raise QuizNotFoundError(f"Quiz {quiz_id} not found")

            position = (
                db.query(func.count(QuizQuestion.id))
                .filter(QuizQuestion.quiz_id == quiz_id)
                .scalar()
            )
            question = draft.model_copy(update={"order_index": position}).to_question(
                question_id=str(uuid.uuid4())
            )

            db.add(row_from_question(quiz_id, question))
            db.commit()
            logger.info(f"Stored {question.kind.value} question {question.id} on quiz {quiz_id}")
            return validation, question
        finally:
            db.close()

    def load_questions(self, quiz_id: str) -> List[Question]:
        db = self._session_factory()
        try:
            rows = (
                db.query(QuizQuestion)
                .filter(QuizQuestion.quiz_id == quiz_id)
                .order_by(QuizQuestion.order_index, QuizQuestion.created_at)
                .all()
            )
        finally:
            db.close()

        questions: List[Question] = []
        for row in rows:
            try:
                questions.append(question_from_row(row))
            except ValueError as e:
                # Unusable rows are skipped rather than failing the whole quiz
                logger.warning(f"Skipping malformed question {row.id} on quiz {quiz_id}: {e}")
        return questions

    def load_quiz_meta(self, quiz_id: str) -> QuizMeta:
        db = self._session_factory()
        try:
            quiz = db.get(Quiz, quiz_id)
            if quiz is None:
                raise QuizNotFoundError(f"Quiz {quiz_id} not found")
            return _meta_from_row(quiz)
        finally:
            db.close()

    def count_attempts(self, quiz_id: str, user_id: str) -> int:
        db = self._session_factory()
        try:
            return (
                db.query(func.count(QuizAttemptRecord.id))
                .filter(QuizAttemptRecord.quiz_id == quiz_id, QuizAttemptRecord.user_id == user_id)
                .scalar()
            ) or 0
        finally:
            db.close()

    def load_attempt(self, attempt_id: str) -> Optional[AttemptSnapshot]:
        db = self._session_factory()
        try:
            record = db.get(QuizAttemptRecord, attempt_id)
        finally:
            db.close()
        if record is None:
            return None

        result = Result(
            attempt_id=record.id,
            total_points=record.total_points,
            earned_points=record.earned_points,
            percentage=record.percentage,
            per_question=[QuestionResult.model_validate(q) for q in record.per_question],
            pending_review=list(record.pending_review),
            passed=record.passed,
            graded_at=record.submitted_at,
        )
        return AttemptSnapshot(
            attempt_id=record.id,
            quiz_id=record.quiz_id,
            user_id=record.user_id,
            attempt_number=record.attempt_number,
            status=AttemptStatus(record.status),
            started_at=record.started_at,
            submitted_at=record.submitted_at,
            current_question_index=0,
            question_count=len(result.per_question),
            answered_count=len(record.answers),
            answers=dict(record.answers),
            result=result,
        )


class SqlResultSink(ResultSink):

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def persist_result(self, attempt_id: str, result: Result, snapshot: AttemptSnapshot) -> None:
        time_taken = None
        if snapshot.started_at and snapshot.submitted_at:
            time_taken = int((snapshot.submitted_at - snapshot.started_at).total_seconds())

        db = self._session_factory()
        try:
            record = QuizAttemptRecord(
                id=attempt_id,
                quiz_id=snapshot.quiz_id,
                user_id=snapshot.user_id,
                attempt_number=snapshot.attempt_number,
                status=snapshot.status.value,
                total_points=result.total_points,
                earned_points=result.earned_points,
                percentage=result.percentage,
                passed=result.passed,
                answers=snapshot.answers,
                per_question=[q.model_dump(mode="json") for q in result.per_question],
                pending_review=list(result.pending_review),
                started_at=snapshot.started_at,
                submitted_at=snapshot.submitted_at or result.graded_at,
                time_taken_seconds=time_taken,
            )
            # merge: a retried persist after a partial failure must not duplicate
            db.merge(record)
            db.commit()
            logger.info(f"Persisted result for attempt {attempt_id}")
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageUnavailableError(f"Could not persist attempt {attempt_id}: {e}") from e
        finally:
            db.close()
