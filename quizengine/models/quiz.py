import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text

from quizengine.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# Quiz
# =========================
class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=_uuid)

    title = Column(String(255), nullable=False)

    time_limit_seconds = Column(Integer, nullable=True)
    passing_score = Column(Integer, nullable=False, default=70)
    max_attempts = Column(Integer, nullable=True)

    is_published = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


# =========================
# Quiz Question
# =========================
class QuizQuestion(Base):
    __tablename__ = "quiz_questions"

    id = Column(String(36), primary_key=True, default=_uuid)

    quiz_id = Column(String(36), ForeignKey("quizzes.id"), nullable=False, index=True)
    order_index = Column(Integer, nullable=False, default=0)

    question_type = Column(String(20), nullable=False)
    question_text = Column(Text, nullable=False)

    points = Column(Integer, nullable=False, default=1)
    difficulty_level = Column(String(10), nullable=False, default="medium")

    # choice: [str]; ordering: [{id, text}]; matching: {"left": [...], "right": [...]}
    options = Column(JSON, nullable=True)

    # Correct answer slots; only quizengine.engine.codec reads or writes these
    correct_answer = Column(Integer, nullable=True)
    correct_answer_text = Column(Text, nullable=True)
    correct_answer_json = Column(Text, nullable=True)

    randomize_options = Column(Boolean, nullable=False, default=False)
    case_sensitive = Column(Boolean, nullable=False, default=False)
    partial_credit = Column(Boolean, nullable=False, default=False)
    min_words = Column(Integer, nullable=True)
    max_words = Column(Integer, nullable=True)

    explanation = Column(Text, nullable=True)
    hint = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
