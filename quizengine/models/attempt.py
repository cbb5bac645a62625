from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String

from quizengine.db.base import Base


# =========================
# Graded attempt
# =========================
class QuizAttemptRecord(Base):
    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True)

    quiz_id = Column(String(36), ForeignKey("quizzes.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False, default=1)

    # submitted | expired
    status = Column(String(20), nullable=False)

    total_points = Column(Integer, nullable=False)
    earned_points = Column(Float, nullable=False)
    percentage = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=True)

    answers = Column(JSON, nullable=False)
    # Per-question breakdown is required for review screens
    per_question = Column(JSON, nullable=False)
    pending_review = Column(JSON, nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    time_taken_seconds = Column(Integer, nullable=True)
