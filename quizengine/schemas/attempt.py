# quizengine/schemas/attempt.py

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Values a student can submit for one question
SafeAnswerValue = Union[bool, int, float, str, List[Union[int, str]], Dict[str, str]]
AnswerRecord = Dict[str, SafeAnswerValue]


class AttemptStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EXPIRED = "expired"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = frozenset({
    AttemptStatus.SUBMITTED,
    AttemptStatus.EXPIRED,
    AttemptStatus.ABANDONED,
})


class SubmitReason(str, Enum):
    MANUAL = "manual"
    EXPIRED = "expired"


# =========================
# Grading output
# =========================
class QuestionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    question_type: str
    # None = needs manual review (essay), distinct from False
    is_correct: Optional[bool]
    earned: float
    max_points: int


class Result(BaseModel):
    model_config = ConfigDict(frozen=True)

    attempt_id: str
    total_points: int
    earned_points: float
    percentage: int
    per_question: List[QuestionResult]
    pending_review: List[str] = Field(default_factory=list)
    passed: Optional[bool] = None
    graded_at: datetime

    @property
    def correct_count(self) -> int:
        return sum(1 for q in self.per_question if q.is_correct is True)


class PersistOutcome(BaseModel):
    """What happened when a result was handed to the result sink."""
    ok: bool
    attempt_id: str
    error: Optional[str] = None
    result: Optional[Result] = None


# =========================
# Display state
# =========================
class AttemptSnapshot(BaseModel):
    attempt_id: Optional[str]
    quiz_id: str
    user_id: str
    attempt_number: int
    status: AttemptStatus
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    time_limit_seconds: Optional[int] = None
    remaining_seconds: Optional[int] = None
    current_question_index: int
    question_count: int
    answered_count: int
    answers: Dict[str, Any]
    last_persisted_at: Optional[datetime] = None
    current_question: Optional[Dict[str, Any]] = None
    result: Optional[Result] = None


# =========================
# API payloads
# =========================
class StartAttemptRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class RecoverAttemptRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    attempt_id: str = Field(..., min_length=1)


class AnswerRequest(BaseModel):
    value: SafeAnswerValue


class NavigateRequest(BaseModel):
    index: int


class AnswerResponse(BaseModel):
    accepted: bool
    snapshot: AttemptSnapshot


class SubmissionResponse(BaseModel):
    """Response after submission"""
    message: str
    persisted: bool
    error: Optional[str] = None
    result: Result
