from typing import List, Optional

from pydantic import BaseModel, Field

from quizengine.core.config import settings
from quizengine.schemas.question import QuestionDraft


class QuizMeta(BaseModel):
    quiz_id: str
    title: str = ""
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)
    passing_score: int = Field(default=settings.DEFAULT_PASSING_SCORE, ge=0, le=100)
    max_attempts: Optional[int] = Field(default=None, gt=0)


class QuizCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)
    passing_score: int = Field(default=settings.DEFAULT_PASSING_SCORE, ge=0, le=100)
    max_attempts: Optional[int] = Field(default=None, gt=0)


class QuizValidationRequest(BaseModel):
    questions: List[QuestionDraft]
    time_limit_seconds: Optional[int] = None


# =========================
# Validation output
# =========================
class ValidationIssue(BaseModel):
    field: str
    message: str
    code: str
    suggestion: Optional[str] = None
    question_index: Optional[int] = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    def error_codes(self) -> List[str]:
        return [e.code for e in self.errors]

    def warning_codes(self) -> List[str]:
        return [w.code for w in self.warnings]
