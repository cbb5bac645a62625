from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from quizengine.api.deps import get_session_service
from quizengine.core.exceptions import QuizNotFoundError
from quizengine.engine.validator import validate_question, validate_quiz
from quizengine.schemas.question import QuestionDraft
from quizengine.schemas.quiz import (
    QuizCreateRequest,
    QuizMeta,
    QuizValidationRequest,
    ValidationResult,
)
from quizengine.services.quiz_session import QuizSessionService

router = APIRouter(prefix="/quizzes", tags=["Quizzes"])


# -------------------------------------------------
# Authoring validation (no persistence)
# -------------------------------------------------

@router.post("/questions/validate", response_model=ValidationResult)
def validate_question_draft(draft: QuestionDraft):
    return validate_question(draft)


@router.post("/validate", response_model=ValidationResult)
def validate_quiz_drafts(request: QuizValidationRequest):
    return validate_quiz(request.questions, time_limit_seconds=request.time_limit_seconds)


# -------------------------------------------------
# Quizzes
# -------------------------------------------------

@router.post("", response_model=QuizMeta, status_code=201)
def create_quiz(
    request: QuizCreateRequest,
    service: QuizSessionService = Depends(get_session_service),
):
    return service.catalog.create_quiz(request)


@router.get("/{quiz_id}")
def get_quiz(
    quiz_id: str,
    service: QuizSessionService = Depends(get_session_service),
):
    try:
        meta = service.catalog.load_quiz_meta(quiz_id)
    except QuizNotFoundError:
        raise HTTPException(status_code=404, detail="Quiz not found")

    questions = service.catalog.load_questions(quiz_id)
    return {
        **meta.model_dump(),
        "question_count": len(questions),
        "total_points": sum(q.points for q in questions),
    }


@router.post("/{quiz_id}/questions", status_code=201)
def add_question(
    quiz_id: str,
    draft: QuestionDraft,
    service: QuizSessionService = Depends(get_session_service),
):
    """Validate, then store. Warnings are returned alongside the stored question."""
    try:
        validation, question = service.catalog.save_question(quiz_id, draft)
    except QuizNotFoundError:
        raise HTTPException(status_code=404, detail="Quiz not found")

    if question is None:
        raise HTTPException(status_code=422, detail=validation.model_dump())

    return {
        "question": question.model_dump(mode="json"),
        "warnings": [w.model_dump() for w in validation.warnings],
    }


@router.get("/{quiz_id}/questions")
def list_questions(
    quiz_id: str,
    service: QuizSessionService = Depends(get_session_service),
):
    """
    FRONTEND-SAFE QUESTIONS API

    No correct answers and no explanations; those appear in the report
    after grading.
    """
    try:
        service.catalog.load_quiz_meta(quiz_id)
    except QuizNotFoundError:
        raise HTTPException(status_code=404, detail="Quiz not found")

    response: List[Dict[str, Any]] = [q.public_dict() for q in service.catalog.load_questions(quiz_id)]
    return response
