from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from quizengine.api.deps import get_session_service
from quizengine.core.exceptions import (
    AttemptLimitReachedError,
    AttemptNotFoundError,
    AttemptStateError,
    QuizNotFoundError,
)
from quizengine.engine.attempt import QuizAttempt
from quizengine.schemas.attempt import (
    AnswerRequest,
    AnswerResponse,
    AttemptSnapshot,
    AttemptStatus,
    NavigateRequest,
    PersistOutcome,
    RecoverAttemptRequest,
    StartAttemptRequest,
    SubmissionResponse,
)
from quizengine.services.quiz_session import QuizSessionService

router = APIRouter(tags=["Attempts"])


def _find_attempt(service: QuizSessionService, attempt_id: str) -> Optional[QuizAttempt]:
    """Live attempt, or None once its result has been stored."""
    try:
        return service.get(attempt_id)
    except AttemptNotFoundError:
        return None


def _load_snapshot(service: QuizSessionService, attempt_id: str) -> AttemptSnapshot:
    try:
        return service.snapshot(attempt_id)
    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="Attempt not found")


def _submission_response(outcome: PersistOutcome, message: str) -> SubmissionResponse:
    return SubmissionResponse(
        message=message,
        persisted=outcome.ok,
        error=outcome.error,
        result=outcome.result,
    )


# -------------------------------------------------
# Start / recover
# -------------------------------------------------

@router.post("/quizzes/{quiz_id}/attempts", response_model=AttemptSnapshot, status_code=201)
def start_attempt(
    quiz_id: str,
    request: StartAttemptRequest,
    service: QuizSessionService = Depends(get_session_service),
):
    try:
        attempt = service.start_attempt(quiz_id, request.user_id)
    except QuizNotFoundError:
        raise HTTPException(status_code=404, detail="Quiz not found")
    except AttemptLimitReachedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return attempt.snapshot()


@router.post("/quizzes/{quiz_id}/attempts/recover", response_model=AttemptSnapshot)
def recover_attempt(
    quiz_id: str,
    request: RecoverAttemptRequest,
    service: QuizSessionService = Depends(get_session_service),
):
    try:
        attempt = service.recover_attempt(quiz_id, request.user_id, request.attempt_id)
    except QuizNotFoundError:
        raise HTTPException(status_code=404, detail="Quiz not found")
    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="No recoverable progress for this attempt")

    return attempt.snapshot()


# -------------------------------------------------
# In-progress operations
# -------------------------------------------------

@router.get("/attempts/{attempt_id}", response_model=AttemptSnapshot)
def get_attempt(
    attempt_id: str,
    service: QuizSessionService = Depends(get_session_service),
):
    return _load_snapshot(service, attempt_id)


@router.put("/attempts/{attempt_id}/answers/{question_id}", response_model=AnswerResponse)
def answer_question(
    attempt_id: str,
    question_id: str,
    request: AnswerRequest,
    service: QuizSessionService = Depends(get_session_service),
):
    attempt = _find_attempt(service, attempt_id)
    # Late answers after submission are ignored, not errors
    if attempt is None:
        return AnswerResponse(accepted=False, snapshot=_load_snapshot(service, attempt_id))

    accepted = attempt.answer(question_id, request.value)
    # Status is read after the call: the timer may have ended the attempt meanwhile
    if not accepted and attempt.status == AttemptStatus.IN_PROGRESS:
        raise HTTPException(status_code=400, detail=f"Answer does not fit question {question_id}")

    return AnswerResponse(accepted=accepted, snapshot=attempt.snapshot())


@router.delete("/attempts/{attempt_id}/answers/{question_id}", response_model=AnswerResponse)
def clear_answer(
    attempt_id: str,
    question_id: str,
    service: QuizSessionService = Depends(get_session_service),
):
    attempt = _find_attempt(service, attempt_id)
    if attempt is None:
        return AnswerResponse(accepted=False, snapshot=_load_snapshot(service, attempt_id))

    cleared = attempt.clear_answer(question_id)
    return AnswerResponse(accepted=cleared, snapshot=attempt.snapshot())


@router.post("/attempts/{attempt_id}/navigate", response_model=AttemptSnapshot)
def navigate(
    attempt_id: str,
    request: NavigateRequest,
    service: QuizSessionService = Depends(get_session_service),
):
    attempt = _find_attempt(service, attempt_id)
    if attempt is None:
        return _load_snapshot(service, attempt_id)

    attempt.navigate(request.index)
    return attempt.snapshot()


# -------------------------------------------------
# Submission
# -------------------------------------------------

@router.post("/attempts/{attempt_id}/submit", response_model=SubmissionResponse)
def submit_attempt(
    attempt_id: str,
    service: QuizSessionService = Depends(get_session_service),
):
    try:
        outcome = service.submit(attempt_id)
    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="Attempt not found")
    except AttemptStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    message = "Quiz submitted successfully" if outcome.ok else "Quiz graded but the result was not saved"
    return _submission_response(outcome, message)


@router.post("/attempts/{attempt_id}/persist", response_model=SubmissionResponse)
def retry_persist(
    attempt_id: str,
    service: QuizSessionService = Depends(get_session_service),
):
    try:
        outcome = service.retry_persist(attempt_id)
    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="Attempt not found")
    except AttemptStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    message = "Result saved" if outcome.ok else "Result still not saved"
    return _submission_response(outcome, message)


@router.post("/attempts/{attempt_id}/abandon")
def abandon_attempt(
    attempt_id: str,
    service: QuizSessionService = Depends(get_session_service),
):
    try:
        service.abandon(attempt_id)
    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="Attempt not found")
    except AttemptStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"attempt_id": attempt_id, "abandoned": True}


@router.post("/attempts/{attempt_id}/close")
def close_attempt(
    attempt_id: str,
    flush: bool = True,
    service: QuizSessionService = Depends(get_session_service),
):
    """Page is going away: stop timers and keep saved progress for recovery."""
    try:
        service.close(attempt_id, flush=flush)
    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="Attempt not found")
    return {"attempt_id": attempt_id, "closed": True}
