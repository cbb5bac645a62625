import os

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from quizengine.api.deps import get_session_service
from quizengine.core.exceptions import AttemptNotFoundError, AttemptStateError
from quizengine.services.quiz_session import QuizSessionService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/{attempt_id}")
def get_or_download_report(
    attempt_id: str,
    download: bool = Query(False, description="Set true to download report"),
    service: QuizSessionService = Depends(get_session_service),
):
    try:
        # ---------------------------------
        # DOWNLOAD MODE
        # ---------------------------------
        if download:
            file_path = service.report_docx(attempt_id)
            return FileResponse(
                path=file_path,
                filename=os.path.basename(file_path),
                media_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            )

        # ---------------------------------
        # JSON MODE (UI VIEW)
        # ---------------------------------
        return service.report(attempt_id)

    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="Attempt not found")
    except AttemptStateError:
        raise HTTPException(status_code=409, detail="Attempt has not been graded yet")
