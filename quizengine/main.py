# quizengine/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizengine.core.config import settings
from quizengine.db.session import init_db

# Import routers (router objects, not modules)
from quizengine.api.deps import get_session_service
from quizengine.api.quizzes import router as quizzes_router
from quizengine.api.attempts import router as attempts_router
from quizengine.api.reports import router as reports_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    service = get_session_service()
    if service.autosave is not None:
        service.autosave.purge_expired()
    logger.info("Quiz engine ready")
    yield
    service.shutdown()


app = FastAPI(
    title="Quiz Engine",
    version="1.0.0",
    lifespan=lifespan,
)

# --------------------------------------------------
# CORS CONFIG
# --------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    # allow origin variations on localhost (ports) during development
    allow_origin_regex=r"http://localhost(:[0-9]+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --------------------------------------------------
# API ROUTES
# --------------------------------------------------

# Quizzes (authoring, validation, question listing)
app.include_router(quizzes_router, prefix="/api/v1")

# Attempts (start, answer, navigate, submit, recover)
app.include_router(attempts_router, prefix="/api/v1")

# Reports (view / download)
app.include_router(reports_router, prefix="/api/v1")


# --------------------------------------------------
# ROOT HEALTH CHECK
# --------------------------------------------------
@app.get("/")
def health_check():
    return {
        "status": "ok",
        "service": "Quiz Engine",
        "version": "1.0.0"
    }
