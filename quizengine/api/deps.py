from functools import lru_cache

from quizengine.db.session import SessionLocal
from quizengine.services.autosave import AutosaveStore
from quizengine.services.catalog import SqlQuizCatalog, SqlResultSink
from quizengine.services.quiz_session import QuizSessionService
from quizengine.services.storage import get_key_value_store


@lru_cache
def get_session_service() -> QuizSessionService:
    """One service per process: it owns the live attempts and their timers."""
    return QuizSessionService(
        catalog=SqlQuizCatalog(SessionLocal),
        sink=SqlResultSink(SessionLocal),
        autosave=AutosaveStore(get_key_value_store()),
    )
