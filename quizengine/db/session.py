# quizengine/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from quizengine.core.config import settings

# check_same_thread=False: attempt timers and autosave writes run on timer threads
connect_args = {"check_same_thread": False} if settings.is_sqlite else {}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db() -> None:
    """Create all tables registered on ``Base`` (idempotent)."""
    # Import models so they register on Base.metadata
    from quizengine.db.base import Base
    from quizengine.models import quiz, attempt, autosave  # noqa: F401

    Base.metadata.create_all(bind=engine)
