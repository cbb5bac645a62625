from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./quizengine.db"

    LOG_LEVEL: str = "INFO"

    # Autosave of in-progress answers
    AUTOSAVE_BACKEND: Literal["memory", "file", "database"] = "database"
    AUTOSAVE_DIR: str = ".cache/autosave"
    AUTOSAVE_NAMESPACE: str = "quiz"
    AUTOSAVE_DEBOUNCE_SECONDS: float = 2.0
    AUTOSAVE_MAX_AGE_HOURS: float = 24.0

    # Attempt timer
    TIMER_TICK_SECONDS: float = 1.0

    # Grading / authoring thresholds
    DEFAULT_PASSING_SCORE: int = 70
    MIN_QUESTION_COUNT: int = 3
    MIN_SECONDS_PER_QUESTION: int = 30

    REPORTS_DIR: str = "reports"

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()
