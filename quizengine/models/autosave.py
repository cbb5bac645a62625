from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from quizengine.db.base import Base


class AutosaveEntry(Base):
    __tablename__ = "autosave_entries"

    namespace = Column(String(100), primary_key=True)
    key = Column(String(255), primary_key=True)

    value = Column(Text, nullable=False)

    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
