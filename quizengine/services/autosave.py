# quizengine/services/autosave.py

"""
Autosave of in-progress answers.

An entry only exists so that a page reload can rebuild the *same*
in-progress attempt. Every read and write is wrapped: a broken store turns
autosave into a no-op, it never breaks the quiz.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from quizengine.core.config import settings
from quizengine.engine.scheduling import utcnow
from quizengine.services.storage import KeyValueStore

logger = logging.getLogger(__name__)


class AutosavePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answers: Dict[str, Any] = Field(default_factory=dict)
    saved_at: datetime = Field(..., alias="savedAt")
    attempt_id: str = Field(..., alias="attemptId")
    started_at: Optional[datetime] = Field(None, alias="startedAt")
    remaining_seconds: Optional[int] = Field(None, alias="remainingSeconds")


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AutosaveStore:
    """
    Entries are keyed `"<quiz_id>:answers"`. A store shared by several users
    hands each of them a view from `for_user`, whose keys carry the user as
    a `"<user_id>/"` prefix.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        max_age_hours: float = settings.AUTOSAVE_MAX_AGE_HOURS,
        clock: Callable[[], datetime] = utcnow,
        scope: Optional[str] = None,
    ):
        self.kv = kv
        self.max_age_hours = max_age_hours
        self.max_age = timedelta(hours=max_age_hours)
        self.clock = clock
        self.scope = scope

    def for_user(self, user_id: str) -> "AutosaveStore":
        return AutosaveStore(self.kv, max_age_hours=self.max_age_hours, clock=self.clock, scope=user_id)

    def key_for(self, quiz_id: str) -> str:
        if self.scope is None:
            return f"{quiz_id}:answers"
        return f"{self.scope}/{quiz_id}:answers"

    def is_fresh(self, payload: AutosavePayload) -> bool:
        return self.clock() - as_utc(payload.saved_at) <= self.max_age

    # =========================
    # Writes
    # =========================
    def save(
        self,
        quiz_id: str,
        attempt_id: str,
        answers: Dict[str, Any],
        started_at: Optional[datetime] = None,
        remaining_seconds: Optional[int] = None,
    ) -> Optional[datetime]:
        """Write the entry; returns the save time, or None if the store failed."""
        saved_at = self.clock()
        payload = AutosavePayload(
            answers=dict(answers),
            saved_at=saved_at,
            attempt_id=attempt_id,
            started_at=started_at,
            remaining_seconds=remaining_seconds,
        )
        try:
            self.kv.set(self.key_for(quiz_id), payload.model_dump_json(by_alias=True))
        except Exception as e:
            logger.warning(f"Autosave write failed for quiz {quiz_id}: {e}")
            return None
        return saved_at

    def discard(self, quiz_id: str, attempt_id: Optional[str] = None) -> bool:
        """
        Delete the entry. With ``attempt_id`` the entry is only deleted when
        that attempt wrote it; an entry owned by another attempt is kept.
        """
        if attempt_id is not None:
            payload = self.load(quiz_id)
            if payload is not None and payload.attempt_id != attempt_id:
                logger.info(f"Autosave for quiz {quiz_id} belongs to another attempt, keeping it")
                return False
        try:
            self.kv.delete(self.key_for(quiz_id))
        except Exception as e:
            logger.warning(f"Autosave delete failed for quiz {quiz_id}: {e}")
            return False
        return True

    # =========================
    # Reads
    # =========================
    def _read(self, key: str) -> Optional[AutosavePayload]:
        try:
            raw = self.kv.get(key)
        except Exception as e:
            logger.warning(f"Autosave read failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return AutosavePayload.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Corrupt autosave entry {key}: {e.error_count()} errors")
            # Corrupt payloads are dropped so they cannot be picked up again
            try:
                self.kv.delete(key)
            except Exception as delete_error:
                logger.warning(f"Could not drop corrupt entry {key}: {delete_error}")
            return None

    def load(self, quiz_id: str) -> Optional[AutosavePayload]:
        return self._read(self.key_for(quiz_id))

    def load_for_recovery(self, quiz_id: str, attempt_id: str) -> Optional[AutosavePayload]:
        """Fresh entry written by ``attempt_id``, or None."""
        payload = self.load(quiz_id)
        if payload is None:
            return None
        if payload.attempt_id != attempt_id:
            logger.info(f"Autosave for quiz {quiz_id} belongs to another attempt")
            return None
        if not self.is_fresh(payload):
            logger.info(f"Autosave for quiz {quiz_id} is stale, not recovering")
            self.discard(quiz_id)
            return None
        return payload

    def prepare_for_new_attempt(self, quiz_id: str) -> None:
        """
        Called before a fresh attempt starts.

        A stale entry is deleted. A fresh entry is left in place and is
        never loaded; the new attempt's first autosave overwrites it.
        """
        payload = self.load(quiz_id)
        if payload is None:
            return
        if not self.is_fresh(payload):
            logger.info(f"Discarding stale autosave for quiz {quiz_id}")
            self.discard(quiz_id)

    def purge_expired(self) -> int:
        try:
            keys = self.kv.keys()
        except Exception as e:
            logger.warning(f"Autosave sweep failed: {e}")
            return 0

        purged = 0
        for key in keys:
            if not key.endswith(":answers"):
                continue
            payload = self._read(key)
            if payload is None or self.is_fresh(payload):
                continue
            try:
                self.kv.delete(key)
                purged += 1
            except Exception as e:
                logger.warning(f"Could not purge {key}: {e}")

        if purged:
            logger.info(f"Purged {purged} expired autosave entries")
        return purged
