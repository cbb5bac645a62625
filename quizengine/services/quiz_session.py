# quizengine/services/quiz_session.py

"""
Live attempts for the HTTP layer.

Attempts are held in a registry keyed by attempt id. A graded result is
handed to the result sink once. Once the sink has stored it the attempt
leaves the registry and later lookups read the stored record through the
catalog; when the sink fails the attempt stays here so that
``retry_persist`` can resend it without grading again.
"""

import logging
import os
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from quizengine.core.config import settings
from quizengine.core.exceptions import (
    AttemptLimitReachedError,
    AttemptNotFoundError,
    AttemptStateError,
)
from quizengine.engine.attempt import QuizAttempt
from quizengine.engine.scheduling import Scheduler, utcnow
from quizengine.reports.report_builder import build_attempt_report
from quizengine.reports.report_docx import generate_report_docx
from quizengine.schemas.attempt import AttemptSnapshot, AttemptStatus, PersistOutcome, Result, SubmitReason
from quizengine.services.autosave import AutosaveStore
from quizengine.services.catalog import QuizCatalog, ResultSink

logger = logging.getLogger(__name__)


class QuizSessionService:

    def __init__(
        self,
        catalog: QuizCatalog,
        sink: ResultSink,
        autosave: Optional[AutosaveStore] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], datetime] = utcnow,
        reports_dir: str = settings.REPORTS_DIR,
    ):
        self.catalog = catalog
        self.sink = sink
        self.autosave = autosave
        self.scheduler = scheduler
        self.clock = clock
        self.reports_dir = reports_dir

        self._attempts: Dict[str, QuizAttempt] = {}
        self._outcomes: Dict[str, PersistOutcome] = {}
        self._lock = threading.Lock()

    # =========================
    # Registry
    # =========================
    def _live(self, attempt_id: str) -> Optional[QuizAttempt]:
        with self._lock:
            return self._attempts.get(attempt_id)

    def get(self, attempt_id: str) -> QuizAttempt:
        attempt = self._live(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(f"Attempt {attempt_id} not found")
        return attempt

    def _register(self, attempt: QuizAttempt) -> None:
        with self._lock:
            self._attempts[attempt.attempt_id] = attempt

    def _unregister(self, attempt_id: str) -> None:
        with self._lock:
            self._attempts.pop(attempt_id, None)
            self._outcomes.pop(attempt_id, None)

    def live_attempt_count(self) -> int:
        with self._lock:
            return len(self._attempts)

    def _stored(self, attempt_id: str) -> AttemptSnapshot:
        stored = self.catalog.load_attempt(attempt_id)
        if stored is None:
            raise AttemptNotFoundError(f"Attempt {attempt_id} not found")
        return stored

    def snapshot(self, attempt_id: str) -> AttemptSnapshot:
        """Live snapshot, or the stored one once the result has been persisted."""
        attempt = self._live(attempt_id)
        if attempt is not None:
            return attempt.snapshot()
        return self._stored(attempt_id)

    def _autosave_for(self, user_id: str) -> Optional[AutosaveStore]:
        if self.autosave is None:
            return None
        return self.autosave.for_user(user_id)

    def _new_attempt(self, meta, questions, user_id: str, attempt_number: int = 1) -> QuizAttempt:
        return QuizAttempt(
            meta,
            questions,
            user_id,
            attempt_number=attempt_number,
            autosave=self._autosave_for(user_id),
            scheduler=self.scheduler,
            clock=self.clock,
            on_submitted=self._persist,
        )

    def _unpersisted_attempts(self, quiz_id: str, user_id: str) -> int:
        """Registered attempts; the sink does not hold a result for any of them."""
        with self._lock:
            return sum(
                1
                for attempt in self._attempts.values()
                if attempt.quiz_id == quiz_id and attempt.user_id == user_id
            )

    # =========================
    # Lifecycle
    # =========================
    def start_attempt(self, quiz_id: str, user_id: str) -> QuizAttempt:
        meta = self.catalog.load_quiz_meta(quiz_id)
        questions = self.catalog.load_questions(quiz_id)

        previous = self.catalog.count_attempts(quiz_id, user_id) + self._unpersisted_attempts(quiz_id, user_id)
        if meta.max_attempts is not None and previous >= meta.max_attempts:
            raise AttemptLimitReachedError(
                f"User {user_id} has used all {meta.max_attempts} attempts on quiz {quiz_id}"
            )

        attempt = self._new_attempt(meta, questions, user_id, attempt_number=previous + 1)
        attempt.start()
        self._register(attempt)
        return attempt

    def recover_attempt(self, quiz_id: str, user_id: str, attempt_id: str) -> QuizAttempt:
        """Live attempt if it is still registered, else rebuilt from autosave."""
        live = self._live(attempt_id)
        if live is not None and live.status == AttemptStatus.IN_PROGRESS:
            return live

        if self.autosave is None:
            raise AttemptNotFoundError(f"No saved progress for attempt {attempt_id}")

        meta = self.catalog.load_quiz_meta(quiz_id)
        questions = self.catalog.load_questions(quiz_id)
        attempt_number = live.attempt_number if live is not None else 1
        attempt = QuizAttempt.recover(
            meta,
            questions,
            user_id,
            attempt_id,
            self._autosave_for(user_id),
            attempt_number=attempt_number,
            scheduler=self.scheduler,
            clock=self.clock,
            on_submitted=self._persist,
        )
        if attempt is None:
            raise AttemptNotFoundError(f"No saved progress for attempt {attempt_id}")

        with self._lock:
            # Expired while away and already stored: nothing left to hold
            if attempt.result is None or attempt_id in self._outcomes:
                self._attempts[attempt_id] = attempt
        return attempt

    def answer(self, attempt_id: str, question_id: str, value: Any) -> bool:
        return self.get(attempt_id).answer(question_id, value)

    def clear_answer(self, attempt_id: str, question_id: str) -> bool:
        return self.get(attempt_id).clear_answer(question_id)

    def navigate(self, attempt_id: str, index: int) -> int:
        return self.get(attempt_id).navigate(index)

    def submit(self, attempt_id: str) -> PersistOutcome:
        attempt = self._live(attempt_id)
        if attempt is None:
            stored = self._stored(attempt_id)
            return PersistOutcome(ok=True, attempt_id=attempt_id, result=stored.result)

        result = attempt.submit(SubmitReason.MANUAL)
        if result is None:
            raise AttemptStateError(f"Attempt {attempt_id} is {attempt.status.value} and has no result")

        with self._lock:
            outcome = self._outcomes.get(attempt_id)
            registered = attempt_id in self._attempts
        if outcome is not None:
            return outcome
        if not registered:
            # The submission callback stored the result and released the attempt
            return PersistOutcome(ok=True, attempt_id=attempt_id, result=result)
        # Expiry may have graded on the timer thread before the callback ran
        return self._persist(attempt, result)

    def retry_persist(self, attempt_id: str) -> PersistOutcome:
        attempt = self._live(attempt_id)
        if attempt is None:
            stored = self._stored(attempt_id)
            return PersistOutcome(ok=True, attempt_id=attempt_id, result=stored.result)
        if attempt.result is None:
            raise AttemptStateError(f"Attempt {attempt_id} has not been graded")
        return self._persist(attempt, attempt.result)

    def abandon(self, attempt_id: str) -> bool:
        attempt = self._live(attempt_id)
        if attempt is None:
            stored = self._stored(attempt_id)
            raise AttemptStateError(f"Attempt {attempt_id} is already {stored.status.value}")

        abandoned = attempt.abandon()
        if not abandoned:
            raise AttemptStateError(f"Attempt {attempt_id} is already {attempt.status.value}")
        self._unregister(attempt_id)
        return abandoned

    def close(self, attempt_id: str, flush: bool = True) -> None:
        """Tear the attempt down; its autosave entry stays for recovery."""
        attempt = self._live(attempt_id)
        if attempt is None:
            # Already stored, nothing left to tear down
            self._stored(attempt_id)
            return
        attempt.teardown(flush=flush)
        if attempt.result is None:
            self._unregister(attempt_id)

    def shutdown(self) -> None:
        with self._lock:
            attempts: List[QuizAttempt] = list(self._attempts.values())
        for attempt in attempts:
            attempt.teardown(flush=True)
        logger.info(f"Session service stopped, {len(attempts)} attempts torn down")

    # =========================
    # Result sink
    # =========================
    def _persist(self, attempt: QuizAttempt, result: Result) -> PersistOutcome:
        attempt_id = result.attempt_id
        try:
            self.sink.persist_result(attempt_id, result, attempt.snapshot())
            outcome = PersistOutcome(ok=True, attempt_id=attempt_id, result=result)
        except Exception as e:
            logger.error(f"Result sink rejected attempt {attempt_id}: {e}")
            outcome = PersistOutcome(ok=False, attempt_id=attempt_id, error=str(e), result=result)

        with self._lock:
            if outcome.ok:
                self._attempts.pop(attempt_id, None)
                self._outcomes.pop(attempt_id, None)
            else:
                self._outcomes[attempt_id] = outcome
        return outcome

    def persist_outcome(self, attempt_id: str) -> Optional[PersistOutcome]:
        """Failed hand-off still waiting for ``retry_persist``, if any."""
        with self._lock:
            return self._outcomes.get(attempt_id)

    # =========================
    # Reports
    # =========================
    def report(self, attempt_id: str) -> Dict[str, Any]:
        attempt = self._live(attempt_id)
        if attempt is None:
            stored = self._stored(attempt_id)
            return build_attempt_report(
                stored.result,
                self.catalog.load_questions(stored.quiz_id),
                self.catalog.load_quiz_meta(stored.quiz_id),
                user_id=stored.user_id,
            )

        if attempt.result is None:
            raise AttemptStateError(f"Attempt {attempt_id} has not been graded")
        return build_attempt_report(attempt.result, attempt.questions, attempt.meta, user_id=attempt.user_id)

    def report_docx(self, attempt_id: str) -> str:
        report = self.report(attempt_id)
        os.makedirs(self.reports_dir, exist_ok=True)
        file_path = os.path.join(self.reports_dir, f"attempt_report_{attempt_id}.docx")
        generate_report_docx(report, file_path)
        return file_path
