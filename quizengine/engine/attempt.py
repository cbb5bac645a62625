# quizengine/engine/attempt.py

"""
Timed attempt state machine.

    not_started -> in_progress -> submitted | expired | abandoned

Every transition runs under one re-entrant lock: the countdown and the
autosave debounce fire on scheduler threads and must see the same state as
user calls. Both timers belong to the attempt and are cancelled on
submit, abandon and teardown.
"""

import logging
import random
import secrets
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from quizengine.core.config import settings
from quizengine.engine.codec import normalize_answer
from quizengine.engine.randomization import question_view
from quizengine.engine.scheduling import Cancellable, Debouncer, Scheduler, ThreadingScheduler, utcnow
from quizengine.engine.scorer import grade
from quizengine.schemas.attempt import (
    TERMINAL_STATUSES,
    AttemptSnapshot,
    AttemptStatus,
    Result,
    SubmitReason,
)
from quizengine.schemas.question import Question
from quizengine.schemas.quiz import QuizMeta
from quizengine.services.autosave import AutosaveStore, as_utc

logger = logging.getLogger(__name__)

SubmittedCallback = Callable[["QuizAttempt", Result], None]


def generate_attempt_id() -> str:
    try:
        raw = secrets.token_bytes(16)
    except NotImplementedError:
        # No OS randomness source available
        raw = random.Random().getrandbits(128).to_bytes(16, "big")
    return str(uuid.UUID(bytes=raw, version=4))


class QuizAttempt:

    def __init__(
        self,
        meta: QuizMeta,
        questions: Sequence[Question],
        user_id: str,
        attempt_number: int = 1,
        autosave: Optional[AutosaveStore] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], datetime] = utcnow,
        on_submitted: Optional[SubmittedCallback] = None,
        tick_seconds: float = settings.TIMER_TICK_SECONDS,
        debounce_seconds: float = settings.AUTOSAVE_DEBOUNCE_SECONDS,
    ):
        self.meta = meta
        self.questions: List[Question] = list(questions)
        self.user_id = user_id
        self.attempt_number = attempt_number

        self._autosave = autosave
        self._scheduler = scheduler or ThreadingScheduler()
        self._clock = clock
        self._on_submitted = on_submitted
        self._tick_seconds = tick_seconds

        self._by_id: Dict[str, Question] = {q.id: q for q in self.questions}
        self._lock = threading.RLock()
        self._timer: Optional[Cancellable] = None
        self._timer_generation = 0
        self._debouncer = Debouncer(self._scheduler, debounce_seconds, self._write_autosave)

        self._reset()

    def _reset(self) -> None:
        self.attempt_id: Optional[str] = None
        self.status = AttemptStatus.NOT_STARTED
        self.started_at: Optional[datetime] = None
        self.submitted_at: Optional[datetime] = None
        self.remaining_seconds: Optional[int] = None
        self.current_question_index = 0
        self.answers: Dict[str, Any] = {}
        self.last_persisted_at: Optional[datetime] = None
        self.result: Optional[Result] = None
        self.autosave_enabled = self._autosave is not None

    # =========================
    # Properties
    # =========================
    @property
    def quiz_id(self) -> str:
        return self.meta.quiz_id

    @property
    def time_limit_seconds(self) -> Optional[int]:
        return self.meta.time_limit_seconds

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def timer_running(self) -> bool:
        return self._timer is not None

    @property
    def autosave_pending(self) -> bool:
        return self._debouncer.pending

    # =========================
    # Lifecycle
    # =========================
    def start(self) -> bool:
        with self._lock:
            if self.status != AttemptStatus.NOT_STARTED:
                logger.debug(f"start() ignored, attempt is {self.status.value}")
                return False

            if self._autosave is not None:
                self._autosave.prepare_for_new_attempt(self.quiz_id)

            self.attempt_id = generate_attempt_id()
            self.started_at = self._clock()
            self.remaining_seconds = self.time_limit_seconds
            self.answers = {}
            self.current_question_index = 0
            self.status = AttemptStatus.IN_PROGRESS

            if self.remaining_seconds is not None:
                self._schedule_tick()

            logger.info(f"Attempt {self.attempt_id} started on quiz {self.quiz_id} by {self.user_id}")
            return True

    def submit(self, reason: SubmitReason = SubmitReason.MANUAL) -> Optional[Result]:
        """
        Grade the attempt once.

        A terminal attempt returns its existing result unchanged; an attempt
        that never started (or was torn down) has nothing to grade.
        """
        with self._lock:
            if self.result is not None:
                return self.result
            if self.status != AttemptStatus.IN_PROGRESS:
                logger.debug(f"submit() ignored, attempt is {self.status.value}")
                return None

            self._cancel_timer()
            self._debouncer.cancel()

            self.status = AttemptStatus.EXPIRED if reason == SubmitReason.EXPIRED else AttemptStatus.SUBMITTED
            self.submitted_at = self._clock()
            self.result = grade(
                self.questions,
                dict(self.answers),
                self.attempt_id,
                passing_score=self.meta.passing_score,
            )

            if self._autosave is not None:
                self._autosave.discard(self.quiz_id, self.attempt_id)

            result = self.result

        if self._on_submitted is not None:
            try:
                self._on_submitted(self, result)
            except Exception as e:
                logger.error(f"Submission callback failed for attempt {result.attempt_id}: {e}")
        return result

    def abandon(self) -> bool:
        """Discard the attempt and its autosave entry; back to not_started."""
        with self._lock:
            if self.is_terminal:
                return False

            self._cancel_timer()
            self._debouncer.cancel()
            if self._autosave is not None:
                self._autosave.discard(self.quiz_id, self.attempt_id)

            logger.info(f"Attempt {self.attempt_id} on quiz {self.quiz_id} abandoned")
            self._reset()
            return True

    def teardown(self, flush: bool = True) -> None:
        """
        Release timers when the session goes away.

        The pending autosave is written (``flush``) or dropped. An
        in-progress attempt becomes abandoned but its autosave entry is
        kept, so ``recover`` can rebuild it after a reload.
        """
        with self._lock:
            self._cancel_timer()
            if flush:
                self._debouncer.flush()
            else:
                self._debouncer.cancel()

            if self.status == AttemptStatus.IN_PROGRESS:
                self.status = AttemptStatus.ABANDONED

    @classmethod
    def recover(
        cls,
        meta: QuizMeta,
        questions: Sequence[Question],
        user_id: str,
        attempt_id: str,
        autosave: AutosaveStore,
        **kwargs,
    ) -> Optional["QuizAttempt"]:
        """Rebuild an in-progress attempt from its fresh autosave entry."""
        payload = autosave.load_for_recovery(meta.quiz_id, attempt_id)
        if payload is None:
            return None

        attempt = cls(meta, questions, user_id, autosave=autosave, **kwargs)
        with attempt._lock:
            attempt.attempt_id = payload.attempt_id
            attempt.started_at = payload.started_at or payload.saved_at
            attempt.last_persisted_at = payload.saved_at
            attempt.status = AttemptStatus.IN_PROGRESS

            for question_id, value in payload.answers.items():
                question = attempt._by_id.get(question_id)
                normalized = normalize_answer(question, value) if question else None
                if normalized is None:
                    logger.warning(f"Dropping unusable saved answer for question {question_id}")
                    continue
                attempt.answers[question_id] = normalized

            if meta.time_limit_seconds is not None:
                remaining = payload.remaining_seconds
                if remaining is None:
                    remaining = meta.time_limit_seconds
                # Time kept running while the page was gone
                elapsed = int((attempt._clock() - as_utc(payload.saved_at)).total_seconds())
                attempt.remaining_seconds = max(0, min(remaining, meta.time_limit_seconds) - max(0, elapsed))

            logger.info(f"Attempt {attempt_id} recovered with {len(attempt.answers)} answers")

            if attempt.remaining_seconds == 0:
                attempt.submit(SubmitReason.EXPIRED)
            elif attempt.remaining_seconds is not None:
                attempt._schedule_tick()

        return attempt

    # =========================
    # Answers & navigation
    # =========================
    def answer(self, question_id: str, value: Any) -> bool:
        """Record an answer; False when rejected (not in progress, unknown question, bad shape)."""
        with self._lock:
            if self.status != AttemptStatus.IN_PROGRESS:
                logger.debug(f"Late answer for {question_id} ignored ({self.status.value})")
                return False

            question = self._by_id.get(question_id)
            if question is None:
                logger.warning(f"Answer for unknown question {question_id} rejected")
                return False

            normalized = normalize_answer(question, value)
            if normalized is None:
                logger.info(f"Answer for {question_id} rejected by shape check")
                return False

            self.answers[question_id] = normalized
            self._queue_autosave()
            return True

    def clear_answer(self, question_id: str) -> bool:
        with self._lock:
            if self.status != AttemptStatus.IN_PROGRESS or question_id not in self.answers:
                return False
            del self.answers[question_id]
            self._queue_autosave()
            return True

    def navigate(self, index: int) -> int:
        with self._lock:
            if not self.is_terminal and self.questions:
                self.current_question_index = max(0, min(index, len(self.questions) - 1))
            return self.current_question_index

    def next(self) -> int:
        return self.navigate(self.current_question_index + 1)

    def previous(self) -> int:
        return self.navigate(self.current_question_index - 1)

    # =========================
    # Timer
    # =========================
    def tick(self) -> Optional[int]:
        """One second of countdown; reaching zero submits as expired."""
        with self._lock:
            if self.status != AttemptStatus.IN_PROGRESS or self.remaining_seconds is None:
                return self.remaining_seconds

            self.remaining_seconds = max(0, self.remaining_seconds - 1)
            if self.remaining_seconds == 0:
                logger.info(f"Attempt {self.attempt_id} ran out of time")
                self.submit(SubmitReason.EXPIRED)
            return self.remaining_seconds

    def _schedule_tick(self) -> None:
        self._timer_generation += 1
        generation = self._timer_generation
        self._timer = self._scheduler.call_later(self._tick_seconds, lambda: self._on_timer(generation))

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # Stale callback from a cancelled timer
            if generation != self._timer_generation:
                return
            self._timer = None
            self.tick()
            if self.status == AttemptStatus.IN_PROGRESS:
                self._schedule_tick()

    def _cancel_timer(self) -> None:
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # =========================
    # Autosave
    # =========================
    def _queue_autosave(self) -> None:
        if self.autosave_enabled:
            self._debouncer.trigger()

    def _write_autosave(self) -> None:
        with self._lock:
            if not self.autosave_enabled or self.status != AttemptStatus.IN_PROGRESS:
                return

            saved_at = self._autosave.save(
                self.quiz_id,
                self.attempt_id,
                self.answers,
                started_at=self.started_at,
                remaining_seconds=self.remaining_seconds,
            )
            if saved_at is None:
                self.autosave_enabled = False
                logger.warning(f"Autosave disabled for attempt {self.attempt_id}")
                return
            self.last_persisted_at = saved_at

    # =========================
    # Display
    # =========================
    def snapshot(self) -> AttemptSnapshot:
        with self._lock:
            current = None
            if self.questions and self.status == AttemptStatus.IN_PROGRESS:
                current = question_view(self.questions[self.current_question_index], self.attempt_id)

            return AttemptSnapshot(
                attempt_id=self.attempt_id,
                quiz_id=self.quiz_id,
                user_id=self.user_id,
                attempt_number=self.attempt_number,
                status=self.status,
                started_at=self.started_at,
                submitted_at=self.submitted_at,
                time_limit_seconds=self.time_limit_seconds,
                remaining_seconds=self.remaining_seconds,
                current_question_index=self.current_question_index,
                question_count=len(self.questions),
                answered_count=len(self.answers),
                answers=dict(self.answers),
                last_persisted_at=self.last_persisted_at,
                current_question=current,
                result=self.result,
            )
