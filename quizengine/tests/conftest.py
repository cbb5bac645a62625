"""Pytest configuration and shared fixtures"""
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quizengine.core.exceptions import StorageUnavailableError
from quizengine.db.base import Base
from quizengine.engine.attempt import QuizAttempt
from quizengine.engine.scheduling import Cancellable, Scheduler
from quizengine.models import attempt as _attempt_models, autosave as _autosave_models, quiz as _quiz_models  # noqa: F401
from quizengine.schemas.question import Question, parse_question
from quizengine.schemas.quiz import QuizMeta
from quizengine.services.autosave import AutosaveStore
from quizengine.services.storage import MemoryKeyValueStore


# =========================
# Time
# =========================
class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class _ManualHandle(Cancellable):
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Runs callbacks only when the test calls ``advance``; moves the clock along."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.now = 0.0
        self._seq = 0
        self._pending = []

    def call_later(self, delay, callback):
        handle = _ManualHandle()
        self._seq += 1
        self._pending.append((self.now + delay, self._seq, callback, handle))
        return handle

    @property
    def active(self) -> int:
        return sum(1 for entry in self._pending if not entry[3].cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [e for e in self._pending if e[0] <= target and not e[3].cancelled]
            if not due:
                break
            entry = min(due, key=lambda e: (e[0], e[1]))
            self._pending.remove(entry)
            self.clock.advance(entry[0] - self.now)
            self.now = entry[0]
            entry[2]()
        self.clock.advance(target - self.now)
        self.now = target
        self._pending = [e for e in self._pending if not e[3].cancelled]


class FailingKeyValueStore(MemoryKeyValueStore):
    """Memory store whose writes can be switched off."""

    def __init__(self, fail_reads: bool = False, fail_writes: bool = True):
        super().__init__("test")
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.write_attempts = 0

    def get(self, key):
        if self.fail_reads:
            raise StorageUnavailableError("store offline")
        return super().get(key)

    def set(self, key, value):
        self.write_attempts += 1
        if self.fail_writes:
            raise StorageUnavailableError("quota exceeded")
        super().set(key, value)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock) -> ManualScheduler:
    return ManualScheduler(clock)


# =========================
# Storage
# =========================
@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore("test")


@pytest.fixture
def autosave(kv, clock) -> AutosaveStore:
    return AutosaveStore(kv, max_age_hours=24, clock=clock)


@pytest.fixture
def failing_kv():
    return FailingKeyValueStore


# =========================
# Questions
# =========================
@pytest.fixture
def single_choice() -> Question:
    return parse_question({
        "id": "q-single",
        "type": "single_choice",
        "prompt": "What is the capital of France?",
        "options": ["London", "Berlin", "Paris", "Madrid"],
        "correct_answer": 2,
        "points": 2,
    })


@pytest.fixture
def multiple_choice() -> Question:
    return parse_question({
        "id": "q-multi",
        "type": "multiple_choice",
        "prompt": "Which of these numbers are prime?",
        "options": ["2", "3", "4", "5"],
        "correct_answer": [0, 1, 3],
        "shuffle": True,
    })


@pytest.fixture
def true_false() -> Question:
    return parse_question({
        "id": "q-tf",
        "type": "true_false",
        "prompt": "The sun orbits the earth.",
        "correct_answer": False,
    })


@pytest.fixture
def fill_blank() -> Question:
    return parse_question({
        "id": "q-fill",
        "type": "fill_blank",
        "prompt": "The quick ___ fox jumps over the lazy dog.",
        "correct_answer": "brown",
    })


@pytest.fixture
def essay() -> Question:
    return parse_question({
        "id": "q-essay",
        "type": "essay",
        "prompt": "Explain photosynthesis.",
        "points": 5,
        "min_words": 50,
    })


@pytest.fixture
def matching() -> Question:
    return parse_question({
        "id": "q-match",
        "type": "matching",
        "prompt": "Match each country to its capital.",
        "left": [{"id": 1, "text": "France"}, {"id": 2, "text": "Japan"}],
        "right": [{"id": "a", "text": "Paris"}, {"id": "b", "text": "Tokyo"}],
        "correct_answer": [{"left_id": 1, "right_id": "a"}, {"left_id": 2, "right_id": "b"}],
        "partial_credit": True,
        "points": 2,
    })


@pytest.fixture
def ordering() -> Question:
    return parse_question({
        "id": "q-order",
        "type": "ordering",
        "prompt": "Put the numbers in ascending order.",
        "items": [{"id": 1, "text": "one"}, {"id": 2, "text": "two"}, {"id": 3, "text": "three"}],
        "correct_answer": [1, 2, 3],
        "partial_credit": True,
        "points": 3,
    })


@pytest.fixture
def questions(single_choice, multiple_choice, true_false, fill_blank, essay, matching, ordering) -> List[Question]:
    return [single_choice, multiple_choice, true_false, fill_blank, essay, matching, ordering]


@pytest.fixture
def perfect_answers():
    return {
        "q-single": 2,
        "q-multi": [0, 1, 3],
        "q-tf": False,
        "q-fill": "brown",
        "q-match": {"1": "a", "2": "b"},
        "q-order": [1, 2, 3],
    }


@pytest.fixture
def quiz_meta() -> QuizMeta:
    return QuizMeta(quiz_id="quiz-1", title="General Knowledge", time_limit_seconds=60, passing_score=70)


@pytest.fixture
def make_attempt(quiz_meta, questions, autosave, scheduler, clock) -> Callable[..., QuizAttempt]:
    def _make(**kwargs) -> QuizAttempt:
        options = {
            "meta": quiz_meta,
            "questions": questions,
            "user_id": "student-1",
            "autosave": autosave,
            "scheduler": scheduler,
            "clock": clock,
            "tick_seconds": 1.0,
            "debounce_seconds": 2.0,
        }
        options.update(kwargs)
        return QuizAttempt(**options)
    return _make
