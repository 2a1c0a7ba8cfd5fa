from __future__ import annotations

import random
from datetime import date
from typing import Callable, List

import pytest

from services.quiz_service.models import Operation, Problem, Role, UserStats
from services.quiz_service.store import MemoryProfileStore
from services.quiz_service.stats import StatsService


class FakeTimer:
    """Stand-in for threading.Timer that only fires when the test says so."""

    def __init__(self, interval: float, function: Callable[[], None]):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled and not self.fired:
            self.fired = True
            self.function()


class FakeTimerFactory:
    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    def live(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]


class FakeTextGenerator:
    def __init__(self, text: str = "Well done!", error: Exception | None = None):
        self.text = text
        self.error = error
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


class FailingProfileStore(MemoryProfileStore):
    """In-memory store whose reads or writes can be switched off."""

    def __init__(self, documents=None):
        super().__init__(documents)
        self.fail_reads = False
        self.fail_writes = False

    def _check(self, failing: bool) -> None:
        if failing:
            raise ConnectionError("profile store unavailable")

    def get_document(self, collection, doc_id):
        self._check(self.fail_reads)
        return super().get_document(collection, doc_id)

    def find_one(self, collection, field, value):
        self._check(self.fail_reads)
        return super().find_one(collection, field, value)

    def merge_write(self, collection, doc_id, fields):
        self._check(self.fail_writes)
        super().merge_write(collection, doc_id, fields)


def make_problems(n: int = 3) -> List[Problem]:
    """Addition problems with answers 2, 4, 6, ..."""
    return [Problem(id=i + 1, num1=i + 1, num2=i + 1, operation=Operation.ADD, correct_answer=2 * (i + 1))
            for i in range(n)]


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def store() -> FailingProfileStore:
    return FailingProfileStore()


@pytest.fixture
def stats_service(store) -> StatsService:
    return StatsService(store)


@pytest.fixture
def student(store) -> UserStats:
    stats = UserStats.fresh(uid="kid-1", email="kid1@example.com", display_name="Kid One", teacher_id="T1")
    store.merge_write("users", "kid-1", stats.to_document())
    return stats


@pytest.fixture
def teacher(store) -> UserStats:
    stats = UserStats.fresh(uid="teacher-uid", email="teach@example.com", display_name="Ms. Noor",
                            role=Role.TEACHER, doc_id="T1")
    store.merge_write("teachers", "T1", stats.to_document())
    return stats


@pytest.fixture
def today() -> date:
    return date(2026, 3, 10)


@pytest.fixture
def text_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def app(store, text_generator):
    from app import create_app

    app = create_app(
        {
            "TESTING": True,
            "PROFILE_STORE": "memory",
            "QUIZ_COUNTDOWN_ENABLED": False,
            "QUIZ_FEEDBACK_DELAY_SECONDS": 0,
            "TOKEN_VERIFIER": lambda token: {"uid": token, "email": f"{token}@example.com"},
            "TEXT_GENERATOR": text_generator,
        },
        store=store,
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def auth(uid: str) -> dict:
    return {"Authorization": f"Bearer {uid}"}
