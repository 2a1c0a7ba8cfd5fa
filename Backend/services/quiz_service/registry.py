# services/quiz_service/registry.py
"""
Live quiz sessions of the API process, one per user.

When a session finishes (from a request or from the feedback-delay timer)
its result is applied to the player's stats exactly once and kept so the
client can fetch it and ask for feedback.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging
import threading

from .models import Difficulty, Operation, Problem, SessionResult
from .session import QuizSession
from .stats import SaveOutcome, StatsService
from .utils import today_in

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinishedSession:
    result: SessionResult
    outcome: SaveOutcome


class SessionRegistry:
    def __init__(self, stats: StatsService, countdown_enabled: bool = True,
                 feedback_delay: float = 0.0, default_timezone: str = "UTC"):
        self.stats = stats
        self.countdown_enabled = countdown_enabled
        self.feedback_delay = feedback_delay
        self.default_timezone = default_timezone
        self._lock = threading.Lock()
        self._live: Dict[str, QuizSession] = {}
        self._finished: Dict[str, FinishedSession] = {}

    def start(self, uid: str, problems: List[Problem], duration_seconds: int,
              difficulty: Difficulty, operation: Operation, tz_name: Optional[str] = None) -> QuizSession:
        def on_finish(result: SessionResult):
            self._on_finish(uid, session, result, tz_name)

        session = QuizSession(
            problems,
            duration_seconds=duration_seconds,
            feedback_delay=self.feedback_delay,
            on_finish=on_finish,
            difficulty=difficulty,
            operation=operation,
        )
        with self._lock:
            previous = self._live.pop(uid, None)
            self._live[uid] = session
        if previous is not None:
            previous.exit()
        if self.countdown_enabled:
            session.start()
        logger.info("Started quiz session %s for %s (%s/%s, %d problems)",
                    session.session_id, uid, difficulty.value, operation.value, len(problems))
        return session

    def get(self, uid: str) -> Optional[QuizSession]:
        with self._lock:
            return self._live.get(uid)

    def exit(self, uid: str) -> bool:
        with self._lock:
            session = self._live.pop(uid, None)
        if session is None:
            return False
        session.exit()
        return True

    def finished(self, uid: str) -> Optional[FinishedSession]:
        with self._lock:
            return self._finished.get(uid)

    def _on_finish(self, uid: str, session: QuizSession, result: SessionResult, tz_name: Optional[str]) -> None:
        with self._lock:
            if self._live.get(uid) is session:
                del self._live[uid]
        outcome = self.stats.record_session(uid, result, today=today_in(tz_name, self.default_timezone))
        with self._lock:
            self._finished[uid] = FinishedSession(result=result, outcome=outcome)
