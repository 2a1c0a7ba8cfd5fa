# services/quiz_service/session.py
"""
One timed quiz run over a fixed list of problems.

Flow per question:
- correct answer                -> recorded correct, advance
- first wrong answer            -> stay on the question, skip becomes available
- second wrong answer           -> recorded wrong (with that answer), advance
- skip (after one wrong answer) -> recorded wrong, advance

The countdown runs for the whole session, independent of question progress.
When it reaches zero the session is timed out: the question in progress is
dropped and nothing is reported until the player restarts. Submissions and
countdown ticks go through the same lock.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging
import re
import threading
import uuid

from .models import AnsweredProblem, Difficulty, Operation, Problem, SessionResult

logger = logging.getLogger(__name__)

# ============================================================================
# Config
# ============================================================================
DEFAULT_DURATION_SECONDS = 120
TICK_INTERVAL_SECONDS = 1.0

_INT_RE = re.compile(r"^[+-]?\d+$")


class Phase(str, Enum):
    ACTIVE = "active"
    GRADED = "graded"
    TIMED_OUT = "timed_out"
    FINISHED = "finished"
    EXITED = "exited"


class SessionStateError(Exception):
    """Operation not allowed in the session's current phase."""


@dataclass(frozen=True)
class SubmitOutcome:
    accepted: bool
    is_correct: bool = False
    final: bool = False
    can_skip: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "isCorrect": self.is_correct,
            "final": self.final,
            "canSkip": self.can_skip,
        }


def parse_answer(raw: Any) -> Optional[int]:
    """Integer value of a typed answer, or None when there is nothing usable."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else None
    text = str(raw).strip()
    if not _INT_RE.match(text):
        return None
    return int(text)


# ============================================================================
# Countdown
# ============================================================================

class Countdown:
    """Calls `on_tick` once per interval on a daemon timer until stopped."""

    def __init__(self, on_tick: Callable[[], Any], interval: float = TICK_INTERVAL_SECONDS,
                 timer_factory=threading.Timer):
        self._on_tick = on_tick
        self._interval = interval
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._stopped = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._timer is not None and not self._stopped

    def start(self) -> None:
        with self._lock:
            if self._timer is not None or self._stopped:
                return
            self._schedule_locked()

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()

    def _schedule_locked(self) -> None:
        timer = self._timer_factory(self._interval, self._fire)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _fire(self) -> None:
        with self._lock:
            if self._stopped:
                return
        self._on_tick()
        with self._lock:
            if not self._stopped:
                self._schedule_locked()


# ============================================================================
# Session
# ============================================================================

class QuizSession:
    def __init__(
        self,
        problems: List[Problem],
        duration_seconds: int = DEFAULT_DURATION_SECONDS,
        feedback_delay: float = 0.0,
        on_finish: Optional[Callable[[SessionResult], Any]] = None,
        session_id: Optional[str] = None,
        difficulty: Optional[Difficulty] = None,
        operation: Optional[Operation] = None,
        timer_factory=threading.Timer,
    ):
        if not problems:
            raise ValueError("a quiz session needs at least one problem")
        self.session_id = session_id or uuid.uuid4().hex
        self.difficulty = difficulty
        self.operation = operation
        self._problems = list(problems)
        self._duration = int(duration_seconds)
        self._feedback_delay = float(feedback_delay)
        self._on_finish = on_finish
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._countdown: Optional[Countdown] = None
        self._pending_advance = None
        self._result: Optional[SessionResult] = None
        self._reset_locked()

    # ------------------------------------------------------------------ state

    def _reset_locked(self) -> None:
        self._index = 0
        self._attempts = 0
        self._last_entered: Optional[int] = None
        self._history: List[AnsweredProblem] = []
        self._remaining = self._duration
        self._last_feedback: Optional[str] = None
        self._phase = Phase.ACTIVE

    @property
    def problems(self) -> List[Problem]:
        return list(self._problems)

    @property
    def phase(self) -> Phase:
        with self._lock:
            return self._phase

    @property
    def current_index(self) -> int:
        with self._lock:
            return self._index

    @property
    def attempts_on_current(self) -> int:
        with self._lock:
            return self._attempts

    @property
    def remaining_seconds(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def history(self) -> tuple:
        with self._lock:
            return tuple(self._history)

    @property
    def result(self) -> Optional[SessionResult]:
        with self._lock:
            return self._result

    @property
    def can_skip(self) -> bool:
        with self._lock:
            return self._phase is Phase.ACTIVE and self._attempts > 0

    @property
    def current_problem(self) -> Optional[Problem]:
        with self._lock:
            if self._phase in (Phase.ACTIVE, Phase.GRADED):
                return self._problems[self._index]
            return None

    # ------------------------------------------------------------- lifecycle

    def start(self) -> None:
        """Attach and start the background countdown."""
        with self._lock:
            if self._phase is not Phase.ACTIVE:
                return
            if self._countdown is None:
                self._countdown = Countdown(self.tick, timer_factory=self._timer_factory)
            self._countdown.start()

    def exit(self) -> None:
        """Leave mid-session: stop timers, drop progress, report nothing."""
        with self._lock:
            if self._phase in (Phase.FINISHED, Phase.EXITED):
                return
            self._phase = Phase.EXITED
            self._cancel_pending_locked()
            self._stop_countdown_locked()
        logger.debug("quiz session %s exited", self.session_id)

    def restart_after_timeout(self) -> None:
        with self._lock:
            if self._phase is not Phase.TIMED_OUT:
                raise SessionStateError("restart is only allowed after the time ran out")
            restart_timer = self._countdown is not None
            self._countdown = None
            self._reset_locked()
        if restart_timer:
            self.start()

    # ------------------------------------------------------------ operations

    def submit_answer(self, raw: Any) -> SubmitOutcome:
        value = parse_answer(raw)
        finished = None
        with self._lock:
            if self._phase is not Phase.ACTIVE or value is None:
                return SubmitOutcome(accepted=False, can_skip=self._phase is Phase.ACTIVE and self._attempts > 0)

            problem = self._problems[self._index]
            self._last_entered = value

            if value == problem.correct_answer:
                self._history.append(AnsweredProblem(problem, value, True))
                self._last_feedback = "correct"
                outcome = SubmitOutcome(accepted=True, is_correct=True, final=True)
                finished = self._grade_and_advance_locked()
            elif self._attempts == 0:
                self._attempts = 1
                self._last_feedback = "try_again"
                outcome = SubmitOutcome(accepted=True, is_correct=False, final=False, can_skip=True)
            else:
                self._history.append(AnsweredProblem(problem, value, False))
                self._last_feedback = "incorrect"
                outcome = SubmitOutcome(accepted=True, is_correct=False, final=True)
                finished = self._grade_and_advance_locked()

        self._notify_finish(finished)
        return outcome

    def skip(self, raw: Any = None) -> None:
        """
        Give up on the current question after one wrong attempt.

        The recorded answer is `raw` when it parses, else the last submitted
        value, else 0.
        """
        with self._lock:
            if self._phase is not Phase.ACTIVE or self._attempts == 0:
                raise SessionStateError("skip is only allowed after a wrong attempt")
            typed = parse_answer(raw)
            answer = typed if typed is not None else (self._last_entered or 0)
            self._history.append(AnsweredProblem(self._problems[self._index], answer, False))
            self._last_feedback = "skipped"
            finished = self._advance_locked()
        self._notify_finish(finished)

    def tick(self, seconds: int = 1) -> int:
        with self._lock:
            if self._phase not in (Phase.ACTIVE, Phase.GRADED):
                return self._remaining
            self._remaining = max(0, self._remaining - seconds)
            if self._remaining == 0:
                self._time_out_locked()
            return self._remaining

    # --------------------------------------------------------------- helpers

    def _grade_and_advance_locked(self) -> Optional[SessionResult]:
        self._phase = Phase.GRADED
        if self._feedback_delay <= 0:
            return self._advance_locked()
        timer = self._timer_factory(self._feedback_delay, self._advance_after_feedback)
        timer.daemon = True
        self._pending_advance = timer
        timer.start()
        return None

    def _advance_after_feedback(self) -> None:
        with self._lock:
            if self._phase is not Phase.GRADED:
                return
            self._pending_advance = None
            finished = self._advance_locked()
        self._notify_finish(finished)

    def _advance_locked(self) -> Optional[SessionResult]:
        if self._index >= len(self._problems) - 1:
            return self._finish_locked()
        self._index += 1
        self._attempts = 0
        self._last_entered = None
        self._phase = Phase.ACTIVE
        return None

    def _finish_locked(self) -> SessionResult:
        history = tuple(self._history)
        self._result = SessionResult(
            score=sum(1 for h in history if h.is_correct),
            total_questions=len(self._problems),
            history=history,
            session_id=self.session_id,
            difficulty=self.difficulty,
            operation=self.operation,
        )
        self._phase = Phase.FINISHED
        self._stop_countdown_locked()
        return self._result

    def _time_out_locked(self) -> None:
        self._phase = Phase.TIMED_OUT
        self._attempts = 0
        self._last_entered = None
        self._cancel_pending_locked()
        self._stop_countdown_locked()
        logger.debug("quiz session %s timed out at question %d", self.session_id, self._index + 1)

    def _cancel_pending_locked(self) -> None:
        if self._pending_advance is not None:
            self._pending_advance.cancel()
            self._pending_advance = None

    def _stop_countdown_locked(self) -> None:
        if self._countdown is not None:
            self._countdown.stop()

    def _notify_finish(self, result: Optional[SessionResult]) -> None:
        if result is not None and self._on_finish is not None:
            self._on_finish(result)

    # ------------------------------------------------------------------ view

    def state(self) -> Dict[str, Any]:
        """JSON view for the client. Never includes the current answer."""
        with self._lock:
            current = None
            if self._phase in (Phase.ACTIVE, Phase.GRADED):
                current = self._problems[self._index].to_dict(include_answer=False)
            return {
                "sessionId": self.session_id,
                "phase": self._phase.value,
                "currentIndex": self._index,
                "totalQuestions": len(self._problems),
                "currentProblem": current,
                "attemptsOnCurrent": self._attempts,
                "canSkip": self._phase is Phase.ACTIVE and self._attempts > 0,
                "answered": len(self._history),
                "remainingSeconds": self._remaining,
                "durationSeconds": self._duration,
                "lastFeedback": self._last_feedback,
                "difficulty": self.difficulty.value if self.difficulty else None,
                "operation": self.operation.value if self.operation else None,
            }
