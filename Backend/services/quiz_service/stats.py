# services/quiz_service/stats.py
"""
Loads player profiles, applies finished sessions and writes them back.

Local view of a profile = last snapshot read from the store, with every
session whose write has not been confirmed yet folded on top. Pending
sessions are only dropped after a successful write, so a stale remote
snapshot cannot hide the session the player just finished, while changes
made elsewhere still show through on the next read.
"""

from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import logging
import threading

from firebase_admin import firestore

from .models import (
    Role, SessionResult, UserStats, STUDENTS_COLLECTION, TEACHERS_COLLECTION,
    display_name_for,
)
from .reconciler import reconcile
from .store import ProfileStore

logger = logging.getLogger(__name__)

# Session ids remembered for the duplicate check, oldest forgotten first
MAX_APPLIED_SESSIONS = 10_000


@dataclass(frozen=True)
class SaveOutcome:
    saved: bool
    stats: Optional[UserStats]
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stats_saved": self.saved,
            "reason": self.reason,
            "stats": self.stats.to_dict() if self.stats else None,
        }


@dataclass(frozen=True)
class PendingSession:
    result: SessionResult
    today: date
    now: datetime


class ProfileCache:
    """Remote snapshot + sessions not yet confirmed by the store, per user."""

    def __init__(self):
        self._lock = threading.Lock()
        self._remote: Dict[str, UserStats] = {}
        self._pending: Dict[str, List[PendingSession]] = {}

    def _overlay_locked(self, uid: str) -> Optional[UserStats]:
        stats = self._remote.get(uid)
        if stats is None:
            return None
        for p in self._pending.get(uid, []):
            stats, _ = reconcile(p.result, stats, p.today, p.now)
        return stats

    def current(self, uid: str) -> Optional[UserStats]:
        with self._lock:
            return self._overlay_locked(uid)

    def pending(self, uid: str) -> Optional[UserStats]:
        """Local view while something is unconfirmed, else None."""
        with self._lock:
            if not self._pending.get(uid):
                return None
            return self._overlay_locked(uid)

    def on_remote_snapshot(self, uid: str, stats: UserStats) -> None:
        with self._lock:
            self._remote[uid] = stats

    def add_pending(self, uid: str, session: PendingSession) -> None:
        with self._lock:
            sessions = [p for p in self._pending.get(uid, [])
                        if p.result.session_id != session.result.session_id]
            sessions.append(session)
            self._pending[uid] = sessions

    def confirm(self, uid: str, session_id: str, stats: UserStats) -> None:
        """`stats` is the store's state right after the write of `session_id`."""
        with self._lock:
            self._remote[uid] = stats
            sessions = [p for p in self._pending.get(uid, []) if p.result.session_id != session_id]
            if sessions:
                self._pending[uid] = sessions
            else:
                self._pending.pop(uid, None)


class StatsService:
    def __init__(self, store: ProfileStore, max_applied_sessions: int = MAX_APPLIED_SESSIONS):
        self.store = store
        self.cache = ProfileCache()
        self.max_applied_sessions = max_applied_sessions
        self._applied: "OrderedDict[str, None]" = OrderedDict()
        self._applied_lock = threading.Lock()

    # ------------------------------------------------------------ profiles

    def load_profile(self, uid: str) -> Optional[UserStats]:
        """
        Read the user's profile from the store: a student document under users/{uid},
        otherwise a teacher document whose `uid` field matches.
        Returns None when the store fails or the document is absent or
        carries a role that does not match its collection.
        """
        try:
            data = self.store.get_document(STUDENTS_COLLECTION, uid)
            if data is not None:
                if data.get("role", Role.STUDENT.value) != Role.STUDENT.value:
                    logger.warning("User %s has role %r in %s", uid, data.get("role"), STUDENTS_COLLECTION)
                    return None
                stats = UserStats.from_document(uid, data, Role.STUDENT)
            else:
                row = self.store.find_one(TEACHERS_COLLECTION, "uid", uid)
                if row is None:
                    return None
                teacher_id, data = row
                if data.get("role", Role.TEACHER.value) != Role.TEACHER.value:
                    logger.warning("Teacher doc %s has role %r", teacher_id, data.get("role"))
                    return None
                stats = UserStats.from_document(teacher_id, data, Role.TEACHER)
        except Exception:
            logger.exception("Could not load profile for %s", uid)
            return None

        self.cache.on_remote_snapshot(uid, stats)
        return stats

    def current_profile(self, uid: str) -> Optional[UserStats]:
        """
        Fresh store snapshot with unconfirmed sessions folded on top. Falls
        back to the last known snapshot when the store cannot be read.
        """
        self.load_profile(uid)
        return self.cache.current(uid)

    def create_student(self, uid: str, email: str, display_name: str = "",
                       teacher_id: Optional[str] = None) -> UserStats:
        existing = self.store.get_document(STUDENTS_COLLECTION, uid)
        if existing is not None:
            stats = UserStats.from_document(uid, existing, Role.STUDENT)
        else:
            stats = UserStats.fresh(
                uid=uid,
                email=email,
                display_name=display_name or display_name_for(email),
                teacher_id=teacher_id,
            )
            doc = stats.to_document()
            doc["createdAt"] = firestore.SERVER_TIMESTAMP
            self.store.merge_write(STUDENTS_COLLECTION, uid, doc)
            logger.info("Created student profile %s", uid)
        self.cache.on_remote_snapshot(uid, stats)
        return stats

    def update_display_name(self, uid: str, display_name: str) -> Optional[UserStats]:
        remote = self.load_profile(uid)
        if remote is None:
            return None
        self.store.merge_write(remote.collection, remote.doc_id, {
            "displayName": display_name,
            "updatedAt": firestore.SERVER_TIMESTAMP,
        })
        self.cache.on_remote_snapshot(uid, remote.with_changes(display_name=display_name))
        return self.cache.current(uid)

    def fetch_teacher(self, teacher_id: str) -> Optional[UserStats]:
        data = self.store.get_document(TEACHERS_COLLECTION, teacher_id)
        if data is None:
            return None
        return UserStats.from_document(teacher_id, data, Role.TEACHER)

    # ------------------------------------------------------------ sessions

    def record_session(
        self,
        uid: str,
        result: SessionResult,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> SaveOutcome:
        """
        Apply a finished session to the user's stats.

        Nothing is written when the profile cannot be loaded. A failed write
        is logged and the optimistic snapshot is still returned; the session
        stays in the local view until the same result is recorded again.
        """
        now = now or datetime.now(timezone.utc)
        today = today or now.date()

        if not self._remember(result):
            logger.warning("Session %s already recorded for %s", result.session_id, uid)
            return SaveOutcome(saved=False, stats=self.cache.current(uid), reason="duplicate_session")

        previous = self.load_profile(uid)
        if previous is None:
            logger.warning("Stats not saved for %s: profile unavailable", uid)
            self._forget(result)
            return SaveOutcome(saved=False, stats=None, reason="profile_unavailable")

        updated, delta = reconcile(result, previous, today, now)
        self.cache.add_pending(uid, PendingSession(result, today, now))

        try:
            self.store.merge_write(updated.collection, updated.doc_id, delta)
        except Exception:
            logger.exception("Stats write failed for %s (session %s)", uid, result.session_id)
            self._forget(result)
            return SaveOutcome(saved=False, stats=self.cache.current(uid), reason="write_failed")

        self.cache.confirm(uid, result.session_id, updated)
        logger.info(
            "Recorded session %s for %s: %d/%d, total=%d streak=%d",
            result.session_id, uid, result.score, result.total_questions,
            updated.total_correct, updated.streak,
        )
        return SaveOutcome(saved=True, stats=self.cache.current(uid))

    def _remember(self, result: SessionResult) -> bool:
        """False when the session id was already applied."""
        if not result.session_id:
            return True
        with self._applied_lock:
            if result.session_id in self._applied:
                return False
            self._applied[result.session_id] = None
            while len(self._applied) > self.max_applied_sessions:
                self._applied.popitem(last=False)
        return True

    def _forget(self, result: SessionResult) -> None:
        if result.session_id:
            with self._applied_lock:
                self._applied.pop(result.session_id, None)


def last_7_days(stats: UserStats, today: date) -> List[Dict[str, Any]]:
    """Daily buckets for the last seven days, oldest first, zero-filled."""
    days = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        key = day.isoformat()
        bucket = stats.daily_history.get(key)
        days.append({
            "date": key,
            "weekday": day.strftime("%a"),
            "correct": bucket.correct if bucket else 0,
            "incorrect": bucket.incorrect if bucket else 0,
        })
    return days
