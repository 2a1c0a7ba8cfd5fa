# services/quiz_service/leaderboard.py
from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Tuple
import threading

from .badges import unlocked_count
from .models import (
    LeaderboardEntry, Role, STUDENTS_COLLECTION, TEACHERS_COLLECTION, display_name_for,
)
from .store import ProfileStore

DEFAULT_LIMIT = 50
ORDER_FIELD = "totalCorrect"


def _entry(doc_id: str, data: Dict[str, Any], role: Role) -> LeaderboardEntry:
    total = int(data.get(ORDER_FIELD, 0) or 0)
    last_active = data.get("lastActive")
    return LeaderboardEntry(
        id=doc_id,
        display_name=data.get("displayName") or display_name_for(data.get("email")),
        role=role,
        total_correct=total,
        badges_count=unlocked_count(total),
        last_active=last_active.isoformat() if hasattr(last_active, "isoformat") else last_active,
        teacher_id=data.get("teacherId") or (doc_id if role is Role.TEACHER else None),
    )


def _rank(students, teachers, limit: int) -> List[LeaderboardEntry]:
    entries = [_entry(i, d, Role.STUDENT) for i, d in students]
    entries += [_entry(i, d, Role.TEACHER) for i, d in teachers]
    entries.sort(key=lambda e: (-e.total_correct, e.display_name))
    return entries[:limit]


def _teacher_where(teacher_id: Optional[str]):
    return ("teacherId", "==", teacher_id) if teacher_id else None


def get_leaderboard(store: ProfileStore, limit: int = DEFAULT_LIMIT,
                    teacher_id: Optional[str] = None) -> List[LeaderboardEntry]:
    """
    Players ordered by cumulative correct answers.

    With `teacher_id`, only that teacher's class and the teacher are listed.
    """
    where = _teacher_where(teacher_id)
    students = store.query_ordered(STUDENTS_COLLECTION, ORDER_FIELD, limit=limit, where=where)
    if teacher_id:
        doc = store.get_document(TEACHERS_COLLECTION, teacher_id)
        teachers = [(teacher_id, doc)] if doc and ORDER_FIELD in doc else []
    else:
        teachers = store.query_ordered(TEACHERS_COLLECTION, ORDER_FIELD, limit=limit)
    return _rank(students, teachers, limit)


def subscribe_leaderboard(
    store: ProfileStore,
    callback: Callable[[List[LeaderboardEntry]], None],
    limit: int = DEFAULT_LIMIT,
    teacher_id: Optional[str] = None,
) -> Callable[[], None]:
    """Push the recomputed leaderboard on every change of either collection."""
    lock = threading.Lock()
    latest: Dict[str, List[Tuple[str, Dict[str, Any]]]] = {"students": [], "teachers": []}

    def push(key: str, rows):
        with lock:
            if key == "teachers" and teacher_id:
                rows = [r for r in rows if r[0] == teacher_id]
            latest[key] = rows
            ranked = _rank(latest["students"], latest["teachers"], limit)
        callback(ranked)

    unsubscribers = [
        store.subscribe_ordered(STUDENTS_COLLECTION, ORDER_FIELD, lambda rows: push("students", rows),
                                limit=limit, where=_teacher_where(teacher_id)),
        store.subscribe_ordered(TEACHERS_COLLECTION, ORDER_FIELD, lambda rows: push("teachers", rows),
                                limit=None if teacher_id else limit),
    ]

    def unsubscribe():
        for unsub in unsubscribers:
            unsub()
    return unsubscribe
