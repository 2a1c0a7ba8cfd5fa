# services/quiz_service/reconciler.py
"""
Folds a finished quiz session into a player's stats snapshot.

Returns the updated snapshot together with the partial document to
merge-write. Cumulative totals are written as Firestore increments so two
sessions finishing at the same time both count. streak, the day's bucket and
the badge cache are computed from the snapshot that was read and are last
write wins: two concurrent sessions of one account can lose a streak or
daily-history update. Replaying a result against a stale snapshot is not
idempotent; callers apply each session once.
"""

from __future__ import annotations
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from firebase_admin import firestore

from .badges import derive_badges, unlocked_count
from .models import DailyStat, SessionResult, UserStats


def next_streak(previous: UserStats, today: date) -> int:
    last = previous.last_played_date
    if last == today:
        return previous.streak
    if last == today - timedelta(days=1):
        return previous.streak + 1
    return 1


def reconcile(
    result: SessionResult,
    previous: UserStats,
    today: date,
    now: Optional[datetime] = None,
) -> Tuple[UserStats, Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    added_correct = result.score
    added_incorrect = result.total_questions - result.score

    streak = next_streak(previous, today)

    day_key = today.isoformat()
    bucket = previous.daily_history.get(day_key) or DailyStat(date=day_key)
    bucket = DailyStat(
        date=day_key,
        correct=bucket.correct + added_correct,
        incorrect=bucket.incorrect + added_incorrect,
    )
    history = dict(previous.daily_history)
    history[day_key] = bucket

    total_correct = previous.total_correct + added_correct
    total_incorrect = previous.total_incorrect + added_incorrect
    last_active = now.isoformat()

    updated = previous.with_changes(
        total_correct=total_correct,
        total_incorrect=total_incorrect,
        streak=streak,
        last_played_date=today,
        last_active=last_active,
        daily_history=history,
    )

    delta = {
        "totalCorrect": firestore.Increment(added_correct),
        "totalIncorrect": firestore.Increment(added_incorrect),
        "streak": streak,
        # nested map: a merge write only replaces this day's entry
        "dailyHistory": {day_key: bucket.to_dict()},
        "badges": [b.to_dict() for b in derive_badges(total_correct)],
        "badgesCount": unlocked_count(total_correct),
        "lastPlayedDate": day_key,
        "lastActive": last_active,
        "updatedAt": firestore.SERVER_TIMESTAMP,
    }
    return updated, delta
