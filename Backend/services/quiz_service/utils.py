"""
Shared helpers for the quiz service: calendar days in the player's timezone.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str], default: str = "UTC"):
    """ZoneInfo for an IANA name; unknown names fall back to `default`."""
    for candidate in (name, default):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r", candidate)
    return timezone.utc


def today_in(tz_name: Optional[str], default: str = "UTC", now: Optional[datetime] = None) -> date:
    """Calendar day of `now` (default: current instant) in the player's timezone."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(resolve_timezone(tz_name, default)).date()
