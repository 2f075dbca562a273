"""Pure time-window rules. Every function takes `now` explicitly."""
from __future__ import annotations

import math
from datetime import datetime, timedelta

from ..class_sessions.model import ClassSession
from ..common.datetime_utils import end_of_day
from ..core.constants import LATE_BLOCK_MINUTES, MAX_LATE_MINUTES


def is_session_live(session: ClassSession, now: datetime) -> bool:
    """True when `now` is on the session date, between start and end (inclusive)."""
    if session.session_date != now.date():
        return False
    return session.starts_at <= now <= session.ends_at


def expiration_from(now: datetime, minutes: int) -> datetime:
    """now + minutes, never past the end of the current day."""
    return min(now + timedelta(minutes=int(minutes)), end_of_day(now))


def late_minutes_since(start: datetime, now: datetime) -> int:
    """Lateness in 15-minute blocks: a started block counts as a full block.

    Bounded to [15, 240].
    """
    elapsed = (now - start).total_seconds() / 60
    minutes = math.ceil(elapsed / LATE_BLOCK_MINUTES) * LATE_BLOCK_MINUTES
    return max(LATE_BLOCK_MINUTES, min(MAX_LATE_MINUTES, minutes))
