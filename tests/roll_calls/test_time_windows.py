from datetime import date, datetime, time

import pytest

from cfa_attendance.class_sessions.model import ClassSession
from cfa_attendance.roll_calls.time_windows import expiration_from, is_session_live, late_minutes_since

SESSION = ClassSession(
    class_session_id=1,
    training_session_id=1,
    session_date=date(2026, 3, 2),
    start_time=time(8, 30),
    end_time=time(12, 0),
)


@pytest.mark.parametrize(
    "now, live",
    [
        (datetime(2026, 3, 2, 8, 29, 59), False),
        (datetime(2026, 3, 2, 8, 30), True),
        (datetime(2026, 3, 2, 12, 0), True),
        (datetime(2026, 3, 2, 12, 0, 1), False),
        (datetime(2026, 3, 3, 9, 0), False),
    ],
)
def test_is_session_live_bounds(now, live):
    assert is_session_live(SESSION, now) is live


def test_expiration_is_capped_at_end_of_day():
    assert expiration_from(datetime(2026, 3, 2, 9, 0), 20) == datetime(2026, 3, 2, 9, 20)
    assert expiration_from(datetime(2026, 3, 2, 23, 50), 40) == datetime(2026, 3, 2, 23, 59, 59)


@pytest.mark.parametrize(
    "now, minutes",
    [
        (datetime(2026, 3, 2, 8, 31), 15),
        (datetime(2026, 3, 2, 8, 45), 15),
        (datetime(2026, 3, 2, 8, 46), 30),
        (datetime(2026, 3, 2, 9, 10), 45),
        (datetime(2026, 3, 2, 16, 0), 240),
    ],
)
def test_late_minutes_rounded_up_to_quarter_hours(now, minutes):
    assert late_minutes_since(SESSION.starts_at, now) == minutes
