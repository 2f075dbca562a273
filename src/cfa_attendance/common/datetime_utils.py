from __future__ import annotations

from datetime import date, datetime, time
from typing import Callable, Optional

from ..core.exceptions import ValidationError

Clock = Callable[[], datetime]


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so services can receive it as an injectable clock.
    """
    return datetime.now()


def end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time(23, 59, 59))


def format_fr(moment: datetime | None) -> str:
    """dd/mm/YYYY à HH:MM, as displayed to learners."""
    if moment is None:
        return "-"
    return moment.strftime("%d/%m/%Y à %H:%M")


def parse_iso_date(value: Optional[str], default: date) -> date:
    """YYYY-MM-DD query parameter, or `default` when blank."""
    value = (value or "").strip()
    if not value:
        return default
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Date invalide : {value!r} (format attendu AAAA-MM-JJ)")


def school_year_start(today: date) -> date:
    """1 September of the current school year."""
    year = today.year if today.month >= 9 else today.year - 1
    return date(year, 9, 1)
