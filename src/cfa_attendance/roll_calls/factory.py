from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from ..class_sessions.model import ClassSession
from ..core.constants import DEFAULT_LATE_GRACE_MINUTES
from .model import Presence
from .strategies.base import SignatureStrategy
from .strategies.late_strategy import LateStrategy
from .strategies.on_time_strategy import OnTimeStrategy


@dataclass
class SignatureStrategyFactory:
    """Factory Pattern: choose the signature strategy from lateness rules."""

    grace_minutes: int = DEFAULT_LATE_GRACE_MINUTES

    def for_signature(self, *, now: datetime, session: ClassSession, presence: Presence) -> SignatureStrategy:
        if presence.is_latecomer():
            return LateStrategy()

        if now <= session.starts_at + timedelta(minutes=self.grace_minutes):
            return OnTimeStrategy()
        return LateStrategy()
