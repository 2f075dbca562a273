from __future__ import annotations

from datetime import datetime

from ...class_sessions.model import ClassSession
from ...core.enums import PresenceStatus
from ..model import Presence
from ..time_windows import late_minutes_since
from .base import SignatureDecision, SignatureStrategy


class LateStrategy(SignatureStrategy):
    """Late signature.

    A latecomer reopened by the instructor keeps the lateness computed at reopen time.
    """

    def decide(self, *, now: datetime, session: ClassSession, presence: Presence) -> SignatureDecision:
        minutes = presence.late_minutes or late_minutes_since(session.starts_at, now)
        return SignatureDecision(status=PresenceStatus.LATE, late_minutes=minutes)
