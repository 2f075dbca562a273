from __future__ import annotations

from datetime import datetime

from ...class_sessions.model import ClassSession
from ...core.enums import PresenceStatus
from ..model import Presence
from .base import SignatureDecision, SignatureStrategy


class OnTimeStrategy(SignatureStrategy):
    """Signature within the grace period after session start."""

    def decide(self, *, now: datetime, session: ClassSession, presence: Presence) -> SignatureDecision:
        return SignatureDecision(status=PresenceStatus.PRESENT)
