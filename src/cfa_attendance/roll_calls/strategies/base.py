from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...class_sessions.model import ClassSession
from ...core.enums import PresenceStatus
from ..model import Presence


@dataclass(frozen=True)
class SignatureDecision:
    status: PresenceStatus
    late_minutes: Optional[int] = None


class SignatureStrategy(ABC):
    """Strategy Pattern: decide the status a signature establishes."""

    @abstractmethod
    def decide(self, *, now: datetime, session: ClassSession, presence: Presence) -> SignatureDecision:
        raise NotImplementedError
