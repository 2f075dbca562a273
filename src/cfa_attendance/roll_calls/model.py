from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.enums import PresenceStatus
from ..core.exceptions import StateConflictError

# Allowed source statuses per target status. `absent` is only ever set when the
# record is built, it is never the target of a transition.
ALLOWED_TRANSITIONS: dict[PresenceStatus, frozenset[PresenceStatus]] = {
    PresenceStatus.PRESENT: frozenset({PresenceStatus.PENDING}),
    PresenceStatus.LATE: frozenset({PresenceStatus.PENDING}),
    PresenceStatus.NOT_SIGNED: frozenset({PresenceStatus.PENDING}),
    PresenceStatus.ABSENT_JUSTIFIED: frozenset({PresenceStatus.ABSENT, PresenceStatus.NOT_SIGNED}),
    PresenceStatus.PENDING: frozenset({PresenceStatus.PENDING, PresenceStatus.NOT_SIGNED}),
}

JUSTIFIABLE_STATUSES = ALLOWED_TRANSITIONS[PresenceStatus.ABSENT_JUSTIFIED]


@dataclass
class Presence:
    """Domain entity: one learner's attendance record within a roll-call.

    Status only changes through `transition_to`, which checks the source status
    against ALLOWED_TRANSITIONS.
    """

    learner_id: int
    status: PresenceStatus = PresenceStatus.PENDING
    token: Optional[str] = None
    roll_call_id: Optional[int] = None
    presence_id: Optional[int] = None
    signed_at: Optional[datetime] = None
    signer_ip: Optional[str] = None
    signer_user_agent: Optional[str] = None
    email_sent: bool = False
    email_sent_at: Optional[datetime] = None
    absence_reason_id: Optional[int] = None
    justification_comment: Optional[str] = None
    late_minutes: Optional[int] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.status == PresenceStatus.ABSENT and self.token is not None:
            raise ValueError("An absent presence never carries a signature token")

    def can_transition_to(self, target: PresenceStatus) -> bool:
        return self.status in ALLOWED_TRANSITIONS.get(target, frozenset())

    def transition_to(self, target: PresenceStatus, *, at: Optional[datetime] = None) -> None:
        if not self.can_transition_to(target):
            raise StateConflictError(
                f"Transition interdite : {self.status.label} → {target.label}"
            )
        self.status = target
        if at is not None:
            self.updated_at = at

    def has_signed(self) -> bool:
        return self.signed_at is not None and self.status.counts_as_present

    def is_latecomer(self) -> bool:
        """Reopened for a latecomer and not signed yet."""
        return bool(self.late_minutes) and self.status == PresenceStatus.PENDING

    def can_be_justified(self) -> bool:
        return self.status in JUSTIFIABLE_STATUSES

    def sign(self, status: PresenceStatus, *, at: datetime, ip: str, user_agent: str, late_minutes: Optional[int] = None) -> None:
        if status not in (PresenceStatus.PRESENT, PresenceStatus.LATE):
            raise ValueError(f"Not a signature status: {status!r}")
        if self.token is None:
            raise StateConflictError("Aucun lien de signature pour cette présence")
        self.transition_to(status, at=at)
        self.signed_at = at
        self.signer_ip = ip
        self.signer_user_agent = user_agent
        if status == PresenceStatus.LATE:
            self.late_minutes = late_minutes or self.late_minutes

    def reopen_for_latecomer(self, *, token: str, late_minutes: int, at: datetime) -> None:
        self.transition_to(PresenceStatus.PENDING, at=at)
        self.token = token
        self.late_minutes = late_minutes
        self.email_sent = False
        self.email_sent_at = None

    def justify(self, *, reason_id: Optional[int], comment: Optional[str], at: datetime) -> None:
        self.transition_to(PresenceStatus.ABSENT_JUSTIFIED, at=at)
        self.absence_reason_id = reason_id
        self.justification_comment = comment


@dataclass
class RollCall:
    """Domain entity: a roll-call (appel) for one class session."""

    class_session_id: int
    instructor_id: int
    created_at: datetime
    expires_at: datetime
    roll_call_id: Optional[int] = None
    emails_sent: bool = False
    emails_sent_at: Optional[datetime] = None
    closed: bool = False
    closed_at: Optional[datetime] = None
    comment: Optional[str] = None
    presences: list[Presence] = field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def links_valid(self, now: datetime) -> bool:
        return not self.closed and not self.is_expired(now)

    def close(self, *, at: datetime) -> None:
        if self.closed:
            raise StateConflictError("Cet appel est déjà clôturé.")
        self.closed = True
        self.closed_at = at

    def reopen(self, *, expires_at: datetime) -> None:
        self.closed = False
        self.closed_at = None
        self.expires_at = expires_at

    def presence_for(self, learner_id: int) -> Optional[Presence]:
        for p in self.presences:
            if p.learner_id == int(learner_id):
                return p
        return None

    def pending(self) -> list[Presence]:
        return [p for p in self.presences if p.status == PresenceStatus.PENDING]

    @property
    def pending_count(self) -> int:
        return len(self.pending())

    def statistics(self) -> "RollCallStats":
        return RollCallStats.from_presences(self.presences)


@dataclass(frozen=True)
class RollCallStats:
    total: int
    present: int
    late: int
    absent: int
    absent_justified: int
    pending: int
    not_signed: int

    @property
    def attended(self) -> int:
        """Present plus late: both are signed attendance."""
        return self.present + self.late

    @property
    def attendance_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.attended / self.total * 100, 1)

    @classmethod
    def from_presences(cls, presences: list[Presence]) -> "RollCallStats":
        counts = {s: 0 for s in PresenceStatus}
        for p in presences:
            counts[p.status] += 1
        return cls(
            total=len(presences),
            present=counts[PresenceStatus.PRESENT],
            late=counts[PresenceStatus.LATE],
            absent=counts[PresenceStatus.ABSENT],
            absent_justified=counts[PresenceStatus.ABSENT_JUSTIFIED],
            pending=counts[PresenceStatus.PENDING],
            not_signed=counts[PresenceStatus.NOT_SIGNED],
        )

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "present": self.present,
            "late": self.late,
            "absent": self.absent,
            "absentJustified": self.absent_justified,
            "pending": self.pending,
            "notSigned": self.not_signed,
            "attended": self.attended,
            "attendanceRate": self.attendance_rate,
        }
