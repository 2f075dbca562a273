from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from ..class_sessions.model import ClassSession, Learner
from ..core.enums import PresenceStatus
from ..roll_calls.model import Presence, RollCallStats

UNJUSTIFIED_STATUSES = frozenset({PresenceStatus.ABSENT, PresenceStatus.NOT_SIGNED})


@dataclass(frozen=True)
class AbsenceRecord:
    """Read-model: one presence of a learner together with its class session."""

    presence: Presence
    session: ClassSession

    @property
    def duration_minutes(self) -> int:
        return max(0, int((self.session.ends_at - self.session.starts_at).total_seconds() // 60))

    @property
    def is_unjustified_absence(self) -> bool:
        return self.presence.status in UNJUSTIFIED_STATUSES


@dataclass(frozen=True)
class AbsenceHours:
    justified: float
    unjustified: float

    @property
    def total(self) -> float:
        return round(self.justified + self.unjustified, 1)

    @classmethod
    def from_records(cls, records: Sequence[AbsenceRecord]) -> "AbsenceHours":
        justified = 0
        unjustified = 0
        for record in records:
            if record.presence.status == PresenceStatus.ABSENT_JUSTIFIED:
                justified += record.duration_minutes
            elif record.is_unjustified_absence:
                unjustified += record.duration_minutes
        return cls(justified=round(justified / 60, 1), unjustified=round(unjustified / 60, 1))


@dataclass(frozen=True)
class LearnerAbsenceSummary:
    learner: Learner
    stats: RollCallStats
    hours: AbsenceHours
    alert: bool = False

    @property
    def absence_count(self) -> int:
        return self.stats.absent + self.stats.not_signed


@dataclass(frozen=True)
class LearnerHistory:
    learner: Learner
    records: tuple[AbsenceRecord, ...]
    summary: LearnerAbsenceSummary
    start: date
    end: date
    status: Optional[PresenceStatus] = None


@dataclass(frozen=True)
class AbsenceReport:
    start: date
    end: date
    threshold_hours: float
    rows: tuple[LearnerAbsenceSummary, ...]

    @property
    def justified_hours(self) -> float:
        return round(sum(r.hours.justified for r in self.rows), 1)

    @property
    def unjustified_hours(self) -> float:
        return round(sum(r.hours.unjustified for r in self.rows), 1)

    @property
    def total_hours(self) -> float:
        return round(self.justified_hours + self.unjustified_hours, 1)

    @property
    def alert_count(self) -> int:
        return sum(1 for r in self.rows if r.alert)


@dataclass(frozen=True)
class BulkJustificationResult:
    justified: int
    ignored: int
