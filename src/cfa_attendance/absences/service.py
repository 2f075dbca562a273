from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Optional, Sequence

from ..absence_reasons.model import AbsenceReason
from ..absence_reasons.repository import AbsenceReasonRepository
from ..class_sessions.model import Learner
from ..common.datetime_utils import Clock, now_local, school_year_start
from ..common.validators import optional_text
from ..core.constants import DEFAULT_ABSENCE_ALERT_HOURS
from ..core.enums import PresenceStatus
from ..core.exceptions import NotFoundError, ValidationError
from ..roll_calls.model import RollCallStats
from ..roll_calls.repository import PresenceRepository
from .model import (
    AbsenceHours,
    AbsenceRecord,
    AbsenceReport,
    BulkJustificationResult,
    LearnerAbsenceSummary,
    LearnerHistory,
)
from .repository import AbsenceRepository

logger = logging.getLogger(__name__)

REPORT_CSV_FIELDS = [
    "last_name",
    "first_name",
    "email",
    "justified_hours",
    "unjustified_hours",
    "total_hours",
    "attendance_rate",
    "alert",
]


class AbsenceService:
    """Per-learner absence follow-up: history, bulk justification and period report.

    Reads the presences written by roll-calls; the only write is justification,
    which goes through the same guarded repository call as a single justification.
    """

    def __init__(
        self,
        absences: AbsenceRepository,
        presences: PresenceRepository,
        absence_reasons: AbsenceReasonRepository,
        *,
        clock: Clock = now_local,
    ):
        self._absences = absences
        self._presences = presences
        self._reasons = absence_reasons
        self._clock = clock

    def default_period(self) -> tuple[date, date]:
        today = self._clock().date()
        return school_year_start(today), today

    def _period(self, start: Optional[date], end: Optional[date]) -> tuple[date, date]:
        default_start, default_end = self.default_period()
        start = start or default_start
        end = end or default_end
        if start > end:
            raise ValidationError("La date de début doit précéder la date de fin.")
        return start, end

    def get_learner(self, learner_id: int) -> Learner:
        learner = self._absences.get_learner(int(learner_id))
        if not learner:
            raise NotFoundError("Apprenti introuvable")
        return learner

    def list_absence_reasons(self) -> Sequence[AbsenceReason]:
        return self._reasons.list_active()

    def _summaries(
        self,
        learners: Sequence[Learner],
        start: date,
        end: date,
        threshold_hours: Optional[float] = None,
    ) -> list[LearnerAbsenceSummary]:
        by_learner: dict[int, list[AbsenceRecord]] = defaultdict(list)
        for record in self._absences.list_records([l.user_id for l in learners], start, end):
            by_learner[record.presence.learner_id].append(record)

        summaries = []
        for learner in learners:
            records = by_learner.get(learner.user_id, [])
            hours = AbsenceHours.from_records(records)
            summaries.append(
                LearnerAbsenceSummary(
                    learner=learner,
                    stats=RollCallStats.from_presences([r.presence for r in records]),
                    hours=hours,
                    alert=threshold_hours is not None and hours.unjustified >= threshold_hours,
                )
            )
        return summaries

    def list_learner_summaries(
        self,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        search: Optional[str] = None,
        min_hours: Optional[float] = None,
    ) -> list[LearnerAbsenceSummary]:
        """Learners with their counters over the period, most absences first."""
        start, end = self._period(start, end)
        learners = self._absences.list_learners(search=optional_text(search))
        rows = self._summaries(learners, start, end)
        if min_hours is not None:
            rows = [r for r in rows if r.hours.unjustified >= min_hours]
        rows.sort(key=lambda r: (-r.absence_count, r.learner.last_name, r.learner.first_name))
        return rows

    def learner_history(
        self,
        learner_id: int,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[PresenceStatus] = None,
    ) -> LearnerHistory:
        learner = self.get_learner(learner_id)
        start, end = self._period(start, end)
        records = list(self._absences.list_records([learner.user_id], start, end))
        summary = LearnerAbsenceSummary(
            learner=learner,
            stats=RollCallStats.from_presences([r.presence for r in records]),
            hours=AbsenceHours.from_records(records),
        )
        if status is not None:
            records = [r for r in records if r.presence.status == status]
        return LearnerHistory(
            learner=learner,
            records=tuple(records),
            summary=summary,
            start=start,
            end=end,
            status=status,
        )

    def justify_absences(
        self,
        learner_id: int,
        presence_ids: Iterable[int],
        reason_id: Optional[int],
        comment: Optional[str] = None,
    ) -> BulkJustificationResult:
        """Justify several absences of one learner with the same reason.

        Presences that are unknown, belong to another learner or are not an
        absence any more are counted as ignored; the others are justified.
        """
        learner = self.get_learner(learner_id)
        ids = list(dict.fromkeys(int(x) for x in presence_ids))
        if not ids:
            raise ValidationError("Veuillez sélectionner au moins une absence à justifier.")
        if reason_id is None:
            raise ValidationError("Veuillez sélectionner un motif d'absence.")

        reason = self._reasons.get_by_id(int(reason_id))
        if not reason:
            raise NotFoundError("Motif d'absence introuvable")
        if not reason.active:
            raise ValidationError("Ce motif d'absence n'est plus utilisable.")

        comment = optional_text(comment)
        now = self._clock()
        justified = 0
        ignored = 0
        for presence_id in ids:
            presence = self._presences.get_by_id(presence_id)
            if presence is None or presence.learner_id != learner.user_id or not presence.can_be_justified():
                ignored += 1
                continue
            presence.justify(reason_id=reason.reason_id, comment=comment, at=now)
            if self._presences.record_justification(presence):
                justified += 1
            else:
                ignored += 1

        logger.info(
            "Bulk justification for learner %s: %d justified, %d ignored (reason=%s)",
            learner.user_id,
            justified,
            ignored,
            reason.code,
        )
        return BulkJustificationResult(justified=justified, ignored=ignored)

    def build_report(
        self,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        threshold_hours: float = DEFAULT_ABSENCE_ALERT_HOURS,
    ) -> AbsenceReport:
        start, end = self._period(start, end)
        rows = self._summaries(self._absences.list_learners(), start, end, threshold_hours)
        rows.sort(key=lambda r: (-r.hours.unjustified, r.learner.last_name, r.learner.first_name))
        return AbsenceReport(start=start, end=end, threshold_hours=threshold_hours, rows=tuple(rows))

    @staticmethod
    def report_csv_rows(report: AbsenceReport) -> list[dict]:
        return [
            {
                "last_name": r.learner.last_name,
                "first_name": r.learner.first_name,
                "email": r.learner.email,
                "justified_hours": f"{r.hours.justified:.1f}",
                "unjustified_hours": f"{r.hours.unjustified:.1f}",
                "total_hours": f"{r.hours.total:.1f}",
                "attendance_rate": f"{r.stats.attendance_rate:.1f}",
                "alert": "oui" if r.alert else "non",
            }
            for r in report.rows
        ]
