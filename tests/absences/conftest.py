from __future__ import annotations

import copy
from datetime import date, datetime, time
from types import SimpleNamespace
from typing import Optional, Sequence

import pytest

from cfa_attendance.absence_reasons.model import AbsenceReason
from cfa_attendance.absences.model import AbsenceRecord
from cfa_attendance.absences.service import AbsenceService
from cfa_attendance.class_sessions.model import ClassSession, Learner
from cfa_attendance.core.enums import PresenceStatus
from cfa_attendance.roll_calls.model import JUSTIFIABLE_STATUSES, Presence


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class InMemoryAbsences:
    def __init__(self, learners: list[Learner], sessions_by_roll_call: dict[int, ClassSession], presences: dict):
        self.learners = learners
        self.sessions_by_roll_call = sessions_by_roll_call
        self.presences = presences

    def get_learner(self, learner_id: int) -> Optional[Learner]:
        return next((l for l in self.learners if l.user_id == learner_id), None)

    def list_learners(self, *, search: Optional[str] = None) -> Sequence[Learner]:
        found = [
            l
            for l in self.learners
            if not search or search.lower() in f"{l.first_name} {l.last_name} {l.email}".lower()
        ]
        return sorted(found, key=lambda l: (l.last_name, l.first_name))

    def list_records(self, learner_ids: Sequence[int], start: date, end: date) -> Sequence[AbsenceRecord]:
        records = [
            AbsenceRecord(copy.deepcopy(p), self.sessions_by_roll_call[p.roll_call_id])
            for p in self.presences.values()
            if p.learner_id in learner_ids
            and start <= self.sessions_by_roll_call[p.roll_call_id].session_date <= end
        ]
        records.sort(key=lambda r: (r.session.starts_at, r.presence.presence_id), reverse=True)
        return records


class InMemoryPresences:
    def __init__(self, presences: dict):
        self.presences = presences

    def get_by_id(self, presence_id: int) -> Optional[Presence]:
        p = self.presences.get(presence_id)
        return copy.deepcopy(p) if p else None

    def record_justification(self, presence: Presence) -> bool:
        if self.presences[presence.presence_id].status not in JUSTIFIABLE_STATUSES:
            return False
        self.presences[presence.presence_id] = copy.deepcopy(presence)
        return True


class InMemoryReasons:
    def __init__(self, reasons: dict[int, AbsenceReason]):
        self.reasons = reasons

    def get_by_id(self, reason_id: int) -> Optional[AbsenceReason]:
        return self.reasons.get(reason_id)

    def list_active(self) -> Sequence[AbsenceReason]:
        return [r for r in self.reasons.values() if r.active]


def _session(class_session_id: int, day: date, start: time, end: time, label: str) -> ClassSession:
    return ClassSession(
        class_session_id=class_session_id,
        training_session_id=1,
        session_date=day,
        start_time=start,
        end_time=end,
        subject_label=label,
        instructor_ids=(7,),
    )


@pytest.fixture
def absences_env():
    alice = Learner(user_id=201, first_name="Alice", last_name="Durand", email="alice@cfa.local")
    bob = Learner(user_id=202, first_name="Bob", last_name="Martin", email="bob@cfa.local")

    sessions_by_roll_call = {
        1: _session(1, date(2026, 3, 2), time(8, 30), time(12, 0), "Algorithmique"),
        2: _session(2, date(2026, 3, 3), time(13, 30), time(17, 30), "Réseaux"),
        3: _session(3, date(2025, 6, 10), time(8, 0), time(10, 0), "Anglais"),
    }

    def presence(presence_id, learner_id, roll_call_id, status, **kwargs):
        return Presence(
            presence_id=presence_id,
            learner_id=learner_id,
            roll_call_id=roll_call_id,
            status=status,
            **kwargs,
        )

    presences = {
        1: presence(1, 201, 1, PresenceStatus.NOT_SIGNED, token="tok-1"),
        2: presence(2, 201, 2, PresenceStatus.ABSENT),
        3: presence(3, 202, 1, PresenceStatus.PRESENT, signed_at=datetime(2026, 3, 2, 8, 31)),
        4: presence(4, 202, 2, PresenceStatus.ABSENT_JUSTIFIED, absence_reason_id=1),
        5: presence(5, 201, 3, PresenceStatus.NOT_SIGNED, token="tok-5"),
    }

    absences = InMemoryAbsences([bob, alice], sessions_by_roll_call, presences)
    presence_repo = InMemoryPresences(presences)
    reasons = InMemoryReasons(
        {
            1: AbsenceReason(reason_id=1, label="Maladie", code="MALADIE"),
            2: AbsenceReason(reason_id=2, label="Ancien motif", code="ANCIEN", active=False),
        }
    )
    service = AbsenceService(absences, presence_repo, reasons, clock=FixedClock(datetime(2026, 3, 10, 10, 0)))
    return SimpleNamespace(
        service=service,
        presences=presences,
        presence_repo=presence_repo,
        absences=absences,
        alice=alice,
        bob=bob,
    )
