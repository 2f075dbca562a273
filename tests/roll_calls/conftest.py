from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date, datetime, time
from types import SimpleNamespace
from typing import Callable, Optional, Sequence

import pytest

from cfa_attendance.absence_reasons.model import AbsenceReason
from cfa_attendance.class_sessions.model import ClassSession, Learner
from cfa_attendance.core.enums import EmailKind, PresenceStatus
from cfa_attendance.mail.email_service import EmailResult
from cfa_attendance.roll_calls.model import JUSTIFIABLE_STATUSES, Presence, RollCall
from cfa_attendance.roll_calls.service import RollCallService

SESSION_DAY = date(2026, 3, 2)
REOPENABLE = (PresenceStatus.PENDING, PresenceStatus.NOT_SIGNED)
INSTRUCTOR_ID = 7


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int, second: int = 0) -> None:
        self.now = datetime.combine(self.now.date(), time(hour, minute, second))


class InMemoryStore:
    """Rows are stored as copies so services only see what they persisted."""

    def __init__(self):
        self.roll_calls: dict[int, RollCall] = {}
        self.presences: dict[int, Presence] = {}
        self._rc_seq = 0
        self._p_seq = 0

    def next_roll_call_id(self) -> int:
        self._rc_seq += 1
        return self._rc_seq

    def next_presence_id(self) -> int:
        self._p_seq += 1
        return self._p_seq

    def presences_of(self, roll_call_id: int) -> list[Presence]:
        return [p for p in self.presences.values() if p.roll_call_id == roll_call_id]


class InMemoryRollCalls:
    def __init__(self, store: InMemoryStore):
        self._store = store

    def _assemble(self, row: RollCall) -> RollCall:
        rc = copy.deepcopy(row)
        rc.presences = [copy.deepcopy(p) for p in self._store.presences_of(row.roll_call_id)]
        return rc

    def get_by_id(self, roll_call_id: int) -> Optional[RollCall]:
        row = self._store.roll_calls.get(roll_call_id)
        return self._assemble(row) if row else None

    def find_open_for_session(self, class_session_id: int) -> Optional[RollCall]:
        found = [r for r in self.list_for_session(class_session_id) if not r.closed]
        return found[0] if found else None

    def list_for_session(self, class_session_id: int) -> Sequence[RollCall]:
        rows = [r for r in self._store.roll_calls.values() if r.class_session_id == class_session_id]
        rows.sort(key=lambda r: (r.created_at, r.roll_call_id), reverse=True)
        return [self._assemble(r) for r in rows]

    def list_expired_open(self, now: datetime) -> Sequence[RollCall]:
        rows = [r for r in self._store.roll_calls.values() if not r.closed and r.expires_at <= now]
        return [self._assemble(r) for r in rows]

    def create(self, roll_call: RollCall) -> RollCall:
        roll_call.roll_call_id = self._store.next_roll_call_id()
        for p in roll_call.presences:
            p.roll_call_id = roll_call.roll_call_id
            p.presence_id = self._store.next_presence_id()
            self._store.presences[p.presence_id] = copy.deepcopy(p)
        row = copy.deepcopy(roll_call)
        row.presences = []
        self._store.roll_calls[roll_call.roll_call_id] = row
        return roll_call

    def mark_emails_sent(self, roll_call_id: int, *, at: datetime) -> None:
        row = self._store.roll_calls[roll_call_id]
        row.emails_sent = True
        row.emails_sent_at = at

    def close(self, roll_call_id: int, *, at: datetime) -> bool:
        row = self._store.roll_calls[roll_call_id]
        if row.closed:
            return False
        row.closed = True
        row.closed_at = at
        for p in self._store.presences_of(roll_call_id):
            if p.status == PresenceStatus.PENDING:
                p.status = PresenceStatus.NOT_SIGNED
                p.updated_at = at
        return True

    def reopen(self, roll_call: RollCall, presences: Sequence[Presence]) -> list[Presence]:
        row = self._store.roll_calls[roll_call.roll_call_id]
        row.closed = False
        row.closed_at = None
        row.expires_at = roll_call.expires_at
        stored = []
        for p in presences:
            if self._store.presences[p.presence_id].status in REOPENABLE:
                self._store.presences[p.presence_id] = copy.deepcopy(p)
                stored.append(p)
        return stored

    def delete(self, roll_call_id: int) -> bool:
        if roll_call_id not in self._store.roll_calls:
            return False
        del self._store.roll_calls[roll_call_id]
        for p in self._store.presences_of(roll_call_id):
            del self._store.presences[p.presence_id]
        return True


class InMemoryPresences:
    def __init__(self, store: InMemoryStore):
        self._store = store

    def get_by_id(self, presence_id: int) -> Optional[Presence]:
        p = self._store.presences.get(presence_id)
        return copy.deepcopy(p) if p else None

    def get_by_token(self, token: str) -> Optional[Presence]:
        for p in self._store.presences.values():
            if p.token == token:
                return copy.deepcopy(p)
        return None

    def token_exists(self, token: str) -> bool:
        return any(p.token == token for p in self._store.presences.values())

    def mark_emails_sent(self, presence_ids: Sequence[int], *, at: datetime) -> None:
        for presence_id in presence_ids:
            row = self._store.presences[presence_id]
            row.email_sent = True
            row.email_sent_at = at

    def record_justification(self, presence: Presence) -> bool:
        if self._store.presences[presence.presence_id].status not in JUSTIFIABLE_STATUSES:
            return False
        self._store.presences[presence.presence_id] = copy.deepcopy(presence)
        return True

    def expire_pending(self, roll_call_id: int, *, now: datetime) -> int:
        roll_call = self._store.roll_calls[roll_call_id]
        if roll_call.closed or roll_call.expires_at > now:
            return 0
        changed = 0
        for p in self._store.presences_of(roll_call_id):
            if p.status == PresenceStatus.PENDING:
                p.status = PresenceStatus.NOT_SIGNED
                p.updated_at = now
                changed += 1
        return changed

    def record_signature(self, presence: Presence, *, now: datetime) -> bool:
        stored = self._store.presences[presence.presence_id]
        roll_call = self._store.roll_calls.get(stored.roll_call_id)
        if stored.status != PresenceStatus.PENDING or roll_call is None:
            return False
        if roll_call.closed or roll_call.expires_at <= now:
            return False
        self._store.presences[presence.presence_id] = copy.deepcopy(presence)
        return True


@dataclass
class InMemoryClassSessions:
    sessions: dict[int, ClassSession]
    enrolled: dict[int, list[Learner]]

    def get_by_id(self, class_session_id: int) -> Optional[ClassSession]:
        return self.sessions.get(class_session_id)

    def list_for_day(self, day: date, *, instructor_id: Optional[int] = None) -> Sequence[ClassSession]:
        return [
            s
            for s in self.sessions.values()
            if s.session_date == day and (instructor_id is None or s.is_taught_by(instructor_id))
        ]

    def list_enrolled_learners(self, class_session: ClassSession) -> Sequence[Learner]:
        return list(self.enrolled.get(class_session.class_session_id, []))

    def get_learners_by_ids(self, ids: Sequence[int]) -> dict[int, Learner]:
        everyone = {l.user_id: l for learners in self.enrolled.values() for l in learners}
        return {i: everyone[i] for i in ids if i in everyone}


@dataclass
class InMemoryReasons:
    reasons: dict[int, AbsenceReason]

    def get_by_id(self, reason_id: int) -> Optional[AbsenceReason]:
        return self.reasons.get(reason_id)

    def list_active(self) -> Sequence[AbsenceReason]:
        return [r for r in self.reasons.values() if r.active]


@dataclass
class FakeNotifier:
    failing: set[int] = field(default_factory=set)
    raising: set[int] = field(default_factory=set)
    sent: list[tuple[int, EmailKind, str]] = field(default_factory=list)
    on_send: Optional[Callable[[int], None]] = None

    def send_signature_request(self, *, presence, roll_call, session, learner, kind) -> EmailResult:
        if self.on_send:
            self.on_send(learner.user_id)
        if learner.user_id in self.raising:
            raise RuntimeError("template exploded")
        if learner.user_id in self.failing:
            return EmailResult(False, "Échec de l'envoi : refused")
        self.sent.append((learner.user_id, kind, presence.token))
        return EmailResult(True, "Email envoyé")


def make_learners(count: int = 10, first_id: int = 101) -> list[Learner]:
    return [
        Learner(user_id=first_id + i, first_name=f"Prenom{i}", last_name=f"Nom{i:02d}", email=f"learner{i}@cfa.local")
        for i in range(count)
    ]


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2026, 3, 2, 8, 35))


@pytest.fixture
def class_session() -> ClassSession:
    return ClassSession(
        class_session_id=1,
        training_session_id=1,
        session_date=SESSION_DAY,
        start_time=time(8, 30),
        end_time=time(12, 0),
        subject_label="Algorithmique",
        instructor_ids=(INSTRUCTOR_ID,),
    )


@pytest.fixture
def env(clock, class_session):
    store = InMemoryStore()
    learners = make_learners()
    sessions = InMemoryClassSessions({1: class_session}, {1: learners})
    reasons = InMemoryReasons(
        {
            1: AbsenceReason(reason_id=1, label="Maladie", code="MALADIE"),
            2: AbsenceReason(reason_id=2, label="Ancien motif", code="ANCIEN", active=False),
        }
    )
    notifier = FakeNotifier()
    roll_calls = InMemoryRollCalls(store)
    presences = InMemoryPresences(store)
    service = RollCallService(roll_calls, presences, sessions, reasons, notifier, clock=clock)
    return SimpleNamespace(
        service=service,
        store=store,
        roll_calls=roll_calls,
        presences=presences,
        sessions=sessions,
        notifier=notifier,
        clock=clock,
        class_session=class_session,
        learners=learners,
    )
