from datetime import date, datetime, time

from cfa_attendance.class_sessions.model import ClassSession
from cfa_attendance.core.enums import PresenceStatus
from cfa_attendance.roll_calls.factory import SignatureStrategyFactory
from cfa_attendance.roll_calls.model import Presence
from cfa_attendance.roll_calls.strategies.late_strategy import LateStrategy
from cfa_attendance.roll_calls.strategies.on_time_strategy import OnTimeStrategy

SESSION = ClassSession(
    class_session_id=1,
    training_session_id=1,
    session_date=date(2026, 3, 2),
    start_time=time(8, 30),
    end_time=time(12, 0),
)


def test_factory_signature_within_grace_is_on_time():
    presence = Presence(learner_id=1, token="t")
    now = datetime(2026, 3, 2, 8, 45)

    strategy = SignatureStrategyFactory(grace_minutes=15).for_signature(now=now, session=SESSION, presence=presence)

    assert isinstance(strategy, OnTimeStrategy)
    assert strategy.decide(now=now, session=SESSION, presence=presence).status == PresenceStatus.PRESENT


def test_factory_signature_after_grace_is_late():
    presence = Presence(learner_id=1, token="t")
    now = datetime(2026, 3, 2, 8, 45, 1)

    strategy = SignatureStrategyFactory(grace_minutes=15).for_signature(now=now, session=SESSION, presence=presence)
    decision = strategy.decide(now=now, session=SESSION, presence=presence)

    assert isinstance(strategy, LateStrategy)
    assert decision.status == PresenceStatus.LATE
    assert decision.late_minutes == 30


def test_factory_latecomer_keeps_reopen_lateness():
    presence = Presence(learner_id=1, token="t", late_minutes=45)
    now = datetime(2026, 3, 2, 8, 40)

    strategy = SignatureStrategyFactory().for_signature(now=now, session=SESSION, presence=presence)
    decision = strategy.decide(now=now, session=SESSION, presence=presence)

    assert isinstance(strategy, LateStrategy)
    assert decision.late_minutes == 45
