from datetime import datetime

import pytest

from cfa_attendance.core.enums import PresenceStatus
from cfa_attendance.core.exceptions import StateConflictError
from cfa_attendance.roll_calls.model import ALLOWED_TRANSITIONS, Presence, RollCall, RollCallStats

NOW = datetime(2026, 3, 2, 9, 0)


def test_absent_presence_cannot_carry_a_token():
    with pytest.raises(ValueError):
        Presence(learner_id=1, status=PresenceStatus.ABSENT, token="abc")


def test_absent_is_never_a_transition_target():
    assert PresenceStatus.ABSENT not in ALLOWED_TRANSITIONS
    assert not Presence(learner_id=1).can_transition_to(PresenceStatus.ABSENT)


@pytest.mark.parametrize(
    "source, target, allowed",
    [
        (PresenceStatus.PENDING, PresenceStatus.PRESENT, True),
        (PresenceStatus.PENDING, PresenceStatus.LATE, True),
        (PresenceStatus.PENDING, PresenceStatus.NOT_SIGNED, True),
        (PresenceStatus.NOT_SIGNED, PresenceStatus.ABSENT_JUSTIFIED, True),
        (PresenceStatus.ABSENT, PresenceStatus.ABSENT_JUSTIFIED, True),
        (PresenceStatus.NOT_SIGNED, PresenceStatus.PENDING, True),
        (PresenceStatus.PRESENT, PresenceStatus.ABSENT_JUSTIFIED, False),
        (PresenceStatus.LATE, PresenceStatus.PENDING, False),
        (PresenceStatus.NOT_SIGNED, PresenceStatus.PRESENT, False),
        (PresenceStatus.ABSENT_JUSTIFIED, PresenceStatus.PENDING, False),
    ],
)
def test_transition_table(source, target, allowed):
    presence = Presence(learner_id=1, status=source)

    assert presence.can_transition_to(target) is allowed
    if not allowed:
        with pytest.raises(StateConflictError):
            presence.transition_to(target)
        assert presence.status == source


def test_sign_records_signer_and_requires_a_token():
    presence = Presence(learner_id=1, token="t" * 43)

    presence.sign(PresenceStatus.LATE, at=NOW, ip="127.0.0.1", user_agent="ua", late_minutes=30)

    assert presence.status == PresenceStatus.LATE
    assert presence.signed_at == NOW
    assert presence.late_minutes == 30
    assert presence.has_signed()

    with pytest.raises(StateConflictError):
        Presence(learner_id=2).sign(PresenceStatus.PRESENT, at=NOW, ip="x", user_agent="y")


def test_reopen_for_latecomer_resets_email_state():
    presence = Presence(learner_id=1, status=PresenceStatus.NOT_SIGNED, token="old", email_sent=True, email_sent_at=NOW)

    presence.reopen_for_latecomer(token="new", late_minutes=45, at=NOW)

    assert presence.status == PresenceStatus.PENDING
    assert presence.token == "new"
    assert presence.is_latecomer()
    assert presence.email_sent is False
    assert presence.email_sent_at is None


def test_roll_call_expiry_and_close():
    roll_call = RollCall(class_session_id=1, instructor_id=7, created_at=NOW, expires_at=datetime(2026, 3, 2, 9, 20))

    assert roll_call.links_valid(datetime(2026, 3, 2, 9, 19, 59))
    assert roll_call.is_expired(datetime(2026, 3, 2, 9, 20))

    roll_call.close(at=NOW)
    assert not roll_call.links_valid(NOW)
    with pytest.raises(StateConflictError):
        roll_call.close(at=NOW)


def test_stats_attendance_rate():
    presences = [Presence(learner_id=i, status=PresenceStatus.PRESENT) for i in range(3)]
    presences += [Presence(learner_id=10, status=PresenceStatus.LATE)]
    presences += [Presence(learner_id=20 + i, status=PresenceStatus.NOT_SIGNED) for i in range(2)]

    stats = RollCallStats.from_presences(presences)

    assert stats.attended == 4
    assert stats.attendance_rate == 66.7
    assert stats.as_dict()["notSigned"] == 2
    assert RollCallStats.from_presences([]).attendance_rate == 0.0
