from __future__ import annotations

from datetime import date

import pytest

from cfa_attendance.core.enums import PresenceStatus
from cfa_attendance.core.exceptions import NotFoundError, ValidationError


def test_summaries_cover_the_school_year_and_sort_by_absences(absences_env):
    rows = absences_env.service.list_learner_summaries()

    assert [r.learner.user_id for r in rows] == [201, 202]
    alice, bob = rows
    assert alice.absence_count == 2
    assert (alice.hours.justified, alice.hours.unjustified, alice.hours.total) == (0.0, 7.5, 7.5)
    assert alice.stats.attendance_rate == 0.0
    assert bob.absence_count == 0
    assert (bob.hours.justified, bob.hours.unjustified) == (4.0, 0.0)
    assert bob.stats.attendance_rate == 50.0


def test_summaries_filters(absences_env):
    assert [r.learner.user_id for r in absences_env.service.list_learner_summaries(min_hours=5)] == [201]
    assert [r.learner.user_id for r in absences_env.service.list_learner_summaries(search="martin")] == [202]

    earlier = absences_env.service.list_learner_summaries(start=date(2025, 1, 1), end=date(2025, 12, 31))
    assert [(r.learner.user_id, r.hours.unjustified) for r in earlier] == [(201, 2.0), (202, 0.0)]

    with pytest.raises(ValidationError):
        absences_env.service.list_learner_summaries(start=date(2026, 3, 5), end=date(2026, 3, 1))


def test_learner_history_with_status_filter(absences_env):
    history = absences_env.service.learner_history(201, status=PresenceStatus.NOT_SIGNED)

    assert [r.presence.presence_id for r in history.records] == [1]
    assert history.summary.absence_count == 2
    assert (history.start, history.end) == (date(2025, 9, 1), date(2026, 3, 10))

    everything = absences_env.service.learner_history(201)
    assert [r.presence.presence_id for r in everything.records] == [2, 1]
    assert everything.records[0].duration_minutes == 240

    with pytest.raises(NotFoundError):
        absences_env.service.learner_history(999)


def test_justify_absences_reports_justified_and_ignored(absences_env):
    result = absences_env.service.justify_absences(201, [1, 2, 3, 99, 5, 1], 1, "  certificat  ")

    assert (result.justified, result.ignored) == (3, 2)
    for presence_id in (1, 2, 5):
        p = absences_env.presences[presence_id]
        assert p.status == PresenceStatus.ABSENT_JUSTIFIED
        assert p.absence_reason_id == 1
        assert p.justification_comment == "certificat"
    assert absences_env.presences[3].status == PresenceStatus.PRESENT

    again = absences_env.service.justify_absences(201, [1, 2], 1)
    assert (again.justified, again.ignored) == (0, 2)


def test_justify_absences_input_rules(absences_env):
    with pytest.raises(ValidationError):
        absences_env.service.justify_absences(201, [], 1)
    with pytest.raises(ValidationError):
        absences_env.service.justify_absences(201, [1], None)
    with pytest.raises(NotFoundError):
        absences_env.service.justify_absences(201, [1], 42)
    with pytest.raises(ValidationError):
        absences_env.service.justify_absences(201, [1], 2)
    with pytest.raises(NotFoundError):
        absences_env.service.justify_absences(999, [1], 1)

    assert absences_env.presences[1].status == PresenceStatus.NOT_SIGNED


def test_justify_absences_skips_a_presence_changed_after_it_was_read(absences_env):
    real_record = absences_env.presence_repo.record_justification

    def reopened_first(presence):
        absences_env.presences[presence.presence_id].status = PresenceStatus.PENDING
        return real_record(presence)

    absences_env.presence_repo.record_justification = reopened_first

    result = absences_env.service.justify_absences(201, [1], 1)

    assert (result.justified, result.ignored) == (0, 1)
    assert absences_env.presences[1].status == PresenceStatus.PENDING


def test_report_flags_learners_over_the_threshold(absences_env):
    report = absences_env.service.build_report(threshold_hours=7.5)

    assert [r.learner.user_id for r in report.rows] == [201, 202]
    assert [r.alert for r in report.rows] == [True, False]
    assert report.alert_count == 1
    assert (report.justified_hours, report.unjustified_hours, report.total_hours) == (4.0, 7.5, 11.5)

    csv_rows = absences_env.service.report_csv_rows(report)
    assert csv_rows[0] == {
        "last_name": "Durand",
        "first_name": "Alice",
        "email": "alice@cfa.local",
        "justified_hours": "0.0",
        "unjustified_hours": "7.5",
        "total_hours": "7.5",
        "attendance_rate": "0.0",
        "alert": "oui",
    }
    assert csv_rows[1]["alert"] == "non"
