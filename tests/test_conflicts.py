"""Tests for the conflict detector."""

from datetime import date, timedelta

from tutor_assist.engine.conflicts import ConflictDetector
from tutor_assist.engine.models import CandidateSession

DAY = date(2026, 3, 10)

detector = ConflictDetector()


def candidate(time, duration=60, day=DAY):
    return CandidateSession(date=day, start_time=time, duration_minutes=duration)


def roster_with_ten_oclock(student, session):
    return [student("a", name="Alice", sessions=[session("a1", time="10:00")])]


def test_overlap_is_error_with_negative_gap(student, session):
    result = detector.check_conflict(candidate("10:30"), roster_with_ten_oclock(student, session))
    assert result.severity == "error"
    assert result.conflicts[0].kind == "overlap"
    assert result.conflicts[0].gap == -30


def test_close_session_is_warning(student, session):
    result = detector.check_conflict(candidate("11:05"), roster_with_ten_oclock(student, session))
    assert result.severity == "warning"
    assert result.conflicts[0].kind == "close"
    assert result.conflicts[0].gap == 5


def test_enough_spacing_is_no_conflict(student, session):
    roster = roster_with_ten_oclock(student, session)
    assert detector.check_conflict(candidate("11:20"), roster) is None
    assert detector.check_conflict(candidate("11:15"), roster) is None
    assert detector.check_conflict(candidate("08:45"), roster) is None


def test_contained_candidate_reports_full_overlap(student, session):
    result = detector.check_conflict(candidate("10:15", 30), roster_with_ten_oclock(student, session))
    assert result.severity == "error"
    assert result.conflicts[0].gap == -30


def test_touching_either_edge_is_error(student, session):
    roster = roster_with_ten_oclock(student, session)
    after = detector.check_conflict(candidate("11:00"), roster)
    before = detector.check_conflict(candidate("09:00"), roster)
    for result in (after, before):
        assert result.severity == "error"
        assert result.conflicts[0].gap == 0
        assert result.conflicts[0].kind == "overlap"


def test_cancelled_vacation_and_other_days_are_ignored(student, session):
    roster = [student("a", sessions=[
        session("c", time="10:00", status="cancelled"),
        session("v", time="10:00", status="vacation"),
        session("t", time="10:00", day=DAY + timedelta(days=1)),
    ])]
    assert detector.check_conflict(candidate("10:00"), roster) is None


def test_completed_sessions_still_count(student, session):
    roster = [student("a", sessions=[session("done", time="10:00", status="completed")])]
    assert detector.check_conflict(candidate("10:00"), roster).severity == "error"


def test_student_defaults_fill_missing_session_fields(student, session):
    roster = [student("a", session_time="10:00", session_duration=90, sessions=[session("a1")])]
    result = detector.check_conflict(candidate("11:35"), roster)
    assert result.severity == "warning"
    assert result.conflicts[0].gap == 5


def test_malformed_times_fall_back_to_default(student, session):
    roster = [student("a", sessions=[session("a1", time="bogus")])]
    result = detector.check_conflict(candidate("16:30"), roster)
    assert result.severity == "error"
    assert result.conflicts[0].gap == -30
    # a broken candidate time falls back the same way
    assert detector.check_conflict(candidate("??"), roster).severity == "error"


def test_errors_sort_before_warnings(student, session):
    roster = [
        student("a", sessions=[session("a1", time="10:00")]),
        student("b", sessions=[session("b1", time="12:00")]),
    ]
    result = detector.check_conflict(candidate("11:05"), roster)
    assert result.severity == "error"
    assert [(c.session.id, c.gap) for c in result.conflicts] == [("b1", -5), ("a1", 5)]


def test_excluded_session_does_not_conflict_with_itself(student, session):
    roster = roster_with_ten_oclock(student, session)
    assert detector.check_conflict(candidate("10:00"), roster, exclude_session_id="a1") is None


def test_custom_min_gap(student, session):
    strict = ConflictDetector(min_gap_minutes=30)
    result = strict.check_conflict(candidate("11:20"), roster_with_ten_oclock(student, session))
    assert result.severity == "warning"
    assert result.conflicts[0].gap == 20


def test_restore_conflict_uses_session_time(student, session):
    roster = [
        student("a", sessions=[session("a1", time="10:00")]),
        student("b", sessions=[session("b1", time="10:30", status="cancelled")]),
    ]
    result = detector.check_restore_conflict(roster, "b", "b1")
    assert result.severity == "error"
    assert result.conflicts[0].session.id == "a1"
    assert result.conflicts[0].gap == -30


def test_restore_conflict_unknown_ids(student, session):
    roster = roster_with_ten_oclock(student, session)
    assert detector.check_restore_conflict(roster, "missing", "a1") is None
    assert detector.check_restore_conflict(roster, "a", "missing") is None


def test_sessions_with_gaps(student, session):
    roster = [
        student("a", sessions=[session("a1", time="10:00")]),
        student("b", sessions=[session("b1", time="11:05"), session("b2", time="14:00")]),
        student("c", sessions=[session("c1", time="09:00", status="cancelled")]),
    ]
    items = detector.sessions_with_gaps(roster, DAY)
    assert [i["session"].id for i in items] == ["a1", "b1", "b2"]
    assert [i["gap_after"] for i in items] == [5, 115, None]
    assert [i["gap_severity"] for i in items] == ["warning", "good", "good"]
    assert not any(i["has_conflict"] for i in items)


def test_sessions_with_gaps_flags_overlaps(student, session):
    roster = [
        student("a", sessions=[session("a1", time="10:00")]),
        student("b", sessions=[session("b1", time="10:30")]),
    ]
    items = detector.sessions_with_gaps(roster, DAY)
    assert items[0]["gap_severity"] == "critical"
    assert all(i["has_conflict"] for i in items)


def test_scan_all_conflicts(student, session):
    roster = [
        student("a", sessions=[session("a1", time="10:00")]),
        student("b", sessions=[session("b1", time="10:30"), session("b2", time="15:00")]),
    ]
    results = detector.scan_all_conflicts(roster)
    assert set(results) == {"a1", "b1"}
    assert results["a1"].conflicts[0].session.id == "b1"


def test_late_sessions_are_not_compared_with_the_next_day(student, session):
    roster = [student("a", sessions=[session("late", time="23:30")])]
    assert detector.check_conflict(candidate("00:15", day=DAY + timedelta(days=1)), roster) is None


def test_session_running_past_midnight_does_not_wrap(student, session):
    roster = [student("a", sessions=[session("late", time="23:00")])]
    result = detector.check_conflict(candidate("23:30"), roster)
    assert result.severity == "error"
    assert result.conflicts[0].gap == -30
    assert detector.check_conflict(candidate("00:15"), roster) is None
