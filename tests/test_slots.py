"""Tests for the slot suggester."""

from datetime import date

from tutor_assist.engine.conflicts import ConflictDetector
from tutor_assist.engine.models import CandidateSession
from tutor_assist.engine.slots import SlotSuggester

DAY = date(2026, 3, 10)


def test_slots_skip_overlapping_and_touching_starts(student, session):
    roster = [student("a", sessions=[session("a1", time="10:00")])]
    slots = SlotSuggester().get_available_slots(roster, DAY, 60, "08:00", "13:00")
    assert [s.time for s in slots] == ["08:00", "08:30", "11:30", "12:00"]
    assert [s.day_part for s in slots] == ["morning", "morning", "morning", "afternoon"]
    assert all(s.duration == 60 for s in slots)


def test_suggested_slots_stop_at_max_count(student, session):
    roster = [student("a", sessions=[session("a1", time="10:00")])]
    slots = SlotSuggester().get_suggested_slots(roster, DAY, 60, "08:00", "13:00", max_count=2)
    assert [s.time for s in slots] == ["08:00", "08:30"]


def test_empty_day_defaults():
    suggester = SlotSuggester()
    assert len(suggester.get_available_slots([], DAY, 60)) == 15
    slots = suggester.get_suggested_slots([], DAY, 60)
    assert [s.time for s in slots] == ["14:00", "14:30", "15:00", "15:30", "16:00", "16:30"]
    assert slots[-1].day_part == "afternoon"
    assert suggester.get_suggested_slots([], DAY, 60, max_count=0) == []


def test_evening_slots_are_labelled(student, session):
    slots = SlotSuggester().get_available_slots([], DAY, 60, "17:00", "19:00")
    assert [(s.time, s.day_part) for s in slots] == [("17:00", "evening"), ("17:30", "evening"), ("18:00", "evening")]


def test_every_suggested_slot_passes_the_detector(student, session):
    roster = [
        student("a", sessions=[session("a1", time="14:10"), session("a2", time="17:45", duration=90)]),
        student("b", session_time="19:50", sessions=[session("b1", duration=45)]),
        student("c", sessions=[session("c1", time="15:40", status="cancelled")]),
    ]
    detector = ConflictDetector()
    suggester = SlotSuggester(detector, step_minutes=15)
    for duration in (30, 45, 60, 90):
        slots = suggester.get_available_slots(roster, DAY, duration, "13:00", "23:00")
        assert slots
        for slot in slots:
            candidate = CandidateSession(date=DAY, start_time=slot.time, duration_minutes=duration)
            assert detector.check_conflict(candidate, roster) is None


def test_slots_follow_detector_gap_setting(student, session):
    roster = [student("a", sessions=[session("a1", time="10:00")])]
    wide = SlotSuggester(ConflictDetector(min_gap_minutes=45))
    slots = wide.get_available_slots(roster, DAY, 60, "08:00", "13:00")
    assert [s.time for s in slots] == ["08:00", "12:00"]
