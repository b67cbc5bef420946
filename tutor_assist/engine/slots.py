"""
Slot Suggester: walks the day at a fixed step and keeps every start time
the conflict detector reports as clear. Slots stay in chronological order.
"""

from typing import Iterable, List, Optional

from tutor_assist.engine.conflicts import ConflictDetector
from tutor_assist.engine.models import CandidateSession, Student, SuggestedSlot
from tutor_assist.engine.timing import (
    day_part, minutes_to_time, positive_minutes, time_to_minutes,
)

SLOT_STEP_MINUTES = 30
RANGE_START = "14:00"
RANGE_END = "22:00"
MAX_SUGGESTED_SLOTS = 6


class SlotSuggester:
    def __init__(self, detector: Optional[ConflictDetector] = None,
                 step_minutes: int = SLOT_STEP_MINUTES):
        self.detector = detector or ConflictDetector()
        self.step_minutes = positive_minutes(step_minutes, SLOT_STEP_MINUTES)

    def get_available_slots(self, roster: Iterable[Student], day, duration_minutes: Optional[int] = None,
                            range_start: str = RANGE_START, range_end: str = RANGE_END,
                            max_count: Optional[int] = None) -> List[SuggestedSlot]:
        roster = list(roster)
        duration = positive_minutes(duration_minutes, self.detector.default_duration)
        first = time_to_minutes(range_start, RANGE_START)
        last = time_to_minutes(range_end, RANGE_END)

        slots: List[SuggestedSlot] = []
        minute = first
        # a slot must also finish inside the range
        while minute + duration <= last:
            if max_count is not None and len(slots) >= max_count:
                break
            time = minutes_to_time(minute)
            candidate = CandidateSession(date=day, start_time=time, duration_minutes=duration)
            if self.detector.check_conflict(candidate, roster) is None:
                slots.append(SuggestedSlot(time=time, day_part=day_part(minute), duration=duration))
            minute += self.step_minutes
        return slots

    def get_suggested_slots(self, roster: Iterable[Student], day, duration_minutes: Optional[int] = None,
                            range_start: str = RANGE_START, range_end: str = RANGE_END,
                            max_count: int = MAX_SUGGESTED_SLOTS) -> List[SuggestedSlot]:
        if max_count <= 0:
            return []
        return self.get_available_slots(roster, day, duration_minutes, range_start, range_end, max_count)
