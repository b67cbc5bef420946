"""
Conflict Detector: checks a candidate session time against every active
session in the roster.

Only scheduled / completed sessions on the same calendar date take part.
Intervals are not wrapped at midnight: a late session simply ends past
24:00 and is never compared with the next day's sessions.
"""

import logging
from typing import Dict, Iterable, List, Optional

from tutor_assist.engine.models import (
    CandidateSession, Conflict, ConflictResult, Student,
    KIND_CLOSE, KIND_OVERLAP, SEVERITY_ERROR, SEVERITY_WARNING,
)
from tutor_assist.engine.timing import (
    DEFAULT_SESSION_DURATION, DEFAULT_SESSION_TIME,
    positive_minutes, session_bounds, time_to_minutes,
)

logger = logging.getLogger(__name__)

MIN_GAP_MINUTES = 15

_SEVERITY_RANK = {SEVERITY_ERROR: 0, SEVERITY_WARNING: 1}


class ConflictDetector:
    def __init__(self, min_gap_minutes: int = MIN_GAP_MINUTES,
                 default_time: str = DEFAULT_SESSION_TIME,
                 default_duration: int = DEFAULT_SESSION_DURATION):
        self.min_gap_minutes = min_gap_minutes
        self.default_time = default_time
        self.default_duration = default_duration

    def check_conflict(self, candidate: CandidateSession, roster: Iterable[Student],
                       exclude_session_id: Optional[str] = None) -> Optional[ConflictResult]:
        """
        Returns None when the candidate is clear, else a ConflictResult whose
        conflicts are ordered closest / most severe first.
        """
        start = time_to_minutes(candidate.start_time, self.default_time)
        end = start + positive_minutes(candidate.duration_minutes, self.default_duration)

        conflicts: List[Conflict] = []
        for student in roster:
            for session in student.sessions:
                if exclude_session_id and session.id == exclude_session_id:
                    continue
                if not session.is_active or session.date != candidate.date:
                    continue
                other_start, other_end = session_bounds(
                    session, student, self.default_time, self.default_duration)
                conflict = self._compare(start, end, other_start, other_end)
                if conflict:
                    kind, gap = conflict
                    conflicts.append(Conflict(student=student, session=session, kind=kind, gap=gap))

        if not conflicts:
            return None

        conflicts.sort(key=lambda c: (_SEVERITY_RANK[c.severity], c.gap))
        severity = conflicts[0].severity
        logger.debug("Candidate %s %s-%s: %d conflict(s), severity=%s",
                     candidate.date, start, end, len(conflicts), severity)
        return ConflictResult(severity=severity, conflicts=conflicts)

    def _compare(self, start: int, end: int, other_start: int, other_end: int):
        if start < other_end and other_start < end:
            overlap = min(end, other_end) - max(start, other_start)
            return KIND_OVERLAP, -overlap

        gap = other_start - end if end <= other_start else start - other_end
        if gap <= 0:
            return KIND_OVERLAP, 0
        if gap < self.min_gap_minutes:
            return KIND_CLOSE, gap
        return None

    def check_restore_conflict(self, roster: List[Student], student_id: str,
                               session_id: str) -> Optional[ConflictResult]:
        """Validate reinstating a cancelled / vacation session at its own time."""
        student = next((s for s in roster if s.id == student_id), None)
        if student is None:
            return None
        session = student.find_session(session_id)
        if session is None:
            return None

        candidate = CandidateSession(
            date=session.date,
            start_time=session.time or student.session_time,
            duration_minutes=session.duration or student.session_duration,
        )
        return self.check_conflict(candidate, roster, exclude_session_id=session_id)

    def sessions_with_gaps(self, roster: Iterable[Student], day) -> List[Dict]:
        """
        The day's active sessions in start order with the idle time after each.
        gap_severity: critical (overlap / touching), warning (< min gap), good.
        """
        items = []
        for student in roster:
            for session in student.sessions:
                if session.date != day or not session.is_active:
                    continue
                start, end = session_bounds(session, student, self.default_time, self.default_duration)
                items.append({"student": student, "session": session, "start": start, "end": end})

        items.sort(key=lambda item: (item["start"], item["session"].id))

        for idx, item in enumerate(items):
            nxt = items[idx + 1] if idx + 1 < len(items) else None
            gap_after = nxt["start"] - item["end"] if nxt else None
            if gap_after is None or gap_after >= self.min_gap_minutes:
                gap_severity = "good"
            elif gap_after <= 0:
                gap_severity = "critical"
            else:
                gap_severity = "warning"

            item["gap_after"] = gap_after
            item["gap_severity"] = gap_severity
            item["has_conflict"] = any(
                other is not item and item["start"] <= other["end"] and other["start"] <= item["end"]
                for other in items
            )
        return items

    def scan_all_conflicts(self, roster: List[Student]) -> Dict[str, ConflictResult]:
        """Conflict result for every active session that collides with the rest of the roster."""
        results = {}
        for student in roster:
            for session in student.sessions:
                if not session.is_active:
                    continue
                candidate = CandidateSession(
                    date=session.date,
                    start_time=session.time or student.session_time,
                    duration_minutes=session.duration or student.session_duration,
                )
                result = self.check_conflict(candidate, roster, exclude_session_id=session.id)
                if result:
                    results[session.id] = result
        return results
