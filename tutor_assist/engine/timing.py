"""
Time helpers shared by the detector, the slot suggester and the rules.

Sessions keep times as "HH:MM" strings and durations in minutes. Anything
missing or unparseable falls back to a default instead of raising.
"""

from typing import Optional

from tutor_assist.engine.models import Session, Student

DEFAULT_SESSION_TIME = "16:00"
DEFAULT_SESSION_DURATION = 60
MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: Optional[str], default: str = DEFAULT_SESSION_TIME) -> int:
    """Minutes from midnight for "HH:MM"; malformed input uses `default`."""
    parsed = _parse(value)
    if parsed is None:
        parsed = _parse(default)
    return parsed if parsed is not None else 16 * 60


def _parse(value: Optional[str]) -> Optional[int]:
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    normalized = minutes % MINUTES_PER_DAY
    return f"{normalized // 60:02d}:{normalized % 60:02d}"


def positive_minutes(value, default: int = DEFAULT_SESSION_DURATION) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def session_start(session: Session, student: Student,
                  default_time: str = DEFAULT_SESSION_TIME) -> int:
    # session time -> student default -> global default
    return time_to_minutes(session.time or student.session_time, default_time)


def session_duration(session: Session, student: Student,
                     default_duration: int = DEFAULT_SESSION_DURATION) -> int:
    return positive_minutes(session.duration or student.session_duration, default_duration)


def session_bounds(session: Session, student: Student,
                   default_time: str = DEFAULT_SESSION_TIME,
                   default_duration: int = DEFAULT_SESSION_DURATION):
    start = session_start(session, student, default_time)
    return start, start + session_duration(session, student, default_duration)


def day_part(minutes: int) -> str:
    hour = (minutes % MINUTES_PER_DAY) // 60
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    return "evening"
