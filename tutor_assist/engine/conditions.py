"""
Condition checks: decide whether the fact behind a suggestion still holds.

Condition keys look like "<condition>:<entity id>". Unknown conditions are
treated as still valid so nothing is dropped by accident.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from tutor_assist.engine.models import CANCELLED, SCHEDULED, Student, StudentPayments
from tutor_assist.engine.rules import previous_period
from tutor_assist.engine.timing import (
    DEFAULT_SESSION_DURATION, DEFAULT_SESSION_TIME, session_bounds,
)


def _find_session(roster: Iterable[Student], session_id: str):
    for student in roster:
        session = student.find_session(session_id)
        if session is not None:
            return student, session
    return None, None


def _parse_day(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def is_condition_still_valid(condition_key: str, roster: List[Student],
                             payments: Dict[str, StudentPayments], now: datetime,
                             default_time: str = DEFAULT_SESSION_TIME,
                             default_duration: int = DEFAULT_SESSION_DURATION,
                             session_ids: Optional[Iterable[str]] = None) -> bool:
    """
    `session_ids` narrows a sessions_confirmed check to the sessions an
    end-of-day aggregate was raised for.
    """
    condition, _, entity_id = condition_key.partition(":")
    current = now.hour * 60 + now.minute

    if condition == "session_confirmed":
        _, session = _find_session(roster, entity_id)
        return session is not None and session.status == SCHEDULED

    if condition == "sessions_confirmed":
        day = _parse_day(entity_id)
        if day is None:
            return True
        watched = set(session_ids) if session_ids is not None else None
        for student in roster:
            for session in student.sessions:
                if session.date != day or session.status != SCHEDULED:
                    continue
                if watched is not None and session.id not in watched:
                    continue
                if day < now.date():
                    return True
                _, end = session_bounds(session, student, default_time, default_duration)
                if day == now.date() and current > end:
                    return True
        return False

    if condition == "session_started":
        student, session = _find_session(roster, entity_id)
        if session is None or session.status == CANCELLED:
            return False
        if session.status != SCHEDULED or session.date != now.date():
            return False
        start, _ = session_bounds(session, student, default_time, default_duration)
        return current < start

    if condition == "payment_received":
        if not any(s.id == entity_id for s in roster):
            return False
        year, month, _ = previous_period(now.date())
        record = payments.get(entity_id)
        payment = record.for_period(year, month) if record else None
        return not (payment and payment.is_paid)

    # cancellation_pattern_reviewed and anything unknown stay until dismissed
    return True
