"""
Cancellation policy: monthly cancellation count against a student's limit.
Only evaluates; sending the tutor / parent notice is left to the caller.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from tutor_assist.engine.models import CANCELLED, Student


@dataclass
class CancellationStatus:
    student_id: str
    month: str                  # YYYY-MM
    count: int
    limit: Optional[int]
    limit_reached: bool
    limit_exceeded: bool
    notify_tutor: bool
    notify_parent: bool

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.count)


def _month_key(value) -> str:
    if isinstance(value, (date, datetime)):
        return f"{value.year}-{value.month:02d}"
    return str(value)


def evaluate_cancellation_policy(student: Student, month=None,
                                 now: Optional[datetime] = None) -> CancellationStatus:
    """
    `month` is a date/datetime or a "YYYY-MM" string; defaults to the month of `now`.
    """
    key = _month_key(month if month is not None else (now or datetime.now()))
    count = sum(
        1 for s in student.sessions
        if s.status == CANCELLED and _month_key(s.date) == key
    )

    policy = student.cancellation_policy
    limit = policy.monthly_limit
    if limit is not None and limit < 0:
        limit = None

    reached = limit is not None and count > 0 and count == limit
    exceeded = limit is not None and count > limit
    hit = reached or exceeded

    return CancellationStatus(
        student_id=student.id,
        month=key,
        count=count,
        limit=limit,
        limit_reached=reached,
        limit_exceeded=exceeded,
        notify_tutor=hit and policy.notify_tutor,
        notify_parent=hit and policy.auto_notify_parent and bool(student.phone),
    )
