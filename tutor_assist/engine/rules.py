"""
Suggestion rules: each rule scans the roster snapshot independently and
returns candidate suggestions. Priorities come from PRIORITY_TABLE only;
rules never compute their own score.
"""

import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from tutor_assist.engine.models import (
    RelatedEntity, Session, Student, StudentPayments, Suggestion,
    CANCELLED, COMPLETED, SCHEDULED,
)
from tutor_assist.engine.timing import (
    DEFAULT_SESSION_DURATION, DEFAULT_SESSION_TIME, session_bounds,
)


# Fixed lookup: tier (0 = most urgent), score, sub-order inside the tier.
PRIORITY_TABLE = {
    "session_unconfirmed":   {"tier": 0, "score": 100, "sub": 1},
    "pre_session_reminder":  {"tier": 0, "score": 100, "sub": 2},
    "payment_overdue":       {"tier": 0, "score": 100, "sub": 3},
    "pre_session_issue":     {"tier": 1, "score": 80,  "sub": 99},
    "cancellation_pattern":  {"tier": 2, "score": 70,  "sub": 99},
    "payment_inactive":      {"tier": 2, "score": 70,  "sub": 99},
    "schedule_gap":          {"tier": 3, "score": 50,  "sub": 99},
}

INTERRUPT_THRESHOLD = 100

PRE_SESSION_WINDOW = 35             # minutes before start
PRE_SESSION_ISSUE_WINDOW = 60
PATTERN_WINDOW_DAYS = 30
PATTERN_MIN_CANCELLATIONS = 3
ACTIVE_LOOKBACK_DAYS = 60
SCHEDULE_GAP_MINUTES = 120
NOTE_PREVIEW_CHARS = 50


def priority_label(score: int) -> str:
    if score >= 100:
        return "critical"
    if score >= 70:
        return "high"
    if score >= 50:
        return "medium"
    return "low"


def _escape(value: str) -> str:
    # "_<hex>_" keeps distinct subjects distinct, e.g. "s.1" vs "s1"
    return re.sub(r"[^a-zA-Z0-9-]", lambda m: f"_{ord(m.group()):x}_", value)


def make_id(kind: str, subject: Optional[str] = None, extra: str = "") -> str:
    return f"{kind}-{_escape(subject or 'general')}-{_escape(extra)}"


def session_set_digest(session_ids: List[str]) -> str:
    return hashlib.sha1(json.dumps(sorted(session_ids)).encode("utf-8")).hexdigest()[:8]


def related(entity_type: str, entity_id: str, condition: str) -> RelatedEntity:
    return RelatedEntity(type=entity_type, id=entity_id, condition_key=f"{condition}:{entity_id}")


@dataclass
class RuleContext:
    roster: List[Student]
    payments: Dict[str, StudentPayments]
    now: datetime
    default_time: str = DEFAULT_SESSION_TIME
    default_duration: int = DEFAULT_SESSION_DURATION
    emitted: List[Suggestion] = field(default_factory=list)

    @property
    def today(self) -> date:
        return self.now.date()

    @property
    def current_minutes(self) -> int:
        return self.now.hour * 60 + self.now.minute

    @property
    def created_at(self) -> str:
        return self.now.isoformat()

    def bounds(self, session: Session, student: Student):
        return session_bounds(session, student, self.default_time, self.default_duration)

    def todays_scheduled(self):
        for student in self.roster:
            for session in student.sessions:
                if session.date == self.today and session.status == SCHEDULED:
                    yield student, session

    def build(self, entry: str, **fields) -> Suggestion:
        level = PRIORITY_TABLE[entry]
        return Suggestion(
            priority=priority_label(level["score"]),
            priority_score=level["score"],
            tier=level["tier"],
            sub_priority=level["sub"],
            created_at=self.created_at,
            **fields,
        )


# ── helpers ──────────────────────────────────────────────

def recent_cancellations(student: Student, today: date, days: int = PATTERN_WINDOW_DAYS) -> List[Session]:
    since = today - timedelta(days=days)
    return [s for s in student.sessions if s.status == CANCELLED and since <= s.date <= today]


def last_note(student: Student, today: date) -> Optional[Dict[str, str]]:
    past = [s for s in student.sessions if s.date < today and (s.notes or s.topic)]
    if not past:
        return None
    latest = max(past, key=lambda s: s.date)
    return {"content": latest.notes or latest.topic, "date": latest.date.isoformat()}


def homework_status(student: Student, today: date) -> Dict[str, Optional[str]]:
    past = [s for s in student.sessions if s.date < today and s.homework]
    if not past:
        return {"status": "none", "description": None}
    latest = max(past, key=lambda s: s.date)
    status = {"completed": "completed", "incomplete": "not_completed"}.get(latest.homework_status, "assigned")
    return {"status": status, "description": latest.homework}


def is_student_active(student: Student, today: date) -> bool:
    """Upcoming active sessions, or a completed one in the last 60 days."""
    since = today - timedelta(days=ACTIVE_LOOKBACK_DAYS)
    for s in student.sessions:
        if s.date >= today and s.status in (SCHEDULED, COMPLETED):
            return True
        if since <= s.date < today and s.status == COMPLETED:
            return True
    return False


def previous_period(today: date):
    """(year, month, last_day) of the calendar month before `today`."""
    last_day = today.replace(day=1) - timedelta(days=1)
    return last_day.year, last_day.month, last_day


def unconfirmed_sessions(ctx: RuleContext):
    for student, session in ctx.todays_scheduled():
        _, end = ctx.bounds(session, student)
        if ctx.current_minutes > end:
            yield student, session


HOMEWORK_TEXT = {
    "none": "no homework",
    "assigned": "homework not reviewed",
    "completed": "homework completed",
    "not_completed": "homework not completed",
}


# ── rules ────────────────────────────────────────────────

def pre_session_rule(ctx: RuleContext) -> List[Suggestion]:
    results = []
    for student, session in ctx.todays_scheduled():
        start, _ = ctx.bounds(session, student)
        minutes_until = start - ctx.current_minutes
        if not 0 < minutes_until <= PRE_SESSION_WINDOW:
            continue

        note = last_note(student, ctx.today)
        homework = homework_status(student, ctx.today)
        message = f"{student.name}'s session starts in {minutes_until} min"
        if note:
            preview = note["content"][:NOTE_PREVIEW_CHARS]
            if len(note["content"]) > NOTE_PREVIEW_CHARS:
                preview += "..."
            message += f"\nLast note: {preview}"
        message += f"\nHomework: {HOMEWORK_TEXT[homework['status']]}"

        if note:
            action = f"open_session_notes:{student.id}:{session.id}"
        else:
            action = f"open_student:{student.id}"

        suggestion = ctx.build(
            "pre_session_reminder",
            id=make_id("pre_session", student.id, f"30min-{session.id}"),
            type="pre_session",
            message=message,
            action=action,
            student_id=student.id,
            session_id=session.id,
            related_entity=related("session", session.id, "session_started"),
            context={"last_note": note, "homework": homework, "minutes_until": minutes_until},
        )
        suggestion.sort_minutes = start
        results.append(suggestion)
    return results


def pre_session_issue_rule(ctx: RuleContext) -> List[Suggestion]:
    results = []
    for student, session in ctx.todays_scheduled():
        start, _ = ctx.bounds(session, student)
        minutes_until = start - ctx.current_minutes
        if not PRE_SESSION_WINDOW < minutes_until <= PRE_SESSION_ISSUE_WINDOW:
            continue

        homework = homework_status(student, ctx.today)
        if homework["status"] == "assigned":
            results.append(ctx.build(
                "pre_session_issue",
                id=make_id("pre_session", student.id, f"hw-{session.id}"),
                type="pre_session",
                message=f"{student.name} has homework to review, session in {minutes_until} min",
                action=f"open_session_notes:{student.id}:{session.id}",
                student_id=student.id,
                session_id=session.id,
                related_entity=related("session", session.id, "session_started"),
                context={"homework": homework},
            ))

        cancelled = recent_cancellations(student, ctx.today)
        if len(cancelled) >= PATTERN_MIN_CANCELLATIONS:
            results.append(ctx.build(
                "pre_session_issue",
                id=make_id("pre_session", student.id, f"cancel-{session.id}"),
                type="pre_session",
                message=f"{student.name} cancelled {len(cancelled)} times recently, session in {minutes_until} min",
                action=f"open_student:{student.id}",
                student_id=student.id,
                session_id=session.id,
                related_entity=related("session", session.id, "session_started"),
                context={"cancellations": len(cancelled)},
            ))
    return results


def end_of_day_rule(ctx: RuleContext) -> List[Suggestion]:
    """
    One aggregate suggestion for every session that ended unconfirmed today.
    The id follows the set of sessions, so a session ending after the tutor
    handled an earlier aggregate gets a fresh suggestion.
    """
    pending = list(unconfirmed_sessions(ctx))
    if not pending:
        return []

    count = len(pending)
    day = ctx.today.isoformat()
    session_ids = [s.id for _, s in pending]
    if count == 1:
        student, session = pending[0]
        message = f"{student.name}'s session has ended and needs confirmation"
        action = f"mark_complete:{student.id}:{session.id}"
    else:
        message = f"{count} sessions have ended and need confirmation"
        action = "show_today_sessions"

    return [ctx.build(
        "session_unconfirmed",
        id=make_id("end_of_day", "all", f"{day}-{session_set_digest(session_ids)}"),
        type="end_of_day",
        message=message,
        action=action,
        related_entity=related("day", day, "sessions_confirmed"),
        context={"count": count, "session_ids": session_ids},
    )]


def pattern_rule(ctx: RuleContext) -> List[Suggestion]:
    results = []
    for student in ctx.roster:
        cancelled = recent_cancellations(student, ctx.today)
        if len(cancelled) < PATTERN_MIN_CANCELLATIONS:
            continue
        # a pre-session warning already covers this student
        if any(s.type == "pre_session" and s.student_id == student.id for s in ctx.emitted):
            continue
        results.append(ctx.build(
            "cancellation_pattern",
            id=make_id("pattern", student.id, "cancellations"),
            type="pattern",
            message=f"{student.name} cancelled {len(cancelled)} times in the last month",
            action=f"open_student:{student.id}",
            student_id=student.id,
            related_entity=related("student", student.id, "cancellation_pattern_reviewed"),
            context={"count": len(cancelled)},
        ))
    return results


def payment_rule(ctx: RuleContext) -> List[Suggestion]:
    year, month, period_end = previous_period(ctx.today)
    results = []
    for student in ctx.roster:
        record = ctx.payments.get(student.id)
        payment = record.for_period(year, month) if record else None
        if payment and payment.is_paid:
            continue

        days = (ctx.today - period_end).days
        active = is_student_active(student, ctx.today)
        if active:
            message = f"{student.name} has not paid for {year}-{month:02d} ({days} days overdue)"
        else:
            message = f"{student.name} (inactive) has not paid for {year}-{month:02d} ({days} days overdue)"

        suggestion = ctx.build(
            "payment_overdue" if active else "payment_inactive",
            id=make_id("payment", student.id, f"{year}-{month:02d}"),
            type="payment",
            message=message,
            action=f"open_payment:{student.id}",
            secondary_action=f"send_whatsapp:{student.id}" if student.phone else None,
            student_id=student.id,
            related_entity=related("payment", student.id, "payment_received"),
            context={"days_since_period_end": days, "period": f"{year}-{month:02d}", "active": active},
        )
        results.append(suggestion)
    return results


def schedule_gap_rule(ctx: RuleContext) -> List[Suggestion]:
    today = sorted(
        ((ctx.bounds(session, student), student, session) for student, session in ctx.todays_scheduled()),
        key=lambda item: (item[0][0], item[2].id),
    )
    results = []
    for (current, nxt) in zip(today, today[1:]):
        (_, current_end), student_a, session_a = current
        (next_start, _), student_b, session_b = nxt
        gap = next_start - current_end
        if gap < SCHEDULE_GAP_MINUTES:
            continue
        results.append(ctx.build(
            "schedule_gap",
            id=make_id("schedule", "gap", f"{session_a.id}-{session_b.id}"),
            type="schedule",
            message=f"{gap // 60}h free between {student_a.name} and {student_b.name}",
            action="show_calendar",
            context={"gap_minutes": gap},
        ))
    return results


Rule = Callable[[RuleContext], List[Suggestion]]

# Order matters only for pattern_rule, which looks at earlier pre-session output.
DEFAULT_RULES: List[Rule] = [
    end_of_day_rule,
    payment_rule,
    pre_session_rule,
    pre_session_issue_rule,
    pattern_rule,
    schedule_gap_rule,
]
