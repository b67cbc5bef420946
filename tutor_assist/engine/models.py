from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Tuple


# Session statuses
SCHEDULED = "scheduled"
COMPLETED = "completed"
CANCELLED = "cancelled"
VACATION = "vacation"

ACTIVE_STATUSES = (SCHEDULED, COMPLETED)

# Conflict severities / kinds
SEVERITY_NONE = "none"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"

KIND_OVERLAP = "overlap"
KIND_CLOSE = "close"

# Suggestion statuses and dismissal reasons
PENDING = "pending"
ACTIONED = "actioned"
DISMISSED = "dismissed"

REASON_MANUAL = "manual"
REASON_ACTIONED = "actioned"
REASON_CONDITION_RESOLVED = "condition_resolved"


@dataclass
class Session:
    id: str
    date: date
    time: Optional[str] = None          # "HH:MM", overrides the student's default
    duration: Optional[int] = None      # minutes, overrides the student's default
    status: str = SCHEDULED             # scheduled / completed / cancelled / vacation
    topic: Optional[str] = None
    notes: Optional[str] = None
    homework: Optional[str] = None
    homework_status: Optional[str] = None   # assigned / completed / incomplete

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


@dataclass
class CancellationPolicy:
    monthly_limit: Optional[int] = None     # None = unlimited
    notify_tutor: bool = True
    auto_notify_parent: bool = False


@dataclass
class Student:
    id: str
    name: str
    session_time: Optional[str] = None
    session_duration: Optional[int] = None
    session_type: str = "onsite"            # online / onsite
    phone: Optional[str] = None
    cancellation_policy: CancellationPolicy = field(default_factory=CancellationPolicy)
    sessions: List[Session] = field(default_factory=list)

    def find_session(self, session_id: str) -> Optional[Session]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None


@dataclass
class MonthlyPayment:
    month: int      # 1-12
    year: int
    is_paid: bool = False
    paid_at: Optional[str] = None


@dataclass
class StudentPayments:
    student_id: str
    payments: List[MonthlyPayment] = field(default_factory=list)

    def for_period(self, year: int, month: int) -> Optional[MonthlyPayment]:
        for payment in self.payments:
            if payment.year == year and payment.month == month:
                return payment
        return None


@dataclass
class CandidateSession:
    date: date
    start_time: Optional[str] = None
    duration_minutes: Optional[int] = None


@dataclass
class Conflict:
    student: Student
    session: Session
    kind: str           # overlap / close
    gap: int            # negative = overlap minutes, 0 = touching, positive = spacing

    @property
    def severity(self) -> str:
        return SEVERITY_ERROR if self.gap <= 0 else SEVERITY_WARNING

    def describe(self) -> str:
        if self.gap < 0:
            return f"Overlaps {self.student.name}'s session by {-self.gap} min"
        if self.gap == 0:
            return f"Touches {self.student.name}'s session with no break"
        return f"Only {self.gap} min between this and {self.student.name}'s session"


@dataclass
class ConflictResult:
    severity: str
    conflicts: List[Conflict] = field(default_factory=list)


@dataclass
class SuggestedSlot:
    time: str
    day_part: str       # morning / afternoon / evening
    duration: int


@dataclass
class RelatedEntity:
    type: str           # session / student / payment
    id: str
    condition_key: str


@dataclass
class Suggestion:
    id: str
    type: str           # pre_session / end_of_day / pattern / payment / schedule
    priority: str       # critical / high / medium / low
    priority_score: int
    tier: int
    message: str
    action: str         # "verb:param1:param2"
    created_at: str
    student_id: Optional[str] = None
    session_id: Optional[str] = None
    secondary_action: Optional[str] = None
    related_entity: Optional[RelatedEntity] = None
    status: str = PENDING
    sub_priority: int = 99
    sort_minutes: Optional[int] = None
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def condition_key(self) -> Optional[str]:
        return self.related_entity.condition_key if self.related_entity else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Suggestion":
        data = dict(data)
        entity = data.pop("related_entity", None)
        if entity:
            data["related_entity"] = RelatedEntity(**entity)
        return cls(**data)


def suggestion_sort_key(s: Suggestion) -> Tuple:
    """Most urgent first; equal priority falls back to oldest first, then id."""
    return (
        s.tier,
        -s.priority_score,
        s.sub_priority,
        s.sort_minutes if s.sort_minutes is not None else 24 * 60,
        s.created_at,
        s.id,
    )


@dataclass(frozen=True)
class DismissedSuggestion:
    id: str
    type: str
    priority: str
    message: str
    dismissed_at: str       # ISO-8601
    reason: str             # manual / actioned / condition_resolved
    subject_id: Optional[str] = None

    def dismissed_datetime(self) -> Optional[datetime]:
        try:
            return datetime.fromisoformat(self.dismissed_at)
        except (TypeError, ValueError):
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "message": self.message,
            "dismissedAt": self.dismissed_at,
            "reason": self.reason,
            "subjectId": self.subject_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DismissedSuggestion":
        return cls(
            id=data["id"],
            type=data.get("type", ""),
            priority=data.get("priority", ""),
            message=data.get("message", ""),
            dismissed_at=data["dismissedAt"],
            reason=data.get("reason", REASON_MANUAL),
            subject_id=data.get("subjectId"),
        )

    @classmethod
    def from_suggestion(cls, s: Suggestion, reason: str, when: datetime) -> "DismissedSuggestion":
        return cls(
            id=s.id,
            type=s.type,
            priority=s.priority,
            message=s.message,
            dismissed_at=when.isoformat(),
            reason=reason,
            subject_id=s.student_id,
        )
