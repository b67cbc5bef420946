"""
FastAPI server: scheduling checks and the suggestion queue.
Run: uvicorn tutor_assist.api.server:app --reload --port 8000

create_app() is the composition root: it builds one detector, engine and
queue per application and hands them to the endpoints through app.state.
"""

from dataclasses import asdict
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from tutor_assist.core.config import Settings, get_settings
from tutor_assist.core.logging import RequestIDMiddleware, init_logging
from tutor_assist.engine.cancellations import evaluate_cancellation_policy
from tutor_assist.engine.conflicts import ConflictDetector
from tutor_assist.engine.models import (
    CancellationPolicy, CandidateSession, ConflictResult, MonthlyPayment,
    Session, Student, StudentPayments, Suggestion,
)
from tutor_assist.engine.prioritizer import SuggestionEngine
from tutor_assist.engine.queue import SuggestionQueue
from tutor_assist.engine.slots import SlotSuggester
from tutor_assist.engine.store import KeyValueStore, build_store


# ─── Request Schema ───────────────────────────────────────

class SessionIn(BaseModel):
    id: str
    date: date
    time: Optional[str] = None
    duration: Optional[int] = None
    status: str = "scheduled"
    topic: Optional[str] = None
    notes: Optional[str] = None
    homework: Optional[str] = None
    homework_status: Optional[str] = None


class PolicyIn(BaseModel):
    monthly_limit: Optional[int] = None
    notify_tutor: bool = True
    auto_notify_parent: bool = False


class StudentIn(BaseModel):
    id: str
    name: str
    session_time: Optional[str] = None
    session_duration: Optional[int] = None
    session_type: str = "onsite"
    phone: Optional[str] = None
    cancellation_policy: PolicyIn = Field(default_factory=PolicyIn)
    sessions: List[SessionIn] = []

    def to_domain(self) -> Student:
        data = self.model_dump(exclude={"sessions", "cancellation_policy"})
        return Student(
            **data,
            cancellation_policy=CancellationPolicy(**self.cancellation_policy.model_dump()),
            sessions=[Session(**s.model_dump()) for s in self.sessions],
        )


class PaymentIn(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int
    is_paid: bool = False
    paid_at: Optional[str] = None


class StudentPaymentsIn(BaseModel):
    student_id: str
    payments: List[PaymentIn] = []

    def to_domain(self) -> StudentPayments:
        return StudentPayments(self.student_id, [MonthlyPayment(**p.model_dump()) for p in self.payments])


class CandidateIn(BaseModel):
    date: date
    start_time: Optional[str] = None
    duration_minutes: Optional[int] = None


class ConflictCheckRequest(BaseModel):
    candidate: CandidateIn
    roster: List[StudentIn]
    exclude_session_id: Optional[str] = None


class RestoreCheckRequest(BaseModel):
    roster: List[StudentIn]
    student_id: str
    session_id: str


class RosterRequest(BaseModel):
    roster: List[StudentIn]


class DayRequest(BaseModel):
    roster: List[StudentIn]
    date: date


class SlotRequest(BaseModel):
    roster: List[StudentIn]
    date: date
    duration_minutes: Optional[int] = None
    range_start: Optional[str] = None
    range_end: Optional[str] = None
    max_count: Optional[int] = None


class SyncRequest(BaseModel):
    roster: List[StudentIn]
    payments: List[StudentPaymentsIn] = []
    now: Optional[datetime] = None
    revalidate: bool = True


class ResolveRequest(BaseModel):
    condition_key: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None


class PolicyRequest(BaseModel):
    student: StudentIn
    month: Optional[str] = None


# ─── Serializers ─────────────────────────────────────────

def _roster(items: List[StudentIn]) -> List[Student]:
    return [s.to_domain() for s in items]


def _payments(items: List[StudentPaymentsIn]) -> Dict[str, StudentPayments]:
    return {p.student_id: p.to_domain() for p in items}


def conflict_result_out(result: Optional[ConflictResult]) -> Dict:
    if result is None:
        return {"severity": "none", "conflicts": []}
    return {
        "severity": result.severity,
        "conflicts": [
            {
                "student_id": c.student.id,
                "student_name": c.student.name,
                "session_id": c.session.id,
                "kind": c.kind,
                "gap": c.gap,
                "severity": c.severity,
                "message": c.describe(),
            }
            for c in result.conflicts
        ],
    }


def suggestion_out(s: Optional[Suggestion]) -> Optional[Dict]:
    return s.to_dict() if s else None


# ─── App ─────────────────────────────────────────────────

def create_app(config: Optional[Settings] = None, store: Optional[KeyValueStore] = None,
               clock: Callable[[], datetime] = datetime.now) -> FastAPI:
    config = config or get_settings()
    init_logging(config.LOG_LEVEL)

    app = FastAPI(title="Tutor Assist", version="1.0.0")
    app.add_middleware(RequestIDMiddleware)

    detector = ConflictDetector(
        min_gap_minutes=config.MIN_GAP_MINUTES,
        default_time=config.DEFAULT_SESSION_TIME,
        default_duration=config.DEFAULT_SESSION_DURATION,
    )
    app.state.config = config
    app.state.clock = clock
    app.state.detector = detector
    app.state.slots = SlotSuggester(detector, step_minutes=config.SLOT_STEP_MINUTES)
    app.state.engine = SuggestionEngine(
        max_suggestions=config.MAX_SUGGESTIONS,
        default_time=config.DEFAULT_SESSION_TIME,
        default_duration=config.DEFAULT_SESSION_DURATION,
    )
    app.state.queue = SuggestionQueue(
        store or build_store(config.STORE_BACKEND, config.STORE_PATH),
        retention_days=config.HISTORY_RETENTION_DAYS,
        persist_pending=config.PERSIST_PENDING,
        clock=clock,
    )

    # ─── Endpoints ───────────────────────────────────────

    @app.post("/v1/conflicts/check")
    def check_conflict(req: ConflictCheckRequest, request: Request):
        candidate = CandidateSession(**req.candidate.model_dump())
        result = request.app.state.detector.check_conflict(
            candidate, _roster(req.roster), exclude_session_id=req.exclude_session_id)
        return conflict_result_out(result)

    @app.post("/v1/conflicts/restore")
    def check_restore(req: RestoreCheckRequest, request: Request):
        result = request.app.state.detector.check_restore_conflict(
            _roster(req.roster), req.student_id, req.session_id)
        return conflict_result_out(result)

    @app.post("/v1/conflicts/scan")
    def scan(req: RosterRequest, request: Request):
        results = request.app.state.detector.scan_all_conflicts(_roster(req.roster))
        return {"results": {sid: conflict_result_out(r) for sid, r in results.items()}}

    @app.post("/v1/schedule/day")
    def day_overview(req: DayRequest, request: Request):
        items = request.app.state.detector.sessions_with_gaps(_roster(req.roster), req.date)
        return {
            "date": req.date.isoformat(),
            "sessions": [
                {
                    "student_id": item["student"].id,
                    "session_id": item["session"].id,
                    "start": item["start"],
                    "end": item["end"],
                    "gap_after": item["gap_after"],
                    "gap_severity": item["gap_severity"],
                    "has_conflict": item["has_conflict"],
                }
                for item in items
            ],
        }

    @app.post("/v1/slots/suggest")
    def suggest_slots(req: SlotRequest, request: Request):
        cfg = request.app.state.config
        slots = request.app.state.slots.get_suggested_slots(
            _roster(req.roster),
            req.date,
            req.duration_minutes,
            range_start=req.range_start or cfg.SLOT_RANGE_START,
            range_end=req.range_end or cfg.SLOT_RANGE_END,
            max_count=req.max_count if req.max_count is not None else cfg.MAX_SUGGESTED_SLOTS,
        )
        return {"slots": [asdict(s) for s in slots]}

    @app.post("/v1/suggestions/sync")
    def sync(req: SyncRequest, request: Request):
        state = request.app.state
        now = req.now or state.clock()
        roster, payments = _roster(req.roster), _payments(req.payments)
        resolved = state.queue.revalidate(roster, payments, now) if req.revalidate else 0
        batch = state.engine.generate_suggestions(roster, payments, now)
        new_interrupt = state.queue.sync_from_engine(batch)
        return {
            "new_interrupt": new_interrupt,
            "resolved": resolved,
            "pending_count": state.queue.pending_count(),
            "current": suggestion_out(state.queue.get_current_suggestion()),
        }

    @app.get("/v1/suggestions/current")
    def current(request: Request):
        queue = request.app.state.queue
        return {
            "current": suggestion_out(queue.get_current_suggestion()),
            "pending_count": queue.pending_count(),
            "interrupt": queue.has_interrupting_suggestion(),
            "version": queue.version,
        }

    @app.post("/v1/suggestions/{suggestion_id}/action")
    def action(suggestion_id: str, request: Request):
        if not request.app.state.queue.mark_actioned(suggestion_id):
            raise HTTPException(status_code=404, detail=f"No pending suggestion '{suggestion_id}'")
        return {"id": suggestion_id, "status": "actioned"}

    @app.post("/v1/suggestions/{suggestion_id}/dismiss")
    def dismiss(suggestion_id: str, request: Request):
        if not request.app.state.queue.mark_dismissed(suggestion_id):
            raise HTTPException(status_code=404, detail=f"No pending suggestion '{suggestion_id}'")
        return {"id": suggestion_id, "status": "dismissed"}

    @app.post("/v1/suggestions/resolve")
    def resolve(req: ResolveRequest, request: Request):
        queue = request.app.state.queue
        if req.condition_key:
            count = queue.resolve_by_condition(req.condition_key)
        elif req.entity_type and req.entity_id:
            count = queue.resolve_by_entity(req.entity_type, req.entity_id)
        else:
            raise HTTPException(status_code=400, detail="Give condition_key or entity_type + entity_id")
        return {"resolved": count}

    @app.get("/v1/suggestions/history")
    def history(request: Request, subject_id: Optional[str] = None,
                reason: Optional[str] = None, limit: int = 50):
        queue = request.app.state.queue
        if subject_id:
            entries = queue.get_subject_history(subject_id, reason, limit)
        else:
            entries = [d for d in queue.get_dismissed_history() if not reason or d.reason == reason][:limit]
        return {"total": len(entries), "results": [d.to_dict() for d in entries]}

    @app.post("/v1/cancellations/policy")
    def cancellation_policy(req: PolicyRequest, request: Request):
        status = evaluate_cancellation_policy(req.student.to_domain(), req.month, request.app.state.clock())
        return {**asdict(status), "remaining": status.remaining}

    @app.get("/v1/health")
    def health(request: Request):
        queue = request.app.state.queue
        return {
            "status": "ok",
            "components": {
                "api": "ok",
                "store": type(queue.store).__name__,
                "persist_pending": queue.persist_pending,
                "pending": queue.pending_count(),
            },
        }

    @app.get("/v1/stats")
    def stats(request: Request):
        return request.app.state.queue.history_stats()

    return app


_app: Optional[FastAPI] = None


def __getattr__(name):
    # `app` is built on first access so importing this module leaves logging alone
    global _app
    if name == "app":
        if _app is None:
            _app = create_app()
        return _app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
