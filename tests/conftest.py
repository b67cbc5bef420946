"""Shared fixtures: a fixed clock, roster builders and suggestion builders."""

from datetime import date, datetime

import pytest

from tutor_assist.engine.models import (
    MonthlyPayment, RelatedEntity, Session, Student, StudentPayments, Suggestion,
)
from tutor_assist.engine.store import InMemoryStore, StoreError

DAY = date(2026, 3, 10)
NOW = datetime(2026, 3, 10, 12, 0)


class FailingStore(InMemoryStore):
    """Store whose reads and/or writes blow up."""

    def __init__(self, fail_get=True, fail_set=True):
        super().__init__()
        self.fail_get = fail_get
        self.fail_set = fail_set

    def get(self, key):
        if self.fail_get:
            raise StoreError("read failed")
        return super().get(key)

    def set(self, key, value, ttl_seconds=None):
        if self.fail_set:
            raise StoreError("write failed")
        super().set(key, value, ttl_seconds)


@pytest.fixture
def failing_store():
    return FailingStore


@pytest.fixture
def student():
    def build(sid="s1", name=None, sessions=(), **kwargs):
        return Student(id=sid, name=name or sid.upper(), sessions=list(sessions), **kwargs)
    return build


@pytest.fixture
def session():
    def build(sid, time=None, duration=None, status="scheduled", day=DAY, **kwargs):
        return Session(id=sid, date=day, time=time, duration=duration, status=status, **kwargs)
    return build


@pytest.fixture
def paid_february():
    def build(*student_ids):
        return [StudentPayments(sid, [MonthlyPayment(month=2, year=2026, is_paid=True)]) for sid in student_ids]
    return build


@pytest.fixture
def suggestion():
    def build(sid, score=70, tier=2, created_at="2026-03-10T10:00:00", condition_key=None,
              entity=None, kind="pattern", student_id="s1", message=None, status="pending"):
        related = None
        if condition_key or entity:
            entity_type, entity_id = entity or ("session", "x")
            related = RelatedEntity(type=entity_type, id=entity_id,
                                    condition_key=condition_key or f"cond:{entity_id}")
        return Suggestion(
            id=sid,
            type=kind,
            priority="critical" if score >= 100 else "high",
            priority_score=score,
            tier=tier,
            message=message or f"message for {sid}",
            action=f"open_student:{student_id}",
            created_at=created_at,
            student_id=student_id,
            related_entity=related,
            status=status,
        )
    return build
