"""
Suggestion Engine: runs every rule over the same snapshot, de-duplicates by
id, sorts most urgent first and caps the batch.

Ordering: tier ascending, then score, then the in-tier sub-order, then the
session start (earliest first), then created_at oldest first, then id.
SuggestionQueue.get_current_suggestion uses the same key.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

from tutor_assist.engine.models import (
    Student, StudentPayments, Suggestion, suggestion_sort_key,
)
from tutor_assist.engine.rules import DEFAULT_RULES, Rule, RuleContext
from tutor_assist.engine.timing import DEFAULT_SESSION_DURATION, DEFAULT_SESSION_TIME

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5

PaymentsSnapshot = Union[Dict[str, StudentPayments], Iterable[StudentPayments], None]


def _index_payments(payments: PaymentsSnapshot) -> Dict[str, StudentPayments]:
    if not payments:
        return {}
    if isinstance(payments, dict):
        return dict(payments)
    return {p.student_id: p for p in payments}


class SuggestionEngine:
    def __init__(self, rules: Optional[List[Rule]] = None,
                 max_suggestions: int = MAX_SUGGESTIONS,
                 default_time: str = DEFAULT_SESSION_TIME,
                 default_duration: int = DEFAULT_SESSION_DURATION):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)
        self.max_suggestions = max_suggestions
        self.default_time = default_time
        self.default_duration = default_duration

    def generate_suggestions(self, roster: Iterable[Student], payments: PaymentsSnapshot,
                             now: datetime) -> List[Suggestion]:
        ctx = RuleContext(
            roster=list(roster),
            payments=_index_payments(payments),
            now=now,
            default_time=self.default_time,
            default_duration=self.default_duration,
        )

        by_id: Dict[str, Suggestion] = {}
        for rule in self.rules:
            produced = rule(ctx)
            for suggestion in produced:
                by_id[suggestion.id] = suggestion
            ctx.emitted.extend(produced)

        # sort the whole batch before capping it
        ranked = sorted(by_id.values(), key=suggestion_sort_key)
        batch = ranked[:self.max_suggestions]
        logger.debug("Engine run at %s: %d candidate(s), returning %d",
                     now.isoformat(), len(ranked), len(batch))
        return batch


def generate_suggestions(roster: Iterable[Student], payments: PaymentsSnapshot,
                         now: datetime) -> List[Suggestion]:
    return SuggestionEngine().generate_suggestions(roster, payments, now)
