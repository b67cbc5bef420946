"""
Suggestion Queue: the working set of pending suggestions plus the
dismissal history, showing exactly one suggestion at a time.

Lifecycle of a suggestion id:
    pending -> actioned | dismissed | condition_resolved   (all terminal)

A terminal id sits in the history and is refused by sync_from_engine until
its history entry ages out of the retention window.

Every mutation builds the new working set and history first and swaps them
in together, then persists (best effort) and notifies subscribers.
"""

import json
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from tutor_assist.engine.audit import DismissalHistory, HISTORY_RETENTION_DAYS
from tutor_assist.engine.conditions import is_condition_still_valid
from tutor_assist.engine.models import (
    DismissedSuggestion, Student, StudentPayments, Suggestion, suggestion_sort_key,
    PENDING, REASON_ACTIONED, REASON_CONDITION_RESOLVED, REASON_MANUAL,
)
from tutor_assist.engine.rules import INTERRUPT_THRESHOLD
from tutor_assist.engine.store import KeyValueStore, StoreError

logger = logging.getLogger(__name__)

HISTORY_KEY = "ai-suggestions-history"
PENDING_KEY = "ai-suggestions-pending"

_LOAD_ERRORS = (StoreError, OSError, ValueError, KeyError, TypeError)


class SuggestionQueue:
    def __init__(self, store: KeyValueStore,
                 retention_days: int = HISTORY_RETENTION_DAYS,
                 persist_pending: bool = False,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.retention_days = retention_days
        self.persist_pending = persist_pending
        self.clock = clock
        self.version = 0
        self._subscribers: List[Callable[[Dict], None]] = []

        self._history = self._load_history()
        self._suggestions: List[Suggestion] = self._load_pending() if persist_pending else []

        if self._history.prune(self.clock()):
            logger.info("Pruned expired suggestion history on load")
            self._save()

    # ── persistence ──────────────────────────────────────

    def _load_history(self) -> DismissalHistory:
        try:
            return DismissalHistory.from_json(self.store.get(HISTORY_KEY), self.retention_days)
        except _LOAD_ERRORS as e:
            logger.warning("Could not load suggestion history, starting empty: %s", e)
            return DismissalHistory(retention_days=self.retention_days)

    def _load_pending(self) -> List[Suggestion]:
        try:
            raw = self.store.get(PENDING_KEY)
            items = [Suggestion.from_dict(item) for item in json.loads(raw)] if raw else []
        except _LOAD_ERRORS as e:
            logger.warning("Could not load pending suggestions, starting empty: %s", e)
            return []
        suppressed = self._history.ids()
        return [s for s in items if s.id not in suppressed]

    def _save(self):
        try:
            self.store.set(HISTORY_KEY, self._history.to_json())
            if self.persist_pending:
                self.store.set(PENDING_KEY, json.dumps([s.to_dict() for s in self._suggestions]))
        except (StoreError, OSError, TypeError, ValueError) as e:
            # in-memory state stays authoritative
            logger.error("Could not save suggestion queue: %s", e)

    def _commit(self, suggestions: List[Suggestion], history: Optional[DismissalHistory] = None):
        history = history if history is not None else self._history
        history.prune(self.clock())
        self._history = history
        self._suggestions = suggestions
        self.version += 1
        self._save()
        snapshot = self.state()
        for callback in list(self._subscribers):
            callback(snapshot)

    # ── observation ──────────────────────────────────────

    def subscribe(self, callback: Callable[[Dict], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def state(self) -> Dict:
        return {
            "suggestions": list(self._suggestions),
            "dismissed_history": self._history.get_all(),
            "version": self.version,
            "last_updated": self.clock().isoformat(),
        }

    def pending(self) -> List[Suggestion]:
        return sorted((s for s in self._suggestions if s.status == PENDING), key=suggestion_sort_key)

    def get_current_suggestion(self) -> Optional[Suggestion]:
        pending = self.pending()
        return pending[0] if pending else None

    def pending_count(self) -> int:
        return sum(1 for s in self._suggestions if s.status == PENDING)

    def has_interrupting_suggestion(self) -> bool:
        current = self.get_current_suggestion()
        return current is not None and current.priority_score >= INTERRUPT_THRESHOLD

    def get_dismissed_history(self) -> List[DismissedSuggestion]:
        return self._history.get_all()

    def get_subject_history(self, subject_id: str, reason: Optional[str] = None,
                            limit: int = 50) -> List[DismissedSuggestion]:
        return self._history.get_subject_history(subject_id, reason, limit)

    def history_stats(self) -> Dict:
        return self._history.stats()

    # ── mutations ────────────────────────────────────────

    def sync_from_engine(self, batch: Iterable[Suggestion]) -> bool:
        """
        Reconcile a fresh engine batch with the working set.
        Returns True when a top-tier suggestion shows up that was not
        already pending.
        """
        previous_interrupts = {
            s.id for s in self._suggestions
            if s.status == PENDING and s.priority_score >= INTERRUPT_THRESHOLD
        }
        # expired entries no longer suppress anything
        history = DismissalHistory(self._history.get_all(), self.retention_days)
        history.prune(self.clock())
        suppressed = history.ids()
        existing = {s.id: s for s in self._suggestions}

        reconciled: List[Suggestion] = []
        seen = set()
        for incoming in batch:
            if incoming.id in suppressed or incoming.id in seen:
                continue
            seen.add(incoming.id)
            prior = existing.get(incoming.id)
            if prior is not None:
                reconciled.append(replace(incoming, status=prior.status, created_at=prior.created_at))
            else:
                reconciled.append(replace(incoming, status=PENDING))

        new_interrupt = any(
            s.status == PENDING and s.priority_score >= INTERRUPT_THRESHOLD and s.id not in previous_interrupts
            for s in reconciled
        )
        self._commit(reconciled, history)
        logger.debug("Synced %d suggestion(s), new interrupt=%s", len(reconciled), new_interrupt)
        return new_interrupt

    def _retire(self, matches: Callable[[Suggestion], bool], reason: str) -> int:
        retired = [s for s in self._suggestions if s.status == PENDING and matches(s)]
        if not retired:
            return 0

        now = self.clock()
        history = DismissalHistory(self._history.get_all(), self.retention_days)
        for s in retired:
            history.record(DismissedSuggestion.from_suggestion(s, reason, now))
        retired_ids = {s.id for s in retired}
        remaining = [s for s in self._suggestions if s.id not in retired_ids]

        self._commit(remaining, history)
        logger.info("Retired %d suggestion(s) as %s: %s", len(retired), reason, sorted(retired_ids))
        return len(retired)

    def mark_actioned(self, suggestion_id: str) -> bool:
        return self._retire(lambda s: s.id == suggestion_id, REASON_ACTIONED) > 0

    def mark_dismissed(self, suggestion_id: str) -> bool:
        return self._retire(lambda s: s.id == suggestion_id, REASON_MANUAL) > 0

    def resolve_by_condition(self, condition_key: str) -> int:
        return self._retire(lambda s: s.condition_key == condition_key, REASON_CONDITION_RESOLVED)

    def resolve_by_entity(self, entity_type: str, entity_id: str) -> int:
        return self._retire(
            lambda s: s.related_entity is not None
            and s.related_entity.type == entity_type
            and s.related_entity.id == entity_id,
            REASON_CONDITION_RESOLVED,
        )

    def revalidate(self, roster: List[Student], payments: Dict[str, StudentPayments],
                   now: Optional[datetime] = None) -> int:
        """Resolve every pending suggestion whose condition no longer holds."""
        now = now or self.clock()
        stale = {
            s.id for s in self._suggestions
            if s.condition_key and not is_condition_still_valid(
                s.condition_key, roster, payments, now, session_ids=s.context.get("session_ids"))
        }
        return self._retire(lambda s: s.id in stale, REASON_CONDITION_RESOLVED)

    def clear(self):
        self._commit([])
