"""
Dismissal history: every suggestion that left the queue, newest first.

Entries older than the retention window are pruned; while an entry is
kept, its id is suppressed from coming back as pending.
"""

import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from tutor_assist.engine.models import (
    DismissedSuggestion, REASON_ACTIONED, REASON_CONDITION_RESOLVED, REASON_MANUAL,
)

HISTORY_RETENTION_DAYS = 30


def _comparable(value: datetime, reference: datetime) -> datetime:
    if value.tzinfo is None and reference.tzinfo is not None:
        return value.replace(tzinfo=reference.tzinfo)
    if value.tzinfo is not None and reference.tzinfo is None:
        return value.astimezone().replace(tzinfo=None)
    return value


class DismissalHistory:
    def __init__(self, entries: Optional[List[DismissedSuggestion]] = None,
                 retention_days: int = HISTORY_RETENTION_DAYS):
        self._log: List[DismissedSuggestion] = list(entries or [])
        self.retention_days = retention_days

    def __len__(self) -> int:
        return len(self._log)

    def record(self, entry: DismissedSuggestion):
        self._log.insert(0, entry)

    def ids(self) -> Set[str]:
        return {d.id for d in self._log}

    def prune(self, now: datetime) -> bool:
        """Drop expired or unreadable entries. Returns True if anything was removed."""
        cutoff = now - timedelta(days=self.retention_days)
        kept = []
        for entry in self._log:
            when = entry.dismissed_datetime()
            if when is not None and _comparable(when, cutoff) >= cutoff:
                kept.append(entry)
        changed = len(kept) != len(self._log)
        self._log = kept
        return changed

    def get_subject_history(self, subject_id: str, reason: Optional[str] = None,
                            limit: int = 50) -> List[DismissedSuggestion]:
        results = [d for d in self._log if d.subject_id == subject_id]
        if reason:
            results = [d for d in results if d.reason == reason]
        return results[:limit]

    def get_all(self) -> List[DismissedSuggestion]:
        return list(self._log)

    def stats(self) -> Dict:
        total = len(self._log)
        by_reason = {REASON_MANUAL: 0, REASON_ACTIONED: 0, REASON_CONDITION_RESOLVED: 0}
        for d in self._log:
            by_reason[d.reason] = by_reason.get(d.reason, 0) + 1
        return {
            "total_dismissed": total,
            "by_reason": by_reason,
            "manual_rate": round(by_reason[REASON_MANUAL] / max(total, 1) * 100, 1),
            "actioned_rate": round(by_reason[REASON_ACTIONED] / max(total, 1) * 100, 1),
        }

    def to_json(self) -> str:
        return json.dumps([d.to_dict() for d in self._log])

    @classmethod
    def from_json(cls, raw: Optional[str], retention_days: int = HISTORY_RETENTION_DAYS) -> "DismissalHistory":
        if not raw:
            return cls(retention_days=retention_days)
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError("history payload is not a list")
        entries = [DismissedSuggestion.from_dict(item) for item in data]
        return cls(entries, retention_days=retention_days)
