"""In-memory observability store for eligibility computation and queue metrics."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EligibilityEventLog:
    last_computed_at: datetime | None = None
    last_computed_entity: str | None = None
    last_failure_at: datetime | None = None
    last_failure_message: str | None = None
    last_dispatch_failure_at: datetime | None = None


@dataclass
class EligibilityMetricsSnapshot:
    """Serializable snapshot returned by the internal health endpoint."""

    totals: Dict[str, int]
    per_entity_type: Dict[str, Dict[str, int]]
    rows_written: Dict[str, int]
    cache: Dict[str, int]
    events: EligibilityEventLog

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": self.totals,
            "per_entity_type": self.per_entity_type,
            "rows_written": self.rows_written,
            "cache": self.cache,
            "events": {
                "last_computed_at": self.events.last_computed_at.isoformat() if self.events.last_computed_at else None,
                "last_computed_entity": self.events.last_computed_entity,
                "last_failure_at": self.events.last_failure_at.isoformat() if self.events.last_failure_at else None,
                "last_failure_message": self.events.last_failure_message,
                "last_dispatch_failure_at": self.events.last_dispatch_failure_at.isoformat()
                if self.events.last_dispatch_failure_at
                else None,
            },
        }


@dataclass
class EligibilityObservabilityStore:
    """Counts computations, invalidations, queue dispatches and cache hits."""

    _lock: Lock = field(default_factory=Lock)
    _totals: Counter = field(default_factory=Counter)
    _per_type: Dict[str, Counter] = field(
        default_factory=lambda: {
            "computed": Counter(),
            "invalidated": Counter(),
            "failed": Counter(),
            "enqueued": Counter(),
        }
    )
    _rows: Counter = field(default_factory=Counter)
    _cache: Counter = field(default_factory=Counter)
    _events: EligibilityEventLog = field(default_factory=EligibilityEventLog)

    def record_computed(self, entity_type: str, entity_id: str, *, rows: int) -> None:
        with self._lock:
            self._totals["computed"] += 1
            self._per_type["computed"][entity_type] += 1
            self._rows[entity_type] += rows
            self._events.last_computed_at = _utcnow()
            self._events.last_computed_entity = f"{entity_type}:{entity_id}"

    def record_invalidated(self, entity_type: str) -> None:
        with self._lock:
            self._totals["invalidated"] += 1
            self._per_type["invalidated"][entity_type] += 1

    def record_failure(self, entity_type: str, error_message: str) -> None:
        with self._lock:
            self._totals["failed"] += 1
            self._per_type["failed"][entity_type] += 1
            self._events.last_failure_at = _utcnow()
            self._events.last_failure_message = error_message

    def record_enqueued(self, entity_type: str, *, deduplicated: bool) -> None:
        with self._lock:
            self._totals["deduplicated" if deduplicated else "enqueued"] += 1
            self._per_type["enqueued"][entity_type] += 1

    def record_dispatched(self, count: int = 1) -> None:
        with self._lock:
            self._totals["dispatched"] += count

    def record_dispatch_failure(self) -> None:
        with self._lock:
            self._totals["dispatch_failures"] += 1
            self._events.last_dispatch_failure_at = _utcnow()

    def record_cache(self, outcome: str) -> None:
        with self._lock:
            self._cache[outcome] += 1

    def snapshot(self) -> EligibilityMetricsSnapshot:
        with self._lock:
            events_copy = EligibilityEventLog(
                last_computed_at=self._events.last_computed_at,
                last_computed_entity=self._events.last_computed_entity,
                last_failure_at=self._events.last_failure_at,
                last_failure_message=self._events.last_failure_message,
                last_dispatch_failure_at=self._events.last_dispatch_failure_at,
            )
            return EligibilityMetricsSnapshot(
                totals=dict(self._totals),
                per_entity_type={key: dict(counter) for key, counter in self._per_type.items()},
                rows_written=dict(self._rows),
                cache=dict(self._cache),
                events=events_copy,
            )

    def reset(self) -> None:
        with self._lock:
            self._totals.clear()
            for counter in self._per_type.values():
                counter.clear()
            self._rows.clear()
            self._cache.clear()
            self._events = EligibilityEventLog()


_ELIGIBILITY_STORE = EligibilityObservabilityStore()


def get_eligibility_store() -> EligibilityObservabilityStore:
    return _ELIGIBILITY_STORE


__all__ = [
    "EligibilityMetricsSnapshot",
    "EligibilityObservabilityStore",
    "get_eligibility_store",
]
