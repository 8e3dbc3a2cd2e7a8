"""Approval metrics - cached dashboard counts over the request store."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable

from ..requests.store import ListFilter, RequestStore
from ..requests.types import PENDING_STATUSES, TERMINAL_STATUSES, RequestStatus, RequestType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricsEntry:
    """A computed value with the time it was computed."""
    value: Any
    created_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now > self.created_at + self.ttl_seconds


class ApprovalMetrics:
    """
    Read projection over the request store for dashboards.

    Values may be up to ``refresh_interval_seconds`` stale; ``invalidate``
    drops every cached value after a write. Never an authorization input.
    """

    def __init__(
        self,
        store: RequestStore,
        refresh_interval_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self.refresh_interval_seconds = refresh_interval_seconds
        self._clock = clock
        self._cache: dict[tuple[str, ListFilter], MetricsEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def pending_count(self, filters: ListFilter | None = None) -> int:
        """Requests still waiting for first-stage attention (PENDING + IN_REVIEW)."""
        return self._cached("pending", filters, self._compute_pending)

    def counts_by_status(self, filters: ListFilter | None = None) -> dict[str, int]:
        """Count per status, every status present, plus ``total``."""
        return dict(self._cached("status", filters, self._compute_by_status))

    def counts_by_level(self, filters: ListFilter | None = None) -> dict[int, int]:
        """Open (non-terminal) requests per current approval level."""
        return dict(self._cached("level", filters, self._compute_by_level))

    def counts_by_type(self, filters: ListFilter | None = None) -> dict[str, int]:
        return dict(self._cached("type", filters, self._compute_by_type))

    def summary(self, filters: ListFilter | None = None) -> dict[str, Any]:
        return {
            "pending": self.pending_count(filters),
            "by_status": self.counts_by_status(filters),
            "by_level": self.counts_by_level(filters),
            "by_type": self.counts_by_type(filters),
        }

    def invalidate(self) -> None:
        """Drop all cached values."""
        with self._lock:
            self._cache.clear()

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "entries": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
            }

    # -- internals --

    def _cached(self, kind: str, filters: ListFilter | None, compute: Callable[[ListFilter], Any]) -> Any:
        filters = filters or ListFilter()
        key = (kind, filters)
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None and not entry.is_expired(now):
                self._hits += 1
                return entry.value
            self._misses += 1

        value = compute(filters)
        with self._lock:
            self._cache[key] = MetricsEntry(value=value, created_at=now, ttl_seconds=self.refresh_interval_seconds)
        return value

    def _compute_pending(self, filters: ListFilter) -> int:
        page = self._store.list_by_filter(replace(filters, statuses=PENDING_STATUSES), page=1, limit=1)
        return page.total

    def _compute_by_status(self, filters: ListFilter) -> dict[str, int]:
        counts = {s.value: 0 for s in RequestStatus}
        total = 0
        for request in self._iter(filters):
            counts[request.status.value] += 1
            total += 1
        counts["total"] = total
        return counts

    def _compute_by_level(self, filters: ListFilter) -> dict[int, int]:
        counts: dict[int, int] = {}
        for request in self._iter(filters):
            if request.status in TERMINAL_STATUSES:
                continue
            level = request.current_approval_level
            counts[level] = counts.get(level, 0) + 1
        return dict(sorted(counts.items()))

    def _compute_by_type(self, filters: ListFilter) -> dict[str, int]:
        counts = {t.value: 0 for t in RequestType}
        for request in self._iter(filters):
            counts[request.type.value] += 1
        return counts

    def _iter(self, filters: ListFilter):
        """Walk every matching request, one store page at a time."""
        limit = self._store.max_page_size
        page_number = 1
        while True:
            page = self._store.list_by_filter(
                filters, page=page_number, limit=limit, sort_by="created_at", sort_order="asc"
            )
            yield from page.data
            if page_number >= page.total_pages:
                break
            page_number += 1
