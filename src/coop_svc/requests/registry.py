"""Request registry - thread-safe in-memory request store."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from ..errors import NotFoundError, StaleStateError
from .store import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ListFilter,
    Page,
    RequestStore,
    new_request_id,
    normalize_paging,
    sort_and_slice,
)
from .types import HistoryEntry, Request, RequestStatus, StatusUpdate, utc_now

logger = logging.getLogger(__name__)


class InMemoryRequestStore(RequestStore):
    """
    Thread-safe in-memory registry of requests.

    Every read hands out a snapshot; the stored objects are only ever
    changed under the lock.
    """

    def __init__(self, max_page_size: int = MAX_PAGE_SIZE) -> None:
        self._requests: dict[str, Request] = {}
        self._lock = threading.RLock()
        self.max_page_size = max_page_size

    def create(self, request: Request) -> Request:
        """Add a new request to the registry."""
        with self._lock:
            if not request.id:
                request.id = new_request_id()
            now = utc_now()
            stored = request.snapshot()
            stored.created_at = now
            stored.updated_at = now
            self._requests[stored.id] = stored
            logger.info(f"Request created: {stored.id} ({stored.type.value}) by {stored.initiator_id}")
            return stored.snapshot()

    def get(self, request_id: str) -> Request | None:
        """Get a request by ID."""
        with self._lock:
            request = self._requests.get(request_id)
            return request.snapshot() if request else None

    def delete(self, request_id: str, expected_status: RequestStatus | None = None) -> bool:
        """Remove a request. Returns True if it existed."""
        with self._lock:
            request = self._requests.get(request_id)
            if request is not None and expected_status is not None:
                if request.status != expected_status or request.history:
                    raise StaleStateError(
                        f"Request {request_id} is {request.status.value} with "
                        f"{len(request.history)} history entries",
                        expected=expected_status.value,
                        actual=request.status.value,
                    )
            removed = self._requests.pop(request_id, None)
            if removed:
                logger.info(f"Request deleted: {request_id}")
            return removed is not None

    def list_by_filter(
        self,
        filters: ListFilter | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Page:
        page, limit, sort_by, descending = normalize_paging(
            page, limit, sort_by, sort_order, self.max_page_size
        )
        filters = filters or ListFilter()
        with self._lock:
            matched = [r.snapshot() for r in self._requests.values() if filters.matches(r)]
        return sort_and_slice(matched, page, limit, sort_by, descending)

    def append_history(self, request_id: str, entry: HistoryEntry) -> Request:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise NotFoundError(f"Request not found: {request_id}")
            request.history.append(entry)
            request.updated_at = entry.timestamp
            return request.snapshot()

    def compare_and_set(
        self,
        request_id: str,
        expected_status: RequestStatus,
        update: StatusUpdate,
    ) -> Request:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise NotFoundError(f"Request not found: {request_id}")
            if request.status != expected_status:
                raise StaleStateError(
                    f"Request {request_id} is {request.status.value}, expected {expected_status.value}",
                    expected=expected_status.value,
                    actual=request.status.value,
                )

            request.status = update.to_status
            request.current_approval_level = update.current_approval_level
            if update.approval_steps:
                request.approval_steps = [replace(s) for s in update.approval_steps]
            if update.completed_at:
                request.completed_at = update.completed_at
            request.history.append(update.entry)
            request.updated_at = update.entry.timestamp

            logger.info(f"Request {request_id} status {expected_status.value} -> {update.to_status.value}")
            return request.snapshot()

    def all_requests(self) -> list[Request]:
        """Get all requests."""
        with self._lock:
            return [r.snapshot() for r in self._requests.values()]

    def restore(self, request: Request) -> Request:
        with self._lock:
            stored = request.snapshot()
            self._requests[stored.id] = stored
            return stored.snapshot()

    def clear(self) -> None:
        """Clear all requests."""
        with self._lock:
            self._requests.clear()
