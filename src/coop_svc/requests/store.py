"""Request store interface, query filter and page types."""

from __future__ import annotations

import math
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

from ..errors import ValidationError
from ..policy.types import Module
from .types import HistoryEntry, Request, RequestStatus, RequestType, StatusUpdate

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

SORT_FIELDS: dict[str, Callable[[Request], object]] = {
    "created_at": lambda r: r.created_at or "",
    "updated_at": lambda r: r.updated_at or "",
    "priority": lambda r: r.priority.rank,
    "status": lambda r: r.status.value,
    "type": lambda r: r.type.value,
    "current_approval_level": lambda r: r.current_approval_level,
}


def new_request_id() -> str:
    return f"REQ-{uuid.uuid4().hex[:12].upper()}"


@dataclass(frozen=True, slots=True)
class ListFilter:
    """Criteria for listing requests. Unset fields match everything."""
    type: RequestType | None = None
    status: RequestStatus | None = None
    statuses: frozenset[RequestStatus] = frozenset()
    module: Module | None = None
    initiator_id: str | None = None
    actor_id: str | None = None      # initiator or any step approver
    created_from: str | None = None
    created_to: str | None = None

    def matches(self, request: Request) -> bool:
        if self.type is not None and request.type != self.type:
            return False
        if self.status is not None and request.status != self.status:
            return False
        if self.statuses and request.status not in self.statuses:
            return False
        if self.module is not None and request.module != self.module:
            return False
        if self.initiator_id is not None and request.initiator_id != self.initiator_id:
            return False
        if self.actor_id is not None:
            approvers = {s.approver_id for s in request.approval_steps}
            if request.initiator_id != self.actor_id and self.actor_id not in approvers:
                return False
        if self.created_from is not None and (request.created_at or "") < self.created_from:
            return False
        if self.created_to is not None and (request.created_at or "") > self.created_to:
            return False
        return True


@dataclass(slots=True)
class Page:
    """One page of a listing. Serialized flat as ``{data, meta}``."""
    data: list[Request] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def normalize_paging(
    page: int,
    limit: int,
    sort_by: str,
    sort_order: str,
    max_page_size: int = MAX_PAGE_SIZE,
) -> tuple[int, int, str, bool]:
    """
    Validate paging arguments.

    Returns (page, capped limit, sort field, descending).

    Raises:
        ValidationError: On page/limit below 1 or an unknown sort field/order
    """
    if page < 1:
        raise ValidationError(f"page must be >= 1, got {page}")
    if limit < 1:
        raise ValidationError(f"limit must be >= 1, got {limit}")
    if sort_by not in SORT_FIELDS:
        raise ValidationError(
            f"Cannot sort by '{sort_by}'. Allowed: {', '.join(sorted(SORT_FIELDS))}"
        )
    order = sort_order.lower()
    if order not in ("asc", "desc"):
        raise ValidationError(f"sort_order must be 'asc' or 'desc', got '{sort_order}'")
    return page, min(limit, max_page_size), sort_by, order == "desc"


def sort_and_slice(
    requests: list[Request],
    page: int,
    limit: int,
    sort_by: str,
    descending: bool,
) -> Page:
    """Sort matched requests and cut out the requested page."""
    key = SORT_FIELDS[sort_by]
    # Stable secondary order by id so equal keys page deterministically.
    ordered = sorted(requests, key=lambda r: r.id)
    ordered.sort(key=key, reverse=descending)
    start = (page - 1) * limit
    return Page(data=ordered[start:start + limit], total=len(ordered), page=page, limit=limit)


class RequestStore(ABC):
    """
    Abstract persistence for requests.

    Implementations must make ``compare_and_set`` atomic: the status write,
    step/level update and history append happen together, and only when the
    stored status still equals ``expected_status``.
    """

    max_page_size: int = MAX_PAGE_SIZE

    @abstractmethod
    def create(self, request: Request) -> Request:
        """Persist a new request, assigning id and timestamps."""
        ...

    @abstractmethod
    def get(self, request_id: str) -> Request | None:
        """Get a request by id (a detached copy), or None."""
        ...

    @abstractmethod
    def delete(self, request_id: str, expected_status: RequestStatus | None = None) -> bool:
        """
        Hard-remove a request. Returns True if it existed.

        With ``expected_status`` the removal is conditional: the request must
        still have that status and an empty history, else StaleStateError.
        """
        ...

    @abstractmethod
    def list_by_filter(
        self,
        filters: ListFilter | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Page:
        """Filtered, sorted, 1-indexed page of requests."""
        ...

    @abstractmethod
    def append_history(self, request_id: str, entry: HistoryEntry) -> Request:
        """Append one history entry without changing status."""
        ...

    @abstractmethod
    def compare_and_set(
        self,
        request_id: str,
        expected_status: RequestStatus,
        update: StatusUpdate,
    ) -> Request:
        """
        Conditionally write a transition.

        Raises:
            NotFoundError: If the request does not exist
            StaleStateError: If the stored status no longer equals expected_status
        """
        ...

    @abstractmethod
    def all_requests(self) -> list[Request]:
        ...

    @abstractmethod
    def restore(self, request: Request) -> Request:
        """Insert a request exactly as given (snapshot reload)."""
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    def close(self) -> None:
        """Release resources (no-op by default)."""
        pass
