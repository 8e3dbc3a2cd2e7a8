"""
Requests and their approval chains

A request is a generic unit of work (loan application, withdrawal, account
change...) that walks a configured chain of role-gated approval stages.
The store owns requests and their append-only history.
"""

from .types import (
    PENDING_STATUSES,
    TERMINAL_STATUSES,
    ApprovalStep,
    HistoryEntry,
    LinkedEntity,
    Priority,
    Request,
    RequestStatus,
    RequestType,
    StatusUpdate,
    StepStatus,
)
from .chains import DEFAULT_CHAINS, ChainCatalog
from .store import ListFilter, Page, RequestStore
from .registry import InMemoryRequestStore
from .sqlite_store import SqliteRequestStore
from .loader import load_requests_from_yaml, save_requests_to_yaml
from .query import build_filter, resolve_status_filter

__all__ = [
    "PENDING_STATUSES",
    "TERMINAL_STATUSES",
    "ApprovalStep",
    "HistoryEntry",
    "LinkedEntity",
    "Priority",
    "Request",
    "RequestStatus",
    "RequestType",
    "StatusUpdate",
    "StepStatus",
    "DEFAULT_CHAINS",
    "ChainCatalog",
    "ListFilter",
    "Page",
    "RequestStore",
    "InMemoryRequestStore",
    "SqliteRequestStore",
    "load_requests_from_yaml",
    "save_requests_to_yaml",
    "build_filter",
    "resolve_status_filter",
]
