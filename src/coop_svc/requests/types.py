"""Request workflow types - the generic approvable unit and its audit trail."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..policy.types import Module


class RequestStatus(str, Enum):
    """Status of a request through the approval workflow."""
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    RequestStatus.REJECTED,
    RequestStatus.COMPLETED,
    RequestStatus.CANCELLED,
})

# Statuses counted as "pending" on dashboards.
PENDING_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.IN_REVIEW})


class RequestType(str, Enum):
    """Kind of change a request asks for."""
    LOAN_APPLICATION = "LOAN_APPLICATION"
    SAVINGS_WITHDRAWAL = "SAVINGS_WITHDRAWAL"
    PERSONAL_SAVINGS_CREATION = "PERSONAL_SAVINGS_CREATION"
    PERSONAL_SAVINGS_WITHDRAWAL = "PERSONAL_SAVINGS_WITHDRAWAL"
    BIODATA_APPROVAL = "BIODATA_APPROVAL"
    ACCOUNT_CREATION = "ACCOUNT_CREATION"
    ACCOUNT_UPDATE = "ACCOUNT_UPDATE"
    ACCOUNT_CLOSURE = "ACCOUNT_CLOSURE"
    SYSTEM_ADJUSTMENT = "SYSTEM_ADJUSTMENT"

    @property
    def label(self) -> str:
        """Human-readable name used in notifications."""
        return self.value.replace("_", " ").title()


class Priority(str, Enum):
    """Sorting hint. Never used for gating."""
    NORMAL = "NORMAL"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return {"NORMAL": 0, "MEDIUM": 1, "HIGH": 2}[self.value]


class StepStatus(str, Enum):
    """Status of one stage in an approval chain."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


# Module each request type is gated on.
TYPE_MODULES: dict[RequestType, Module] = {
    RequestType.LOAN_APPLICATION: Module.LOAN,
    RequestType.SAVINGS_WITHDRAWAL: Module.SAVINGS,
    RequestType.PERSONAL_SAVINGS_CREATION: Module.SAVINGS,
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: Module.SAVINGS,
    RequestType.BIODATA_APPROVAL: Module.ACCOUNT,
    RequestType.ACCOUNT_CREATION: Module.ACCOUNT,
    RequestType.ACCOUNT_UPDATE: Module.ACCOUNT,
    RequestType.ACCOUNT_CLOSURE: Module.ACCOUNT,
    RequestType.SYSTEM_ADJUSTMENT: Module.ADMIN,
}


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class LinkedEntity:
    """The domain record a request is backed by."""
    domain_module: str    # loan | savings_withdrawal | personal_savings | account
    entity_id: str

    def __str__(self) -> str:
        return f"{self.domain_module}:{self.entity_id}"


@dataclass(slots=True)
class ApprovalStep:
    """One stage of the configured approval chain."""
    level: int
    approver_role: str
    status: StepStatus = StepStatus.PENDING
    approver_id: str | None = None
    acted_at: str | None = None
    notes: str = ""


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """A recorded status change. Never edited once appended."""
    from_status: RequestStatus
    to_status: RequestStatus
    actor_id: str
    timestamp: str
    notes: str = ""


@dataclass(slots=True)
class Request:
    """
    A generic approvable unit: something a member or officer wants to happen.

    For domain-backed requests (``linked_entity`` set) the stored status is a
    cache of the domain entity's mapped status; the domain record is the
    source of truth.
    """
    id: str
    type: RequestType
    initiator_id: str
    module: Module = Module.ADMIN
    status: RequestStatus = RequestStatus.PENDING
    linked_entity: LinkedEntity | None = None
    content: dict[str, Any] = field(default_factory=dict)
    priority: Priority = Priority.NORMAL

    approval_steps: list[ApprovalStep] = field(default_factory=list)
    current_approval_level: int = 1
    history: list[HistoryEntry] = field(default_factory=list)

    created_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None

    @property
    def is_domain_backed(self) -> bool:
        return self.linked_entity is not None

    @property
    def chain_length(self) -> int:
        return max((s.level for s in self.approval_steps), default=1)

    def step_at(self, level: int) -> ApprovalStep | None:
        for step in self.approval_steps:
            if step.level == level:
                return step
        return None

    def snapshot(self) -> Request:
        """Deep copy, so callers never hold a reference into a store."""
        return replace(
            self,
            content=copy.deepcopy(self.content),
            approval_steps=[replace(s) for s in self.approval_steps],
            history=list(self.history),
        )


@dataclass(frozen=True, slots=True)
class StatusUpdate:
    """Everything a successful transition writes, applied atomically by a store."""
    to_status: RequestStatus
    entry: HistoryEntry
    current_approval_level: int
    approval_steps: list[ApprovalStep] = field(default_factory=list)
    completed_at: str | None = None
