"""Pydantic models for Request API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# Request Body Models
# =============================================================================

class LinkedEntityModel(BaseModel):
    """Domain record a request is backed by."""
    domain_module: str
    entity_id: str


class CreateRequestBody(BaseModel):
    """Body for creating a new request."""
    type: str
    content: dict[str, Any] = Field(default_factory=dict)
    linked_entity: LinkedEntityModel | None = None
    priority: str | None = None


class TransitionBody(BaseModel):
    """Body for a transition command (review, approve, reject...)."""
    action: str
    notes: str = ""


# =============================================================================
# Response Models
# =============================================================================

class ApprovalStepModel(BaseModel):
    """One stage of the approval chain."""
    level: int
    approver_role: str
    status: str = "PENDING"
    approver_id: str | None = None
    acted_at: str | None = None
    notes: str = ""


class HistoryEntryModel(BaseModel):
    """A recorded status change."""
    from_status: str
    to_status: str
    actor_id: str
    timestamp: str
    notes: str = ""


class RequestModel(BaseModel):
    """Full representation of a request."""
    id: str
    type: str
    module: str
    status: str
    initiator_id: str
    linked_entity: LinkedEntityModel | None = None
    content: dict[str, Any] = Field(default_factory=dict)
    priority: str = "NORMAL"
    approval_steps: list[ApprovalStepModel] = Field(default_factory=list)
    current_approval_level: int = 1
    history: list[HistoryEntryModel] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None


class PageMeta(BaseModel):
    """Paging metadata for list responses."""
    total: int
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")

    model_config = {"populate_by_name": True}


class RequestListResponse(BaseModel):
    """Flat list envelope: always ``{data, meta}``."""
    data: list[RequestModel]
    meta: PageMeta


class PendingCountResponse(BaseModel):
    count: int


class MetricsResponse(BaseModel):
    """Dashboard counts."""
    pending: int
    by_status: dict[str, int]
    by_level: dict[str, int]
    by_type: dict[str, int]


class ErrorResponse(BaseModel):
    """Error body for every workflow failure."""
    error: str
    detail: str
    retryable: bool = False
