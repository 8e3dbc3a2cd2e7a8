"""FastAPI routes for the request approval workflow."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Query, Request as HttpRequest, Response

from ..errors import ForbiddenError, ValidationError
from ..identity.extractor import IdentityExtractor
from ..policy.types import RoleApprovalProfile
from .loader import save_requests_to_yaml
from .models import (
    ApprovalStepModel,
    CreateRequestBody,
    HistoryEntryModel,
    LinkedEntityModel,
    MetricsResponse,
    PageMeta,
    PendingCountResponse,
    RequestListResponse,
    RequestModel,
    TransitionBody,
)
from .query import build_filter
from .types import HistoryEntry, LinkedEntity, Priority, Request, RequestType

if TYPE_CHECKING:
    from ..metrics.projection import ApprovalMetrics
    from ..workflow.engine import ApprovalEngine

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/requests", tags=["Requests"])

# Configuration - set during app startup
_engine: "ApprovalEngine | None" = None
_metrics: "ApprovalMetrics | None" = None
_extractor: IdentityExtractor = IdentityExtractor()
_yaml_path: str | None = None


def configure(
    engine: "ApprovalEngine",
    metrics: "ApprovalMetrics | None" = None,
    extractor: IdentityExtractor | None = None,
    yaml_path: str | None = None,
) -> None:
    """Configure the request routes with the engine and its collaborators."""
    global _engine, _metrics, _extractor, _yaml_path
    _engine = engine
    _metrics = metrics
    _extractor = extractor or IdentityExtractor()
    _yaml_path = yaml_path


def _get_engine() -> "ApprovalEngine":
    """Get the engine, raising if not configured."""
    if _engine is None:
        raise HTTPException(status_code=503, detail="Request module not initialized")
    return _engine


def _get_metrics() -> "ApprovalMetrics":
    if _metrics is None:
        raise HTTPException(status_code=503, detail="Metrics not initialized")
    return _metrics


def _actor(http_request: HttpRequest) -> RoleApprovalProfile:
    """Resolve the calling actor's role profile."""
    identity = _extractor.extract(http_request)
    if identity.is_anonymous:
        raise ForbiddenError(f"Actor identity required ({_extractor.actor_header} header or bearer token)")
    return _get_engine().resolve_actor(identity.actor_id)


def _auto_save():
    """Auto-save requests to YAML after mutations."""
    if _yaml_path and _engine:
        try:
            save_requests_to_yaml(_yaml_path, _engine.store)
        except Exception as e:
            logger.error(f"Auto-save failed: {e}")


def _parse_type(value: str) -> RequestType:
    try:
        return RequestType(value.strip().upper())
    except ValueError:
        allowed = ", ".join(t.value for t in RequestType)
        raise ValidationError(f"Unknown request type '{value}'. Allowed: {allowed}")


def _parse_priority(value: str | None) -> Priority | None:
    if not value:
        return None
    try:
        return Priority(value.strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown priority '{value}'. Allowed: NORMAL, MEDIUM, HIGH")


def _history_to_model(h: HistoryEntry) -> HistoryEntryModel:
    return HistoryEntryModel(
        from_status=h.from_status.value,
        to_status=h.to_status.value,
        actor_id=h.actor_id,
        timestamp=h.timestamp,
        notes=h.notes,
    )


def _request_to_model(req: Request) -> RequestModel:
    """Convert a Request to Pydantic response model."""
    linked = None
    if req.linked_entity:
        linked = LinkedEntityModel(
            domain_module=req.linked_entity.domain_module,
            entity_id=req.linked_entity.entity_id,
        )

    return RequestModel(
        id=req.id,
        type=req.type.value,
        module=req.module.value,
        status=req.status.value,
        initiator_id=req.initiator_id,
        linked_entity=linked,
        content=req.content,
        priority=req.priority.value,
        approval_steps=[
            ApprovalStepModel(
                level=s.level,
                approver_role=s.approver_role,
                status=s.status.value,
                approver_id=s.approver_id,
                acted_at=s.acted_at,
                notes=s.notes,
            )
            for s in req.approval_steps
        ],
        current_approval_level=req.current_approval_level,
        history=[_history_to_model(h) for h in req.history],
        created_at=req.created_at,
        updated_at=req.updated_at,
        completed_at=req.completed_at,
    )


# =============================================================================
# Queries
# =============================================================================

@router.get("", response_model=RequestListResponse)
async def list_requests(
    type: str | None = Query(None, description="Request type"),
    status: str | None = Query(None, description="Request status or a domain alias (e.g. DISBURSED)"),
    module: str | None = Query(None),
    initiator_id: str | None = Query(None),
    actor_id: str | None = Query(None, description="Initiator or any approver"),
    created_from: str | None = Query(None),
    created_to: str | None = Query(None),
    page: int = Query(1),
    limit: int | None = Query(None, description="Page size (capped at the store maximum)"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
):
    """List requests as a flat ``{data, meta}`` envelope."""
    engine = _get_engine()
    filters = build_filter(
        type=type,
        status=status,
        module=module,
        initiator_id=initiator_id,
        actor_id=actor_id,
        created_from=created_from,
        created_to=created_to,
        adapters=engine.adapters,
    )
    result = engine.list_requests(filters, page, limit, sort_by, sort_order)
    return RequestListResponse(
        data=[_request_to_model(r) for r in result.data],
        meta=PageMeta(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
    )


@router.get("/pending-count", response_model=PendingCountResponse)
async def pending_count(
    type: str | None = Query(None),
    module: str | None = Query(None),
):
    """Number of requests waiting on first-stage action."""
    filters = build_filter(type=type, module=module)
    return PendingCountResponse(count=_get_metrics().pending_count(filters))


@router.get("/metrics", response_model=MetricsResponse)
async def request_metrics(
    type: str | None = Query(None),
    module: str | None = Query(None),
):
    """Counts by status, approval level and type."""
    filters = build_filter(type=type, module=module)
    summary = _get_metrics().summary(filters)
    return MetricsResponse(
        pending=summary["pending"],
        by_status=summary["by_status"],
        by_level={str(level): count for level, count in summary["by_level"].items()},
        by_type=summary["by_type"],
    )


@router.get("/{request_id}", response_model=RequestModel)
async def get_request(request_id: str):
    """Get a single request."""
    return _request_to_model(_get_engine().get_request(request_id))


@router.get("/{request_id}/history", response_model=list[HistoryEntryModel])
async def get_history(request_id: str):
    """Status history of a request, oldest first."""
    return [_history_to_model(h) for h in _get_engine().history(request_id)]


# =============================================================================
# Commands
# =============================================================================

@router.post("", response_model=RequestModel, status_code=201)
async def create_request(body: CreateRequestBody, http_request: HttpRequest):
    """
    Create a new request.

    Domain-typed requests (loan, withdrawals, personal savings, account
    changes) open their domain record unless ``linked_entity`` is given.
    """
    engine = _get_engine()
    actor = _actor(http_request)

    linked = None
    if body.linked_entity:
        linked = LinkedEntity(
            domain_module=body.linked_entity.domain_module,
            entity_id=body.linked_entity.entity_id,
        )

    request = engine.create_request(
        request_type=_parse_type(body.type),
        content=body.content,
        initiator_id=actor.actor_id,
        linked_entity=linked,
        priority=_parse_priority(body.priority),
    )
    _auto_save()
    return _request_to_model(request)


@router.post("/{request_id}/transition", response_model=RequestModel)
async def transition_request(request_id: str, body: TransitionBody, http_request: HttpRequest):
    """Apply a transition: review, mark_reviewed, approve, complete, reject, cancel."""
    engine = _get_engine()
    actor = _actor(http_request)
    request = engine.transition(request_id, body.action, actor, body.notes)
    _auto_save()
    return _request_to_model(request)


@router.delete("/{request_id}", status_code=204)
async def delete_request(request_id: str, http_request: HttpRequest):
    """Hard-delete an untouched PENDING request (initiator only)."""
    engine = _get_engine()
    actor = _actor(http_request)
    engine.delete_request(request_id, actor)
    _auto_save()
    return Response(status_code=204)
