"""Request persistence - YAML round-trip for request snapshots."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ..policy.types import Module
from .store import RequestStore
from .types import (
    TYPE_MODULES,
    ApprovalStep,
    HistoryEntry,
    LinkedEntity,
    Priority,
    Request,
    RequestStatus,
    RequestType,
    StepStatus,
)

logger = logging.getLogger(__name__)


def load_requests_from_yaml(
    path: str | Path,
    store: RequestStore,
) -> list[Request]:
    """Load requests from a YAML file into the store, keeping ids and history."""
    path = Path(path)
    if not path.exists():
        logger.info(f"Requests file not found: {path}")
        return []

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data or "requests" not in data:
        return []

    loaded = []
    for req_data in data["requests"]:
        try:
            request = _parse_request(req_data)
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping malformed request entry {req_data.get('id')!r}: {e}")
            continue
        loaded.append(store.restore(request))

    logger.info(f"Loaded {len(loaded)} requests from {path}")
    return loaded


def save_requests_to_yaml(
    path: str | Path,
    store: RequestStore,
) -> int:
    """Save all requests from the store to a YAML file."""
    path = Path(path)
    requests = store.all_requests()

    data: dict[str, Any] = {
        "requests": [_serialize_request(r) for r in requests],
    }

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    logger.info(f"Saved {len(requests)} requests to {path}")
    return len(requests)


def _parse_request(data: dict[str, Any]) -> Request:
    """Parse a single request from a dictionary."""
    request_type = RequestType(data["type"])

    linked = None
    if data.get("linked_entity"):
        le = data["linked_entity"]
        linked = LinkedEntity(domain_module=le["domain_module"], entity_id=str(le["entity_id"]))

    steps = [
        ApprovalStep(
            level=int(s["level"]),
            approver_role=s["approver_role"],
            status=StepStatus(s.get("status", "PENDING")),
            approver_id=s.get("approver_id"),
            acted_at=s.get("acted_at"),
            notes=s.get("notes", ""),
        )
        for s in data.get("approval_steps", [])
    ]

    history = [
        HistoryEntry(
            from_status=RequestStatus(h["from_status"]),
            to_status=RequestStatus(h["to_status"]),
            actor_id=h.get("actor_id", ""),
            timestamp=h.get("timestamp", ""),
            notes=h.get("notes", ""),
        )
        for h in data.get("history", [])
    ]

    module = TYPE_MODULES.get(request_type, Module.ADMIN)
    if "module" in data:
        module = Module(data["module"])

    return Request(
        id=data["id"],
        type=request_type,
        initiator_id=data.get("initiator_id", ""),
        module=module,
        status=RequestStatus(data.get("status", "PENDING")),
        linked_entity=linked,
        content=data.get("content") or {},
        priority=Priority(data.get("priority", "NORMAL")),
        approval_steps=steps,
        current_approval_level=int(data.get("current_approval_level", 1)),
        history=history,
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
        completed_at=data.get("completed_at"),
    )


def _serialize_request(req: Request) -> dict[str, Any]:
    """Serialize a request to a dictionary."""
    data: dict[str, Any] = {
        "id": req.id,
        "type": req.type.value,
        "module": req.module.value,
        "status": req.status.value,
        "initiator_id": req.initiator_id,
        "priority": req.priority.value,
        "current_approval_level": req.current_approval_level,
        "created_at": req.created_at,
        "updated_at": req.updated_at,
    }

    if req.linked_entity:
        data["linked_entity"] = {
            "domain_module": req.linked_entity.domain_module,
            "entity_id": req.linked_entity.entity_id,
        }

    if req.content:
        data["content"] = req.content

    data["approval_steps"] = [
        {
            "level": s.level,
            "approver_role": s.approver_role,
            "status": s.status.value,
            "approver_id": s.approver_id,
            "acted_at": s.acted_at,
            "notes": s.notes,
        }
        for s in req.approval_steps
    ]

    if req.history:
        data["history"] = [
            {
                "from_status": h.from_status.value,
                "to_status": h.to_status.value,
                "actor_id": h.actor_id,
                "timestamp": h.timestamp,
                "notes": h.notes,
            }
            for h in req.history
        ]

    if req.completed_at:
        data["completed_at"] = req.completed_at

    return data
