"""Boundary translation of list query parameters into a store filter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import ValidationError
from ..policy.types import Module
from .store import ListFilter
from .types import RequestStatus, RequestType

if TYPE_CHECKING:
    from ..adapters.registry import AdapterRegistry

logger = logging.getLogger(__name__)


def _parse_enum(enum_cls, value: str, label: str):
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown {label} '{value}'. Allowed: {allowed}")


def resolve_status_filter(
    value: str | None,
    adapters: AdapterRegistry | None = None,
    request_type: RequestType | None = None,
) -> RequestStatus | None:
    """
    Translate a caller's status name into a RequestStatus.

    Accepts request statuses directly and domain aliases such as loan
    ``DISBURSED`` (-> COMPLETED). When ``request_type`` is given only that
    type's adapter is consulted.

    Raises:
        ValidationError: If the name is unknown or has no request equivalent
    """
    if value is None or not value.strip():
        return None
    name = value.strip().upper()
    try:
        return RequestStatus(name)
    except ValueError:
        pass

    if adapters is not None:
        if request_type is not None:
            adapter = adapters.for_type(request_type)
            candidates = [adapter] if adapter else []
        else:
            candidates = adapters.all_adapters()
        resolved = {a.status_aliases()[name] for a in candidates if name in a.status_aliases()}
        if len(resolved) == 1:
            status = resolved.pop()
            logger.debug(f"Status alias {name} -> {status.value}")
            return status
        if len(resolved) > 1:
            raise ValidationError(
                f"Status '{value}' is ambiguous across domain modules; filter by type"
            )

    raise ValidationError(f"Unknown or unmapped status '{value}'")


def build_filter(
    *,
    type: str | None = None,
    status: str | None = None,
    module: str | None = None,
    initiator_id: str | None = None,
    actor_id: str | None = None,
    created_from: str | None = None,
    created_to: str | None = None,
    adapters: AdapterRegistry | None = None,
) -> ListFilter:
    """Build a ListFilter from raw query-string values."""
    request_type = _parse_enum(RequestType, type, "request type") if type else None
    return ListFilter(
        type=request_type,
        status=resolve_status_filter(status, adapters, request_type),
        module=_parse_enum(Module, module, "module") if module else None,
        initiator_id=initiator_id or None,
        actor_id=actor_id or None,
        created_from=created_from or None,
        created_to=created_to or None,
    )
