"""Workflow error taxonomy.

Every failure of a request operation is raised as one of these. The HTTP
layer maps them to status codes; callers use ``retryable`` to tell a stale
read (refetch and retry) from a domain failure (retry fails the same way).
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base exception for request workflow errors."""

    code: str = "WORKFLOW_ERROR"
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
        }


class NotFoundError(WorkflowError):
    """Raised when a request or domain entity does not exist."""
    code = "NOT_FOUND"
    http_status = 404


class InvalidTransitionError(WorkflowError):
    """Raised when the requested edge is not legal from the current status."""
    code = "INVALID_TRANSITION"
    http_status = 409


class ForbiddenError(WorkflowError):
    """Raised when the policy denies the actor."""
    code = "FORBIDDEN"
    http_status = 403


class StaleStateError(WorkflowError):
    """Raised when a concurrent transition already moved the request."""
    code = "STALE_STATE"
    http_status = 409
    retryable = True

    def __init__(
        self,
        message: str,
        expected: str | None = None,
        actual: str | None = None,
    ):
        super().__init__(message, {"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class DomainSyncFailure(WorkflowError):
    """Raised when a domain module could not perform its half of a transition.

    The request is guaranteed unchanged when this is raised.
    """
    code = "DOMAIN_SYNC_FAILURE"
    http_status = 422

    def __init__(self, message: str, domain_module: str | None = None, entity_id: str | None = None):
        super().__init__(message, {"domain_module": domain_module, "entity_id": entity_id})
        self.domain_module = domain_module
        self.entity_id = entity_id


class ValidationError(WorkflowError):
    """Raised on malformed input (missing reason, bad page, unknown status)."""
    code = "VALIDATION_ERROR"
    http_status = 400
