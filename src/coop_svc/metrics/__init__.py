"""Approval metrics - read-only dashboard projection."""

from .projection import ApprovalMetrics

__all__ = ["ApprovalMetrics"]
