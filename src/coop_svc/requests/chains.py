"""Approval chains - the configured stages each request type walks through."""

from __future__ import annotations

from typing import Any

from .types import ApprovalStep, RequestType

# (level, approver role, stage description)
ChainSpec = list[tuple[int, str, str]]

DEFAULT_CHAINS: dict[RequestType, ChainSpec] = {
    RequestType.LOAN_APPLICATION: [
        (1, "ADMIN", "Initial loan application review"),
        (2, "TREASURER", "Financial verification and review"),
        (3, "CHAIRMAN", "Final loan approval"),
        (4, "TREASURER", "Loan disbursement processing"),
    ],
    RequestType.SAVINGS_WITHDRAWAL: [
        (1, "ADMIN", "Initial withdrawal request review"),
        (2, "TREASURER", "Financial verification"),
        (3, "CHAIRMAN", "Final withdrawal approval"),
        (4, "TREASURER", "Withdrawal processing"),
    ],
    RequestType.ACCOUNT_CLOSURE: [
        (1, "ADMIN", "Initial savings and share withdrawal review"),
        (2, "TREASURER", "Financial verification"),
        (3, "CHAIRMAN", "Final share withdrawal approval"),
        (4, "TREASURER", "Account closure processing"),
    ],
    RequestType.PERSONAL_SAVINGS_CREATION: [
        (1, "TREASURER", "Initial personal savings creation review"),
        (2, "CHAIRMAN", "Financial verification"),
    ],
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: [
        (1, "TREASURER", "Initial personal savings withdrawal review"),
        (2, "CHAIRMAN", "Approval for personal savings withdrawal"),
        (3, "TREASURER", "Withdrawal processing"),
    ],
    RequestType.BIODATA_APPROVAL: [
        (1, "ADMIN", "Initial biodata verification"),
        (2, "CHAIRMAN", "Final biodata approval"),
    ],
    RequestType.ACCOUNT_UPDATE: [
        (1, "ADMIN", "Account update verification"),
    ],
}

FALLBACK_CHAIN: ChainSpec = [(1, "ADMIN", "Request review")]


class ChainCatalog:
    """Approval chains by request type, with per-type overrides from config."""

    def __init__(self, overrides: dict[str, list[dict[str, Any]]] | None = None):
        self._chains: dict[RequestType, ChainSpec] = dict(DEFAULT_CHAINS)
        for type_name, stages in (overrides or {}).items():
            self._chains[RequestType(type_name)] = [
                (int(s["level"]), str(s["approver_role"]), str(s.get("notes", "")))
                for s in stages
            ]

    def spec_for(self, request_type: RequestType) -> ChainSpec:
        return sorted(self._chains.get(request_type, FALLBACK_CHAIN))

    def build(self, request_type: RequestType) -> list[ApprovalStep]:
        """Fresh, all-pending steps for a new request of this type."""
        return [
            ApprovalStep(level=level, approver_role=role, notes=notes)
            for level, role, notes in self.spec_for(request_type)
        ]

    def first_role(self, request_type: RequestType) -> str:
        return self.spec_for(request_type)[0][1]
