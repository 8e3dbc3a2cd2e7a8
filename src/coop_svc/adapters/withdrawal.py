"""Savings withdrawal adapter."""

from __future__ import annotations

from typing import Any

from ..ledger.base import LedgerError
from ..ledger.savings import SavingsBook, WithdrawalStatus
from ..requests.types import RequestStatus, RequestType
from .base import LedgerAdapter, identity_targets

R = RequestStatus


class SavingsWithdrawalAdapter(LedgerAdapter):
    """
    Adapter for the ``savings_withdrawal`` domain module.

    Completing the request pays the withdrawal out of the member's savings;
    an insufficient balance fails the transition and leaves both sides as
    they were.

    Content:
        amount: Amount to withdraw (required)
        reason: Free text
        member_id: Account holder (default: the initiator)
    """

    status_map = {
        "PENDING": R.PENDING,
        "IN_REVIEW": R.IN_REVIEW,
        "REVIEWED": R.REVIEWED,
        "APPROVED": R.APPROVED,
        "REJECTED": R.REJECTED,
        "PAID": R.COMPLETED,
        "CANCELLED": R.CANCELLED,
    }
    target_map = identity_targets(
        R.IN_REVIEW, R.REVIEWED, R.APPROVED, R.REJECTED, R.CANCELLED,
        COMPLETED=WithdrawalStatus.PAID.value,
    )

    book: SavingsBook

    def __init__(self, book: SavingsBook | None = None):
        super().__init__(book or SavingsBook())

    @property
    def domain_module(self) -> str:
        return "savings_withdrawal"

    @property
    def request_types(self) -> frozenset[RequestType]:
        return frozenset({RequestType.SAVINGS_WITHDRAWAL})

    def open_entity(self, request_type: RequestType, content: dict[str, Any], initiator_id: str) -> str:
        try:
            withdrawal = self.book.open_withdrawal(
                member_id=str(content.get("member_id") or initiator_id),
                amount=content.get("amount"),
                reason=str(content.get("reason", "")),
            )
        except LedgerError as e:
            raise self._invalid_content(e) from e
        return withdrawal.id

    def _domain_status(self, entity_id: str) -> WithdrawalStatus:
        return self.book.status_of(entity_id)

    def _check(self, entity_id: str, domain_target: str) -> None:
        self.book.check_transition(entity_id, WithdrawalStatus(domain_target))

    def _update(self, entity_id: str, domain_target: str, actor_id: str, notes: str) -> None:
        self.book.update_status(entity_id, WithdrawalStatus(domain_target), actor_id, notes)
