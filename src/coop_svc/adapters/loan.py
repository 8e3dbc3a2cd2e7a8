"""Loan adapter - keeps loan application requests in step with their loans."""

from __future__ import annotations

from typing import Any

from ..ledger.base import LedgerError
from ..ledger.loans import LoanBook, LoanStatus
from ..requests.types import RequestStatus, RequestType
from .base import LedgerAdapter, identity_targets

R = RequestStatus


class LoanAdapter(LedgerAdapter):
    """
    Adapter for the ``loan`` domain module.

    Completing a loan request disburses the loan. DISBURSED, ACTIVE and
    COMPLETED loans all read as COMPLETED; DEFAULTED, RESTRUCTURED and
    WRITTEN_OFF have no request equivalent, so the request keeps its last
    known status.

    Content:
        amount: Principal requested (required)
        tenure_months: Repayment period (default 12)
        purpose: Free text
        member_id: Borrower (default: the initiator)
    """

    status_map = {
        "PENDING": R.PENDING,
        "IN_REVIEW": R.IN_REVIEW,
        "REVIEWED": R.REVIEWED,
        "APPROVED": R.APPROVED,
        "REJECTED": R.REJECTED,
        "DISBURSED": R.COMPLETED,
        "ACTIVE": R.COMPLETED,
        "COMPLETED": R.COMPLETED,
        "DEFAULTED": None,
        "RESTRUCTURED": None,
        "WRITTEN_OFF": None,
        "CANCELLED": R.CANCELLED,
    }
    target_map = identity_targets(
        R.IN_REVIEW, R.REVIEWED, R.APPROVED, R.REJECTED, R.CANCELLED,
        COMPLETED=LoanStatus.DISBURSED.value,
    )

    book: LoanBook

    def __init__(self, book: LoanBook | None = None):
        super().__init__(book or LoanBook())

    @property
    def domain_module(self) -> str:
        return "loan"

    @property
    def request_types(self) -> frozenset[RequestType]:
        return frozenset({RequestType.LOAN_APPLICATION})

    def open_entity(self, request_type: RequestType, content: dict[str, Any], initiator_id: str) -> str:
        try:
            loan = self.book.open_loan(
                member_id=str(content.get("member_id") or initiator_id),
                amount=content.get("amount"),
                tenure_months=content.get("tenure_months", 12),
                purpose=str(content.get("purpose", "")),
            )
        except LedgerError as e:
            raise self._invalid_content(e) from e
        return loan.id

    def _domain_status(self, entity_id: str) -> LoanStatus:
        return self.book.status_of(entity_id)

    def _check(self, entity_id: str, domain_target: str) -> None:
        self.book.check_transition(entity_id, LoanStatus(domain_target))

    def _update(self, entity_id: str, domain_target: str, actor_id: str, notes: str) -> None:
        self.book.update_status(entity_id, LoanStatus(domain_target), actor_id, notes)
