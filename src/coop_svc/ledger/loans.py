"""Loan book - loan records and their lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum

from .base import (
    LedgerBook,
    LedgerError,
    StatusChange,
    StatusMachine,
    UnknownEntityError,
    dump_record,
    load_record,
    now_iso,
    to_amount,
)

logger = logging.getLogger(__name__)


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DISBURSED = "DISBURSED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"
    RESTRUCTURED = "RESTRUCTURED"
    WRITTEN_OFF = "WRITTEN_OFF"
    CANCELLED = "CANCELLED"


S = LoanStatus

LOAN_MACHINE = StatusMachine("loan", {
    S.PENDING: frozenset({S.IN_REVIEW, S.REJECTED, S.CANCELLED}),
    S.IN_REVIEW: frozenset({S.REVIEWED, S.REJECTED}),
    S.REVIEWED: frozenset({S.APPROVED, S.REJECTED}),
    S.APPROVED: frozenset({S.DISBURSED, S.REJECTED}),
    S.DISBURSED: frozenset({S.ACTIVE}),
    S.ACTIVE: frozenset({S.COMPLETED, S.DEFAULTED}),
    S.DEFAULTED: frozenset({S.ACTIVE, S.COMPLETED, S.RESTRUCTURED, S.WRITTEN_OFF}),
    S.RESTRUCTURED: frozenset({S.ACTIVE, S.DEFAULTED}),
})


@dataclass(slots=True)
class Loan:
    id: str
    member_id: str
    amount: Decimal
    tenure_months: int = 12
    purpose: str = ""
    status: LoanStatus = LoanStatus.PENDING
    status_history: list[StatusChange] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    disbursed_at: str | None = None
    completed_at: str | None = None


class LoanBook(LedgerBook):
    """Thread-safe registry of loans."""

    def __init__(self) -> None:
        super().__init__()
        self._loans: dict[str, Loan] = {}

    def open_loan(
        self,
        member_id: str,
        amount: object,
        tenure_months: int = 12,
        purpose: str = "",
    ) -> Loan:
        """
        Record a new loan application in PENDING.

        Raises:
            LedgerError: On a non-positive amount or tenure
        """
        principal = to_amount(amount)
        try:
            tenure = int(tenure_months)
        except (TypeError, ValueError):
            raise LedgerError(f"'tenure_months' must be a whole number, got {tenure_months!r}")
        if tenure < 1:
            raise LedgerError(f"Loan tenure must be at least 1 month, got {tenure}")
        with self._lock:
            now = now_iso()
            loan = Loan(
                id=self._next_id("LN"),
                member_id=member_id,
                amount=principal,
                tenure_months=tenure,
                purpose=purpose,
                created_at=now,
                updated_at=now,
            )
            self._loans[loan.id] = loan
            logger.info(f"Loan opened: {loan.id} for {member_id} amount {principal}")
            self._changed()
            return replace(loan, status_history=list(loan.status_history))

    def get(self, loan_id: str) -> Loan | None:
        with self._lock:
            loan = self._loans.get(loan_id)
            return replace(loan, status_history=list(loan.status_history)) if loan else None

    def status_of(self, loan_id: str) -> LoanStatus:
        with self._lock:
            return self._require(loan_id).status

    def check_transition(self, loan_id: str, target: LoanStatus) -> None:
        """
        Raises:
            LedgerError: If the loan cannot move to ``target`` now
        """
        with self._lock:
            LOAN_MACHINE.check(self._require(loan_id).status, target)

    def update_status(
        self,
        loan_id: str,
        target: LoanStatus,
        actor_id: str,
        notes: str = "",
    ) -> Loan:
        """
        Move a loan along its lifecycle.

        Also used by the loan module for out-of-band changes such as
        DISBURSED -> ACTIVE or ACTIVE -> DEFAULTED.
        """
        with self._lock:
            loan = self._require(loan_id)
            LOAN_MACHINE.advance(loan, target, actor_id, notes)
            if target == LoanStatus.DISBURSED:
                loan.disbursed_at = loan.updated_at
            elif target == LoanStatus.COMPLETED:
                loan.completed_at = loan.updated_at
            logger.info(f"Loan {loan_id} -> {target.value} by {actor_id}")
            self._changed()
            return replace(loan, status_history=list(loan.status_history))

    def all_loans(self) -> list[Loan]:
        with self._lock:
            return [replace(l, status_history=list(l.status_history)) for l in self._loans.values()]

    def snapshot(self) -> dict:
        with self._lock:
            return {"loans": [dump_record(l) for l in self._loans.values()]}

    def restore_snapshot(self, data: dict) -> int:
        loans = [
            load_record(Loan, item, amount=Decimal, status=LoanStatus, tenure_months=int)
            for item in data.get("loans") or []
        ]
        with self._lock:
            self._loans = {loan.id: loan for loan in loans}
            return len(loans)

    def _require(self, loan_id: str) -> Loan:
        loan = self._loans.get(loan_id)
        if loan is None:
            raise UnknownEntityError(f"Loan not found: {loan_id}")
        return loan
