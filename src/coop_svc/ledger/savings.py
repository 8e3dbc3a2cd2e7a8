"""Savings book - member savings balances and withdrawal requests against them."""

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


class WithdrawalStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


W = WithdrawalStatus

WITHDRAWAL_MACHINE = StatusMachine("savings withdrawal", {
    W.PENDING: frozenset({W.IN_REVIEW, W.REJECTED, W.CANCELLED}),
    W.IN_REVIEW: frozenset({W.REVIEWED, W.REJECTED}),
    W.REVIEWED: frozenset({W.APPROVED, W.REJECTED}),
    W.APPROVED: frozenset({W.PAID}),
})


@dataclass(slots=True)
class SavingsWithdrawal:
    id: str
    member_id: str
    amount: Decimal
    reason: str = ""
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    status_history: list[StatusChange] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    paid_at: str | None = None


class SavingsBook(LedgerBook):
    """
    Thread-safe savings balances and the withdrawals drawn on them.

    A withdrawal only debits the balance when it is paid out.
    """

    def __init__(self) -> None:
        super().__init__()
        self._balances: dict[str, Decimal] = {}
        self._withdrawals: dict[str, SavingsWithdrawal] = {}

    # -- balances --

    def deposit(self, member_id: str, amount: object) -> Decimal:
        """Credit a member's savings. Returns the new balance."""
        value = to_amount(amount)
        with self._lock:
            balance = self._balances.get(member_id, Decimal("0")) + value
            self._balances[member_id] = balance
            self._changed()
            return balance

    def balance(self, member_id: str) -> Decimal:
        with self._lock:
            return self._balances.get(member_id, Decimal("0"))

    # -- withdrawals --

    def open_withdrawal(self, member_id: str, amount: object, reason: str = "") -> SavingsWithdrawal:
        """
        Record a withdrawal request in PENDING.

        The balance is not checked here; it may change before payout.
        """
        value = to_amount(amount)
        with self._lock:
            now = now_iso()
            withdrawal = SavingsWithdrawal(
                id=self._next_id("SW"),
                member_id=member_id,
                amount=value,
                reason=reason,
                created_at=now,
                updated_at=now,
            )
            self._withdrawals[withdrawal.id] = withdrawal
            logger.info(f"Savings withdrawal opened: {withdrawal.id} for {member_id} amount {value}")
            self._changed()
            return self._copy(withdrawal)

    def get(self, withdrawal_id: str) -> SavingsWithdrawal | None:
        with self._lock:
            withdrawal = self._withdrawals.get(withdrawal_id)
            return self._copy(withdrawal) if withdrawal else None

    def status_of(self, withdrawal_id: str) -> WithdrawalStatus:
        with self._lock:
            return self._require(withdrawal_id).status

    def check_transition(self, withdrawal_id: str, target: WithdrawalStatus) -> None:
        """
        Raises:
            LedgerError: If the edge is illegal or payout would overdraw savings
        """
        with self._lock:
            withdrawal = self._require(withdrawal_id)
            WITHDRAWAL_MACHINE.check(withdrawal.status, target)
            if target == WithdrawalStatus.PAID:
                self._check_funds(withdrawal)

    def update_status(
        self,
        withdrawal_id: str,
        target: WithdrawalStatus,
        actor_id: str,
        notes: str = "",
    ) -> SavingsWithdrawal:
        """Move a withdrawal along its lifecycle, debiting savings on PAID."""
        with self._lock:
            withdrawal = self._require(withdrawal_id)
            WITHDRAWAL_MACHINE.check(withdrawal.status, target)
            if target == WithdrawalStatus.PAID:
                self._check_funds(withdrawal)
                self._balances[withdrawal.member_id] -= withdrawal.amount
            WITHDRAWAL_MACHINE.advance(withdrawal, target, actor_id, notes)
            if target == WithdrawalStatus.PAID:
                withdrawal.paid_at = withdrawal.updated_at
            logger.info(f"Savings withdrawal {withdrawal_id} -> {target.value} by {actor_id}")
            self._changed()
            return self._copy(withdrawal)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "balances": {member_id: str(b) for member_id, b in self._balances.items()},
                "withdrawals": [dump_record(w) for w in self._withdrawals.values()],
            }

    def restore_snapshot(self, data: dict) -> int:
        balances = {str(k): Decimal(str(v)) for k, v in (data.get("balances") or {}).items()}
        withdrawals = [
            load_record(SavingsWithdrawal, item, amount=Decimal, status=WithdrawalStatus)
            for item in data.get("withdrawals") or []
        ]
        with self._lock:
            self._balances = balances
            self._withdrawals = {w.id: w for w in withdrawals}
            return len(withdrawals)

    def _check_funds(self, withdrawal: SavingsWithdrawal) -> None:
        available = self._balances.get(withdrawal.member_id, Decimal("0"))
        if available < withdrawal.amount:
            raise LedgerError(
                f"Insufficient savings balance for {withdrawal.member_id}: "
                f"requested {withdrawal.amount}, available {available}"
            )

    def _require(self, withdrawal_id: str) -> SavingsWithdrawal:
        withdrawal = self._withdrawals.get(withdrawal_id)
        if withdrawal is None:
            raise UnknownEntityError(f"Savings withdrawal not found: {withdrawal_id}")
        return withdrawal

    @staticmethod
    def _copy(withdrawal: SavingsWithdrawal) -> SavingsWithdrawal:
        return replace(withdrawal, status_history=list(withdrawal.status_history))
