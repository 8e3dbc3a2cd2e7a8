"""Personal savings book - member savings plans and withdrawals from them."""

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


class PlanStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"
    SUSPENDED = "SUSPENDED"
    CLOSED = "CLOSED"


class PlanWithdrawalStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"


P = PlanStatus
PW = PlanWithdrawalStatus

PLAN_MACHINE = StatusMachine("personal savings plan", {
    P.PENDING: frozenset({P.IN_REVIEW, P.DECLINED, P.CANCELLED}),
    P.IN_REVIEW: frozenset({P.REVIEWED, P.DECLINED}),
    P.REVIEWED: frozenset({P.APPROVED, P.DECLINED}),
    P.APPROVED: frozenset({P.ACTIVE}),
    P.ACTIVE: frozenset({P.SUSPENDED, P.CLOSED}),
    P.SUSPENDED: frozenset({P.ACTIVE, P.CLOSED}),
})

PLAN_WITHDRAWAL_MACHINE = StatusMachine("personal savings withdrawal", {
    PW.PENDING: frozenset({PW.IN_REVIEW, PW.DECLINED, PW.CANCELLED}),
    PW.IN_REVIEW: frozenset({PW.REVIEWED, PW.DECLINED}),
    PW.REVIEWED: frozenset({PW.APPROVED, PW.DECLINED}),
    PW.APPROVED: frozenset({PW.PAID}),
})


@dataclass(slots=True)
class SavingsPlan:
    id: str
    member_id: str
    plan_name: str
    target_amount: Decimal | None = None
    balance: Decimal = Decimal("0")
    status: PlanStatus = PlanStatus.PENDING
    status_history: list[StatusChange] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


@dataclass(slots=True)
class PlanWithdrawal:
    id: str
    plan_id: str
    member_id: str
    amount: Decimal
    reason: str = ""
    status: PlanWithdrawalStatus = PlanWithdrawalStatus.PENDING
    status_history: list[StatusChange] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


class PersonalSavingsBook(LedgerBook):
    """
    Thread-safe personal savings plans and their withdrawals.

    Plan ids start with ``PSP-`` and withdrawal ids with ``PSW-``; both live
    in the same book so a payout can check and debit its plan atomically.
    """

    def __init__(self) -> None:
        super().__init__()
        self._plans: dict[str, SavingsPlan] = {}
        self._withdrawals: dict[str, PlanWithdrawal] = {}

    # -- plans --

    def open_plan(self, member_id: str, plan_name: str, target_amount: object = None) -> SavingsPlan:
        """Record a plan creation request in PENDING."""
        if not plan_name or not str(plan_name).strip():
            raise LedgerError("'plan_name' is required")
        target = to_amount(target_amount, "target_amount") if target_amount is not None else None
        with self._lock:
            now = now_iso()
            plan = SavingsPlan(
                id=self._next_id("PSP"),
                member_id=member_id,
                plan_name=str(plan_name).strip(),
                target_amount=target,
                created_at=now,
                updated_at=now,
            )
            self._plans[plan.id] = plan
            logger.info(f"Personal savings plan opened: {plan.id} '{plan.plan_name}' for {member_id}")
            self._changed()
            return replace(plan, status_history=list(plan.status_history))

    def get_plan(self, plan_id: str) -> SavingsPlan | None:
        with self._lock:
            plan = self._plans.get(plan_id)
            return replace(plan, status_history=list(plan.status_history)) if plan else None

    def deposit(self, plan_id: str, amount: object) -> Decimal:
        """
        Credit an active plan. Returns the new plan balance.

        Raises:
            LedgerError: If the plan is not ACTIVE
        """
        value = to_amount(amount)
        with self._lock:
            plan = self._require_plan(plan_id)
            if plan.status != PlanStatus.ACTIVE:
                raise LedgerError(f"Plan {plan_id} is {plan.status.value}; deposits need an ACTIVE plan")
            plan.balance += value
            plan.updated_at = now_iso()
            self._changed()
            return plan.balance

    def update_plan_status(
        self,
        plan_id: str,
        target: PlanStatus,
        actor_id: str,
        notes: str = "",
    ) -> SavingsPlan:
        with self._lock:
            plan = self._require_plan(plan_id)
            PLAN_MACHINE.advance(plan, target, actor_id, notes)
            logger.info(f"Personal savings plan {plan_id} -> {target.value} by {actor_id}")
            self._changed()
            return replace(plan, status_history=list(plan.status_history))

    # -- withdrawals --

    def open_withdrawal(
        self,
        plan_id: str,
        member_id: str,
        amount: object,
        reason: str = "",
    ) -> PlanWithdrawal:
        """
        Record a withdrawal request against a plan in PENDING.

        Raises:
            UnknownEntityError: If the plan does not exist
            LedgerError: If the plan belongs to another member
        """
        value = to_amount(amount)
        with self._lock:
            plan = self._require_plan(plan_id)
            if plan.member_id != member_id:
                raise LedgerError(f"Plan {plan_id} does not belong to {member_id}")
            now = now_iso()
            withdrawal = PlanWithdrawal(
                id=self._next_id("PSW"),
                plan_id=plan_id,
                member_id=member_id,
                amount=value,
                reason=reason,
                created_at=now,
                updated_at=now,
            )
            self._withdrawals[withdrawal.id] = withdrawal
            logger.info(f"Personal savings withdrawal opened: {withdrawal.id} on {plan_id} amount {value}")
            self._changed()
            return replace(withdrawal, status_history=list(withdrawal.status_history))

    def get_withdrawal(self, withdrawal_id: str) -> PlanWithdrawal | None:
        with self._lock:
            withdrawal = self._withdrawals.get(withdrawal_id)
            if withdrawal is None:
                return None
            return replace(withdrawal, status_history=list(withdrawal.status_history))

    def update_withdrawal_status(
        self,
        withdrawal_id: str,
        target: PlanWithdrawalStatus,
        actor_id: str,
        notes: str = "",
    ) -> PlanWithdrawal:
        """Move a plan withdrawal along its lifecycle, debiting the plan on PAID."""
        with self._lock:
            withdrawal = self._require_withdrawal(withdrawal_id)
            PLAN_WITHDRAWAL_MACHINE.check(withdrawal.status, target)
            if target == PlanWithdrawalStatus.PAID:
                plan = self._check_payout(withdrawal)
                plan.balance -= withdrawal.amount
                plan.updated_at = now_iso()
            PLAN_WITHDRAWAL_MACHINE.advance(withdrawal, target, actor_id, notes)
            logger.info(f"Personal savings withdrawal {withdrawal_id} -> {target.value} by {actor_id}")
            self._changed()
            return replace(withdrawal, status_history=list(withdrawal.status_history))

    # -- shared --

    def kind_of(self, entity_id: str) -> str:
        """'plan' or 'withdrawal'."""
        with self._lock:
            if entity_id in self._plans:
                return "plan"
            if entity_id in self._withdrawals:
                return "withdrawal"
            raise UnknownEntityError(f"Personal savings record not found: {entity_id}")

    def status_of(self, entity_id: str) -> PlanStatus | PlanWithdrawalStatus:
        with self._lock:
            if self.kind_of(entity_id) == "plan":
                return self._plans[entity_id].status
            return self._withdrawals[entity_id].status

    def check_transition(self, entity_id: str, target: str) -> None:
        """
        Raises:
            LedgerError: If the edge is illegal, or a payout is not covered by an ACTIVE plan
        """
        with self._lock:
            if self.kind_of(entity_id) == "plan":
                PLAN_MACHINE.check(self._plans[entity_id].status, PlanStatus(target))
                return
            withdrawal = self._withdrawals[entity_id]
            PLAN_WITHDRAWAL_MACHINE.check(withdrawal.status, PlanWithdrawalStatus(target))
            if target == PlanWithdrawalStatus.PAID.value:
                self._check_payout(withdrawal)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "plans": [dump_record(p) for p in self._plans.values()],
                "withdrawals": [dump_record(w) for w in self._withdrawals.values()],
            }

    def restore_snapshot(self, data: dict) -> int:
        plans = [
            load_record(SavingsPlan, item, target_amount=Decimal, balance=Decimal, status=PlanStatus)
            for item in data.get("plans") or []
        ]
        withdrawals = [
            load_record(PlanWithdrawal, item, amount=Decimal, status=PlanWithdrawalStatus)
            for item in data.get("withdrawals") or []
        ]
        with self._lock:
            self._plans = {p.id: p for p in plans}
            self._withdrawals = {w.id: w for w in withdrawals}
            return len(plans) + len(withdrawals)

    def _check_payout(self, withdrawal: PlanWithdrawal) -> SavingsPlan:
        plan = self._require_plan(withdrawal.plan_id)
        if plan.status != PlanStatus.ACTIVE:
            raise LedgerError(f"Plan {plan.id} is {plan.status.value}; payouts need an ACTIVE plan")
        if plan.balance < withdrawal.amount:
            raise LedgerError(
                f"Insufficient plan balance on {plan.id}: "
                f"requested {withdrawal.amount}, available {plan.balance}"
            )
        return plan

    def _require_plan(self, plan_id: str) -> SavingsPlan:
        plan = self._plans.get(plan_id)
        if plan is None:
            raise UnknownEntityError(f"Personal savings plan not found: {plan_id}")
        return plan

    def _require_withdrawal(self, withdrawal_id: str) -> PlanWithdrawal:
        withdrawal = self._withdrawals.get(withdrawal_id)
        if withdrawal is None:
            raise UnknownEntityError(f"Personal savings withdrawal not found: {withdrawal_id}")
        return withdrawal
