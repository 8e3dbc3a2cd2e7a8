"""Personal savings adapter - plan creation and plan withdrawal requests."""

from __future__ import annotations

from typing import Any

from ..errors import NotFoundError
from ..ledger.base import LedgerError, UnknownEntityError
from ..ledger.personal_savings import PersonalSavingsBook, PlanStatus, PlanWithdrawalStatus
from ..requests.types import RequestStatus, RequestType
from .base import LedgerAdapter, StatusMap, TargetMap, identity_targets

R = RequestStatus

PLAN_STATUS_MAP: StatusMap = {
    "PENDING": R.PENDING,
    "IN_REVIEW": R.IN_REVIEW,
    "REVIEWED": R.REVIEWED,
    "APPROVED": R.APPROVED,
    "ACTIVE": R.COMPLETED,
    "DECLINED": R.REJECTED,
    "CANCELLED": R.CANCELLED,
    "SUSPENDED": None,
    "CLOSED": None,
}
PLAN_TARGETS: TargetMap = identity_targets(
    R.IN_REVIEW, R.REVIEWED, R.APPROVED, R.CANCELLED,
    COMPLETED=PlanStatus.ACTIVE.value,
    REJECTED=PlanStatus.DECLINED.value,
)

WITHDRAWAL_STATUS_MAP: StatusMap = {
    "PENDING": R.PENDING,
    "IN_REVIEW": R.IN_REVIEW,
    "REVIEWED": R.REVIEWED,
    "APPROVED": R.APPROVED,
    "PAID": R.COMPLETED,
    "DECLINED": R.REJECTED,
    "CANCELLED": R.CANCELLED,
}
WITHDRAWAL_TARGETS: TargetMap = identity_targets(
    R.IN_REVIEW, R.REVIEWED, R.APPROVED, R.CANCELLED,
    COMPLETED=PlanWithdrawalStatus.PAID.value,
    REJECTED=PlanWithdrawalStatus.DECLINED.value,
)


class PersonalSavingsAdapter(LedgerAdapter):
    """
    Adapter for the ``personal_savings`` domain module.

    One module, two record kinds: completing a creation request activates
    the plan; completing a withdrawal request pays out of an ACTIVE plan.

    Content (PERSONAL_SAVINGS_CREATION):
        plan_name: Name of the plan (required)
        target_amount: Optional savings goal

    Content (PERSONAL_SAVINGS_WITHDRAWAL):
        plan_id: Plan to withdraw from (required)
        amount: Amount to withdraw (required)
        reason: Free text
    """

    book: PersonalSavingsBook

    def __init__(self, book: PersonalSavingsBook | None = None):
        super().__init__(book or PersonalSavingsBook())

    @property
    def domain_module(self) -> str:
        return "personal_savings"

    @property
    def request_types(self) -> frozenset[RequestType]:
        return frozenset({
            RequestType.PERSONAL_SAVINGS_CREATION,
            RequestType.PERSONAL_SAVINGS_WITHDRAWAL,
        })

    def open_entity(self, request_type: RequestType, content: dict[str, Any], initiator_id: str) -> str:
        member_id = str(content.get("member_id") or initiator_id)
        try:
            if request_type == RequestType.PERSONAL_SAVINGS_WITHDRAWAL:
                if not content.get("plan_id"):
                    raise LedgerError("'plan_id' is required")
                return self.book.open_withdrawal(
                    plan_id=str(content["plan_id"]),
                    member_id=member_id,
                    amount=content.get("amount"),
                    reason=str(content.get("reason", "")),
                ).id
            return self.book.open_plan(
                member_id=member_id,
                plan_name=str(content.get("plan_name", "")),
                target_amount=content.get("target_amount"),
            ).id
        except LedgerError as e:
            raise self._invalid_content(e) from e

    def status_aliases(self) -> dict[str, RequestStatus]:
        aliases = {k: v for k, v in PLAN_STATUS_MAP.items() if v is not None}
        aliases.update({k: v for k, v in WITHDRAWAL_STATUS_MAP.items() if v is not None})
        return aliases

    def _maps_for(self, entity_id: str) -> tuple[StatusMap, TargetMap]:
        try:
            kind = self.book.kind_of(entity_id)
        except UnknownEntityError as e:
            raise NotFoundError(str(e)) from e
        if kind == "plan":
            return PLAN_STATUS_MAP, PLAN_TARGETS
        return WITHDRAWAL_STATUS_MAP, WITHDRAWAL_TARGETS

    def _domain_status(self, entity_id: str) -> PlanStatus | PlanWithdrawalStatus:
        return self.book.status_of(entity_id)

    def _check(self, entity_id: str, domain_target: str) -> None:
        self.book.check_transition(entity_id, domain_target)

    def _update(self, entity_id: str, domain_target: str, actor_id: str, notes: str) -> None:
        if self.book.kind_of(entity_id) == "plan":
            self.book.update_plan_status(entity_id, PlanStatus(domain_target), actor_id, notes)
        else:
            self.book.update_withdrawal_status(
                entity_id, PlanWithdrawalStatus(domain_target), actor_id, notes
            )
