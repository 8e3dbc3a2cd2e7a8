"""Account adapter - member account creation, update and closure requests."""

from __future__ import annotations

from typing import Any

from ..ledger.accounts import AccountBook, ChangeKind, ChangeStatus
from ..ledger.base import LedgerError
from ..requests.types import RequestStatus, RequestType
from .base import LedgerAdapter, identity_targets

R = RequestStatus

_KINDS = {
    RequestType.ACCOUNT_CREATION: ChangeKind.CREATE,
    RequestType.ACCOUNT_UPDATE: ChangeKind.UPDATE,
    RequestType.ACCOUNT_CLOSURE: ChangeKind.CLOSE,
}


class AccountAdapter(LedgerAdapter):
    """
    Adapter for the ``account`` domain module.

    VERIFIED reads as REVIEWED and APPLIED as COMPLETED. Completion writes
    the change into the member directory.

    Content:
        member_id: Member the change is for (default: the initiator)
        fields: Profile fields to set (CREATE / UPDATE); any other top-level
            keys are used when ``fields`` is absent
    """

    status_map = {
        "PENDING": R.PENDING,
        "IN_REVIEW": R.IN_REVIEW,
        "VERIFIED": R.REVIEWED,
        "APPROVED": R.APPROVED,
        "APPLIED": R.COMPLETED,
        "REJECTED": R.REJECTED,
        "CANCELLED": R.CANCELLED,
    }
    target_map = identity_targets(
        R.IN_REVIEW, R.APPROVED, R.REJECTED, R.CANCELLED,
        REVIEWED=ChangeStatus.VERIFIED.value,
        COMPLETED=ChangeStatus.APPLIED.value,
    )

    book: AccountBook

    def __init__(self, book: AccountBook | None = None):
        super().__init__(book or AccountBook())

    @property
    def domain_module(self) -> str:
        return "account"

    @property
    def request_types(self) -> frozenset[RequestType]:
        return frozenset(_KINDS)

    def open_entity(self, request_type: RequestType, content: dict[str, Any], initiator_id: str) -> str:
        kind = _KINDS.get(request_type)
        if kind is None:
            raise self._invalid_content(LedgerError(f"No account change for {request_type.value}"))
        fields = content.get("fields")
        if fields is None:
            fields = {k: v for k, v in content.items() if k != "member_id"}
        if not isinstance(fields, dict):
            raise self._invalid_content(LedgerError("'fields' must be a mapping"))
        try:
            change = self.book.open_change(
                kind=kind,
                member_id=str(content.get("member_id") or initiator_id),
                fields=fields,
                requested_by=initiator_id,
            )
        except LedgerError as e:
            raise self._invalid_content(e) from e
        return change.id

    def _domain_status(self, entity_id: str) -> ChangeStatus:
        return self.book.status_of(entity_id)

    def _check(self, entity_id: str, domain_target: str) -> None:
        self.book.check_transition(entity_id, ChangeStatus(domain_target))

    def _update(self, entity_id: str, domain_target: str, actor_id: str, notes: str) -> None:
        self.book.update_status(entity_id, ChangeStatus(domain_target), actor_id, notes)
