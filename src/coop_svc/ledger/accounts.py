"""Member directory and the account changes (create/update/close) applied to it."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .base import (
    LedgerBook,
    LedgerError,
    StatusChange,
    StatusMachine,
    UnknownEntityError,
    dump_record,
    load_record,
    now_iso,
)

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    CLOSE = "CLOSE"


class ChangeStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    VERIFIED = "VERIFIED"
    APPROVED = "APPROVED"
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


C = ChangeStatus

CHANGE_MACHINE = StatusMachine("account change", {
    C.PENDING: frozenset({C.IN_REVIEW, C.REJECTED, C.CANCELLED}),
    C.IN_REVIEW: frozenset({C.VERIFIED, C.REJECTED}),
    C.VERIFIED: frozenset({C.APPROVED, C.REJECTED}),
    C.APPROVED: frozenset({C.APPLIED}),
})


@dataclass(slots=True)
class Member:
    id: str
    profile: dict[str, Any] = field(default_factory=dict)
    status: MemberStatus = MemberStatus.ACTIVE
    created_at: str = ""
    updated_at: str = ""


@dataclass(slots=True)
class AccountChange:
    id: str
    kind: ChangeKind
    member_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    requested_by: str = ""
    status: ChangeStatus = ChangeStatus.PENDING
    status_history: list[StatusChange] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


class AccountBook(LedgerBook):
    """
    Thread-safe member directory plus pending changes to it.

    A change only touches the directory when it is APPLIED.
    """

    def __init__(self) -> None:
        super().__init__()
        self._members: dict[str, Member] = {}
        self._changes: dict[str, AccountChange] = {}

    # -- members --

    def add_member(self, member_id: str, profile: dict[str, Any] | None = None) -> Member:
        """Register a member directly (seeding, imports)."""
        with self._lock:
            if member_id in self._members:
                raise LedgerError(f"Member already exists: {member_id}")
            now = now_iso()
            member = Member(id=member_id, profile=copy.deepcopy(profile or {}), created_at=now, updated_at=now)
            self._members[member_id] = member
            self._changed()
            return replace(member, profile=copy.deepcopy(member.profile))

    def get_member(self, member_id: str) -> Member | None:
        with self._lock:
            member = self._members.get(member_id)
            return replace(member, profile=copy.deepcopy(member.profile)) if member else None

    # -- changes --

    def open_change(
        self,
        kind: ChangeKind,
        member_id: str,
        fields: dict[str, Any] | None = None,
        requested_by: str = "",
    ) -> AccountChange:
        """Record a requested change to the directory in PENDING."""
        if not member_id:
            raise LedgerError("'member_id' is required")
        with self._lock:
            now = now_iso()
            change = AccountChange(
                id=self._next_id("AC"),
                kind=kind,
                member_id=member_id,
                fields=copy.deepcopy(fields or {}),
                requested_by=requested_by,
                created_at=now,
                updated_at=now,
            )
            self._changes[change.id] = change
            logger.info(f"Account change opened: {change.id} {kind.value} for {member_id}")
            self._changed()
            return self._copy(change)

    def get_change(self, change_id: str) -> AccountChange | None:
        with self._lock:
            change = self._changes.get(change_id)
            return self._copy(change) if change else None

    def status_of(self, change_id: str) -> ChangeStatus:
        with self._lock:
            return self._require(change_id).status

    def check_transition(self, change_id: str, target: ChangeStatus) -> None:
        """
        Raises:
            LedgerError: If the edge is illegal or the change cannot be applied
        """
        with self._lock:
            change = self._require(change_id)
            CHANGE_MACHINE.check(change.status, target)
            if target == ChangeStatus.APPLIED:
                self._check_applicable(change)

    def update_status(
        self,
        change_id: str,
        target: ChangeStatus,
        actor_id: str,
        notes: str = "",
    ) -> AccountChange:
        """Move a change along its lifecycle; APPLIED writes it to the directory."""
        with self._lock:
            change = self._require(change_id)
            CHANGE_MACHINE.check(change.status, target)
            if target == ChangeStatus.APPLIED:
                self._apply(change)
            CHANGE_MACHINE.advance(change, target, actor_id, notes)
            logger.info(f"Account change {change_id} -> {target.value} by {actor_id}")
            self._changed()
            return self._copy(change)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "members": [dump_record(m) for m in self._members.values()],
                "changes": [dump_record(c) for c in self._changes.values()],
            }

    def restore_snapshot(self, data: dict) -> int:
        members = [load_record(Member, item, status=MemberStatus) for item in data.get("members") or []]
        changes = [
            load_record(AccountChange, item, kind=ChangeKind, status=ChangeStatus)
            for item in data.get("changes") or []
        ]
        with self._lock:
            self._members = {m.id: m for m in members}
            self._changes = {c.id: c for c in changes}
            return len(members) + len(changes)

    def _check_applicable(self, change: AccountChange) -> None:
        member = self._members.get(change.member_id)
        if change.kind == ChangeKind.CREATE:
            if member is not None:
                raise LedgerError(f"Member already exists: {change.member_id}")
            return
        if member is None:
            raise LedgerError(f"Cannot {change.kind.value.lower()} unknown member: {change.member_id}")
        if member.status == MemberStatus.CLOSED:
            raise LedgerError(f"Member account is closed: {change.member_id}")

    def _apply(self, change: AccountChange) -> None:
        self._check_applicable(change)
        now = now_iso()
        if change.kind == ChangeKind.CREATE:
            self._members[change.member_id] = Member(
                id=change.member_id,
                profile=copy.deepcopy(change.fields),
                created_at=now,
                updated_at=now,
            )
            return
        member = self._members[change.member_id]
        if change.kind == ChangeKind.UPDATE:
            member.profile.update(copy.deepcopy(change.fields))
        else:
            member.status = MemberStatus.CLOSED
        member.updated_at = now

    def _require(self, change_id: str) -> AccountChange:
        change = self._changes.get(change_id)
        if change is None:
            raise UnknownEntityError(f"Account change not found: {change_id}")
        return change

    @staticmethod
    def _copy(change: AccountChange) -> AccountChange:
        return replace(
            change,
            fields=copy.deepcopy(change.fields),
            status_history=list(change.status_history),
        )
