"""Policy types - roles, modules and gated actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

MIN_APPROVAL_LEVEL = 0
MAX_APPROVAL_LEVEL = 5


class Module(str, Enum):
    """Functional area a role may be granted access to."""
    ADMIN = "ADMIN"
    ACCOUNT = "ACCOUNT"
    USER = "USER"
    LOAN = "LOAN"
    SAVINGS = "SAVINGS"
    SHARES = "SHARES"
    SYSTEM = "SYSTEM"
    REPORTS = "REPORTS"
    TRANSACTION = "TRANSACTION"
    REQUEST = "REQUEST"
    MEMBERS = "MEMBERS"


@dataclass(frozen=True, slots=True)
class RoleApprovalProfile:
    """
    Approval attributes of an actor's role.

    Owned by role administration; the workflow only reads it.
    ``permissions`` maps a permission name to the approval level that
    permission itself demands (None when it carries no level of its own).
    """
    role: str
    approval_level: int = 0
    can_approve: bool = False
    module_access: frozenset[Module] = frozenset()
    permissions: dict[str, int | None] = field(default_factory=dict)
    actor_id: str | None = None

    def __post_init__(self) -> None:
        if not MIN_APPROVAL_LEVEL <= self.approval_level <= MAX_APPROVAL_LEVEL:
            raise ValueError(
                f"approval_level must be between {MIN_APPROVAL_LEVEL} and "
                f"{MAX_APPROVAL_LEVEL}, got {self.approval_level}"
            )

    def has_permission(self, name: str) -> bool:
        return name in self.permissions

    def for_actor(self, actor_id: str) -> RoleApprovalProfile:
        """Return a copy of this profile bound to a specific actor."""
        return RoleApprovalProfile(
            role=self.role,
            approval_level=self.approval_level,
            can_approve=self.can_approve,
            module_access=self.module_access,
            permissions=dict(self.permissions),
            actor_id=actor_id,
        )


@dataclass(frozen=True, slots=True)
class GatedAction:
    """An action the policy is asked about."""
    permission: str
    module: Module
    min_approval_level: int = 0
    requires_approval: bool = True   # approval actions also need can_approve
