"""
Role directory - role definitions and actor assignments.

Provides the identity lookup the workflow consumes
(``get_actor_role_profile``) plus YAML loading for role configuration.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

import yaml

from ..errors import ForbiddenError
from .types import Module, RoleApprovalProfile

logger = logging.getLogger(__name__)


# Request workflow permissions and the level each demands on its own.
REQUEST_PERMISSIONS: dict[str, int | None] = {
    "VIEW_REQUESTS": None,
    "REVIEW_REQUESTS": 1,     # first level approval
    "VERIFY_REQUESTS": 2,     # second level approval
    "APPROVE_REQUESTS": 3,    # final approval
    "PROCESS_REQUESTS": 2,    # disburse / pay out approved requests
}

_FINANCE_MODULES = frozenset({
    Module.ACCOUNT, Module.LOAN, Module.SAVINGS, Module.SHARES,
    Module.REPORTS, Module.TRANSACTION,
})


def _grant(*names: str) -> dict[str, int | None]:
    return {name: REQUEST_PERMISSIONS.get(name) for name in names}


DEFAULT_ROLES: dict[str, RoleApprovalProfile] = {
    "SUPER_ADMIN": RoleApprovalProfile(
        role="SUPER_ADMIN",
        approval_level=5,
        can_approve=True,
        module_access=frozenset(Module),
        permissions=dict(REQUEST_PERMISSIONS),
    ),
    "CHAIRMAN": RoleApprovalProfile(
        role="CHAIRMAN",
        approval_level=3,
        can_approve=True,
        module_access=_FINANCE_MODULES | {Module.ADMIN},
        permissions=_grant("VIEW_REQUESTS", "REVIEW_REQUESTS", "VERIFY_REQUESTS", "APPROVE_REQUESTS"),
    ),
    "TREASURER": RoleApprovalProfile(
        role="TREASURER",
        approval_level=2,
        can_approve=True,
        module_access=_FINANCE_MODULES,
        permissions=_grant("VIEW_REQUESTS", "REVIEW_REQUESTS", "VERIFY_REQUESTS", "PROCESS_REQUESTS"),
    ),
    "ADMIN": RoleApprovalProfile(
        role="ADMIN",
        approval_level=1,
        can_approve=True,
        module_access=_FINANCE_MODULES | {Module.ADMIN},
        permissions=_grant("VIEW_REQUESTS", "REVIEW_REQUESTS"),
    ),
    "MEMBER": RoleApprovalProfile(
        role="MEMBER",
        approval_level=0,
        can_approve=False,
        module_access=_FINANCE_MODULES | {Module.MEMBERS},
        permissions=_grant("VIEW_REQUESTS"),
    ),
}


class RoleDirectory:
    """
    Thread-safe registry of roles and the actors assigned to them.
    """

    def __init__(self, roles: dict[str, RoleApprovalProfile] | None = None):
        self._roles: dict[str, RoleApprovalProfile] = dict(roles if roles is not None else DEFAULT_ROLES)
        self._assignments: dict[str, str] = {}   # actor_id -> role name
        self._lock = threading.RLock()

    def register_role(self, profile: RoleApprovalProfile) -> None:
        """Register a role, replacing any role of the same name."""
        with self._lock:
            self._roles[profile.role] = profile

    def get_role(self, name: str) -> RoleApprovalProfile | None:
        with self._lock:
            return self._roles.get(name)

    def role_names(self) -> list[str]:
        with self._lock:
            return sorted(self._roles)

    def assign(self, actor_id: str, role: str) -> None:
        """Assign an actor to a role."""
        with self._lock:
            if role not in self._roles:
                raise KeyError(f"Role '{role}' not found")
            self._assignments[actor_id] = role

    def actors_with_role(self, role: str) -> list[str]:
        with self._lock:
            return sorted(a for a, r in self._assignments.items() if r == role)

    def get_actor_role_profile(self, actor_id: str) -> RoleApprovalProfile:
        """
        Resolve the current role profile for an actor.

        Raises:
            ForbiddenError: If the actor has no role assignment
        """
        with self._lock:
            role = self._assignments.get(actor_id)
            if role is None:
                raise ForbiddenError(f"Actor '{actor_id}' has no role assignment")
            return self._roles[role].for_actor(actor_id)


def _parse_permissions(raw: Any) -> dict[str, int | None]:
    if isinstance(raw, dict):
        return {str(name): (int(level) if level is not None else None) for name, level in raw.items()}
    return {str(name): REQUEST_PERMISSIONS.get(str(name)) for name in raw or []}


def role_from_dict(name: str, data: dict[str, Any]) -> RoleApprovalProfile:
    """Build a role profile from its YAML mapping."""
    modules = data.get("module_access", [])
    if modules == "*":
        module_access = frozenset(Module)
    else:
        module_access = frozenset(Module(m) for m in modules)

    return RoleApprovalProfile(
        role=name,
        approval_level=int(data.get("approval_level", 0)),
        can_approve=bool(data.get("can_approve", False)),
        module_access=module_access,
        permissions=_parse_permissions(data.get("permissions")),
    )


def load_roles_from_yaml(
    file_path: str | Path,
    directory: RoleDirectory | None = None,
) -> RoleDirectory:
    """
    Load roles and actor assignments from a YAML file.

    Expected format:
        roles:
          TREASURER:
            approval_level: 2
            can_approve: true
            module_access: [LOAN, SAVINGS]
            permissions: [REVIEW_REQUESTS, PROCESS_REQUESTS]
        assignments:
          ada: TREASURER

    Roles in the file are added on top of the defaults.
    """
    directory = directory or RoleDirectory()
    path = Path(file_path)
    if not path.exists():
        logger.info(f"Roles file not found: {path}")
        return directory

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    for name, role_data in (data.get("roles") or {}).items():
        if isinstance(role_data, dict):
            directory.register_role(role_from_dict(name, role_data))

    for actor_id, role in (data.get("assignments") or {}).items():
        directory.assign(str(actor_id), role)

    logger.info(
        f"Loaded {len(data.get('roles') or {})} roles and "
        f"{len(data.get('assignments') or {})} assignments from {path}"
    )
    return directory
