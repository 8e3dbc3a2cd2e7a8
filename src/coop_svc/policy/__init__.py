"""
Permission and approval-level policy.

Roles carry an approval level (0-5), a can-approve flag, module access and
permissions. The policy is one pure function every transition consults.
"""

from .types import (
    MAX_APPROVAL_LEVEL,
    MIN_APPROVAL_LEVEL,
    GatedAction,
    Module,
    RoleApprovalProfile,
)
from .policy import can_perform, explain, required_level
from .roles import (
    DEFAULT_ROLES,
    REQUEST_PERMISSIONS,
    RoleDirectory,
    load_roles_from_yaml,
)

__all__ = [
    "MAX_APPROVAL_LEVEL",
    "MIN_APPROVAL_LEVEL",
    "GatedAction",
    "Module",
    "RoleApprovalProfile",
    "can_perform",
    "explain",
    "required_level",
    "DEFAULT_ROLES",
    "REQUEST_PERMISSIONS",
    "RoleDirectory",
    "load_roles_from_yaml",
]
