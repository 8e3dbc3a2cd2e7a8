"""Permission / approval-level policy.

One centralized decision function consulted by every workflow transition.
Pure: no state, no I/O, deterministic for a given profile and action.
"""

from __future__ import annotations

from .types import GatedAction, RoleApprovalProfile


def required_level(profile: RoleApprovalProfile, action: GatedAction) -> int:
    """Level the actor must hold: the action's own minimum, raised by the
    permission's level when the role's grant carries one."""
    permission_level = profile.permissions.get(action.permission)
    if permission_level is None:
        return action.min_approval_level
    return max(action.min_approval_level, permission_level)


def explain(profile: RoleApprovalProfile, action: GatedAction) -> str | None:
    """
    Return the first reason the action is denied, or None if it is allowed.

    Checks run in a fixed order so the same denial always reports the same
    reason. Any single failing check denies.
    """
    if action.requires_approval and not profile.can_approve:
        return f"role {profile.role} cannot approve"

    if action.module not in profile.module_access:
        return f"role {profile.role} has no access to module {action.module.value}"

    if not profile.has_permission(action.permission):
        return f"role {profile.role} lacks permission {action.permission}"

    needed = required_level(profile, action)
    if profile.approval_level < needed:
        return (
            f"{action.permission} requires approval level {needed}, "
            f"role {profile.role} has {profile.approval_level}"
        )

    return None


def can_perform(profile: RoleApprovalProfile, action: GatedAction) -> bool:
    """Decide whether the actor's role may perform the action."""
    return explain(profile, action) is None
