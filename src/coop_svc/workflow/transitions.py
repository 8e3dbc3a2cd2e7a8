"""Request state machine - edges, the action that drives each and its gate."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..errors import ValidationError
from ..requests.types import RequestStatus, StepStatus

R = RequestStatus


class Action(str, Enum):
    """Transition commands a caller can issue."""
    REVIEW = "review"
    MARK_REVIEWED = "mark_reviewed"
    APPROVE = "approve"
    COMPLETE = "complete"
    REJECT = "reject"
    CANCEL = "cancel"


@dataclass(frozen=True, slots=True)
class ActionRule:
    """
    How one action moves a request.

    ``permission`` None means the action is not policy-gated (cancel is
    gated on the initiator instead).
    """
    action: Action
    sources: frozenset[RequestStatus]
    target: RequestStatus
    permission: str | None = None
    min_level: int = 0
    advances_level: bool = False
    step_status: StepStatus | None = StepStatus.APPROVED


ACTION_RULES: dict[Action, ActionRule] = {
    Action.REVIEW: ActionRule(
        Action.REVIEW, frozenset({R.PENDING}), R.IN_REVIEW,
        permission="REVIEW_REQUESTS", min_level=1, advances_level=True,
    ),
    Action.MARK_REVIEWED: ActionRule(
        Action.MARK_REVIEWED, frozenset({R.IN_REVIEW}), R.REVIEWED,
        permission="VERIFY_REQUESTS", min_level=2, advances_level=True,
    ),
    Action.APPROVE: ActionRule(
        Action.APPROVE, frozenset({R.REVIEWED}), R.APPROVED,
        permission="APPROVE_REQUESTS", min_level=3, advances_level=True,
    ),
    Action.COMPLETE: ActionRule(
        Action.COMPLETE, frozenset({R.APPROVED}), R.COMPLETED,
        permission="PROCESS_REQUESTS", min_level=2,
    ),
    Action.REJECT: ActionRule(
        Action.REJECT, frozenset({R.PENDING, R.IN_REVIEW, R.REVIEWED}), R.REJECTED,
        permission="REVIEW_REQUESTS", min_level=1, step_status=StepStatus.REJECTED,
    ),
    Action.CANCEL: ActionRule(
        Action.CANCEL, frozenset({R.PENDING}), R.CANCELLED, step_status=None,
    ),
}

# Every (from, to) pair the workflow may write.
EDGES: frozenset[tuple[RequestStatus, RequestStatus]] = frozenset(
    (source, rule.target) for rule in ACTION_RULES.values() for source in rule.sources
)

_ALIASES = {
    "markreviewed": Action.MARK_REVIEWED,
    "verify": Action.MARK_REVIEWED,
    "disburse": Action.COMPLETE,
    "process": Action.COMPLETE,
    "pay": Action.COMPLETE,
}


def parse_action(name: str) -> Action:
    """
    Resolve an action name (``review``, ``mark_reviewed``, ``disburse``...).

    Raises:
        ValidationError: If the name is not a known action
    """
    key = name.strip().lower().replace("-", "_")
    try:
        return Action(key)
    except ValueError:
        pass
    action = _ALIASES.get(key.replace("_", ""))
    if action is None:
        allowed = ", ".join(a.value for a in Action)
        raise ValidationError(f"Unknown action '{name}'. Allowed: {allowed}")
    return action


def is_legal(status: RequestStatus, action: Action) -> bool:
    """Whether ``action`` has an edge out of ``status``."""
    return status in ACTION_RULES[action].sources
