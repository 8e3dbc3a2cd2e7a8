"""
Approval workflow

The request state machine: guarded, compare-and-set transitions that move
a request and its linked domain record together.
"""

from .transitions import ACTION_RULES, EDGES, Action, ActionRule, is_legal, parse_action
from .engine import SYSTEM_ACTOR, ApprovalEngine

__all__ = [
    "ACTION_RULES",
    "EDGES",
    "Action",
    "ActionRule",
    "is_legal",
    "parse_action",
    "SYSTEM_ACTOR",
    "ApprovalEngine",
]
