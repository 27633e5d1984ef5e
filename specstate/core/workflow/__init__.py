"""Entity approval workflow.

``states`` defines the four state dimensions and their invariants;
``rules`` computes the next state for an Approve, Reject or Reset action.
"""

from .states import (
    ApprovalStatus,
    DEFAULT_PHASE_CATEGORIES,
    LifecycleState,
    PHASE_ORDER,
    StageStatus,
    WorkflowStage,
    parse_phase,
)

__all__ = [
    "ApprovalStatus",
    "DEFAULT_PHASE_CATEGORIES",
    "LifecycleState",
    "PHASE_ORDER",
    "StageStatus",
    "WorkflowStage",
    "parse_phase",
]
