"""State transition rules.

Pure functions: given an entity's last-known state and an action, compute
the complete next state. No I/O happens here, so the rules can be tested
without a store.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, NamedTuple, Optional

from ..entities import Entity, StatePatch
from ..errors import ValidationError
from .states import (
    ApprovalStatus,
    LifecycleState,
    StageStatus,
    WorkflowStage,
    parse_phase,
)


class ActionType(str, Enum):
    """Actions that change an entity's approval state."""

    APPROVE = "approve"
    REJECT = "reject"
    RESET = "reset"


class TransitionRule(NamedTuple):
    """Target state written by an action.

    ``None`` for lifecycle or stage means the current value is kept.
    ``takes_phase`` means the action moves the entity to the given phase.
    """

    action: ActionType
    stage_status: StageStatus
    approval_status: ApprovalStatus
    lifecycle_state: Optional[LifecycleState]
    takes_phase: bool
    requires_comment: bool = False


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ActionType.APPROVE, StageStatus.APPROVED, ApprovalStatus.APPROVED,
                   LifecycleState.ACTIVE, takes_phase=True),
    TransitionRule(ActionType.REJECT, StageStatus.BLOCKED, ApprovalStatus.REJECTED,
                   LifecycleState.ACTIVE, takes_phase=True, requires_comment=True),
    TransitionRule(ActionType.RESET, StageStatus.IN_PROGRESS, ApprovalStatus.PENDING,
                   None, takes_phase=False),
]

RULES_BY_ACTION: Dict[ActionType, TransitionRule] = {}
for rule in TRANSITION_RULES:
    RULES_BY_ACTION[rule.action] = rule


@dataclass(frozen=True)
class Action:
    """A requested transition, validated on construction."""

    type: ActionType
    phase: Optional[WorkflowStage] = None
    comment: Optional[str] = None

    def __post_init__(self):
        rule = RULES_BY_ACTION[self.type]
        if rule.takes_phase:
            if self.phase is None:
                raise ValidationError(f"{self.type.value} requires a phase")
            try:
                object.__setattr__(self, "phase", parse_phase(self.phase))
            except ValueError as e:
                raise ValidationError(str(e)) from None
        if rule.requires_comment:
            comment = (self.comment or "").strip()
            if not comment:
                raise ValidationError("A rejection comment is required")
            object.__setattr__(self, "comment", comment)

    @classmethod
    def approve(cls, phase) -> "Action":
        return cls(ActionType.APPROVE, phase=phase)

    @classmethod
    def reject(cls, phase, comment: Optional[str]) -> "Action":
        return cls(ActionType.REJECT, phase=phase, comment=comment)

    @classmethod
    def reset(cls) -> "Action":
        return cls(ActionType.RESET)

    @property
    def rule(self) -> TransitionRule:
        return RULES_BY_ACTION[self.type]


def next_state(entity: Optional[Entity], action: Action) -> StatePatch:
    """Compute the full next state for an action.

    Args:
        entity: Last-known entity, or None if it has not been created yet
        action: The validated action

    Returns:
        StatePatch with every dimension the action determines. For Reset
        the lifecycle and stage are carried over from ``entity`` so that
        they are visibly unchanged; for an unknown entity they are left
        unset and the store keeps whatever it has.
    """
    rule = action.rule

    if rule.takes_phase:
        lifecycle_state = rule.lifecycle_state
        workflow_stage = action.phase
    elif entity is not None:
        lifecycle_state = entity.lifecycle_state
        workflow_stage = entity.workflow_stage
    else:
        lifecycle_state = None
        workflow_stage = None

    return StatePatch(
        stage_status=rule.stage_status,
        approval_status=rule.approval_status,
        lifecycle_state=lifecycle_state,
        workflow_stage=workflow_stage,
        rejection_comment=action.comment if rule.requires_comment else None,
    )
