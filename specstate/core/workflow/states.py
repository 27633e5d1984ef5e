"""Entity approval states.

Every entity carries four independent state dimensions:

    lifecycle_state   draft → active → implemented → maintained → retired
    workflow_stage    intent → specification → ui_design → implementation → control_loop
    stage_status      in_progress | ready_for_approval | approved | blocked
    approval_status   pending | approved | rejected

The dimensions are not written independently. Approve, Reject and Reset
actions (see ``rules``) compute all of them together so that the
cross-dimension invariants always hold:

- approval_status = approved  ⇒ stage_status = approved
- approval_status = rejected  ⇒ stage_status = blocked and a rejection comment
"""

from enum import Enum
from typing import Dict, List, Optional, Set


class LifecycleState(str, Enum):
    """Overall lifecycle of a specification artifact."""

    DRAFT = "draft"
    ACTIVE = "active"
    IMPLEMENTED = "implemented"
    MAINTAINED = "maintained"
    RETIRED = "retired"


class WorkflowStage(str, Enum):
    """Workflow phases, in order."""

    INTENT = "intent"
    SPECIFICATION = "specification"
    UI_DESIGN = "ui_design"
    IMPLEMENTATION = "implementation"
    CONTROL_LOOP = "control_loop"


class StageStatus(str, Enum):
    """Progress of an entity within its current workflow stage."""

    IN_PROGRESS = "in_progress"
    READY_FOR_APPROVAL = "ready_for_approval"
    APPROVED = "approved"
    BLOCKED = "blocked"


class ApprovalStatus(str, Enum):
    """Review decision for an entity in its current workflow stage."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Initial state of an entity created on first sync
DEFAULT_LIFECYCLE_STATE = LifecycleState.DRAFT
DEFAULT_WORKFLOW_STAGE = WorkflowStage.INTENT
DEFAULT_STAGE_STATUS = StageStatus.IN_PROGRESS
DEFAULT_APPROVAL_STATUS = ApprovalStatus.PENDING

# Phases in workflow order
PHASE_ORDER: List[WorkflowStage] = list(WorkflowStage)

# Categories that must be non-empty before a phase can be approved
DEFAULT_PHASE_CATEGORIES: Dict[WorkflowStage, List[str]] = {
    WorkflowStage.INTENT: ["vision", "ideation", "storyboard"],
    WorkflowStage.SPECIFICATION: ["capabilities", "enablers"],
    WorkflowStage.UI_DESIGN: [],
    WorkflowStage.IMPLEMENTATION: [],
    WorkflowStage.CONTROL_LOOP: [],
}

# State field names, in the order they are audited
STATE_FIELDS = (
    "lifecycle_state",
    "workflow_stage",
    "stage_status",
    "approval_status",
    "rejection_comment",
)

# Stage statuses allowed for each approval status
ALLOWED_STAGE_STATUS: Dict[ApprovalStatus, Set[StageStatus]] = {
    ApprovalStatus.PENDING: {
        StageStatus.IN_PROGRESS,
        StageStatus.READY_FOR_APPROVAL,
        StageStatus.BLOCKED,
    },
    ApprovalStatus.APPROVED: {StageStatus.APPROVED},
    ApprovalStatus.REJECTED: {StageStatus.BLOCKED},
}


def parse_phase(value) -> WorkflowStage:
    """Coerce a phase name to a WorkflowStage.

    Raises:
        ValueError: If the name is not a known phase
    """
    if isinstance(value, WorkflowStage):
        return value
    try:
        return WorkflowStage(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(stage.value for stage in WorkflowStage)
        raise ValueError(f"Unknown phase: {value!r}. Must be one of: {valid}") from None


def state_violation(
    stage_status: StageStatus,
    approval_status: ApprovalStatus,
    rejection_comment: Optional[str],
) -> Optional[str]:
    """Return a description of the broken invariant, or None if consistent."""
    if stage_status not in ALLOWED_STAGE_STATUS[approval_status]:
        return (
            f"approval_status={approval_status.value} requires stage_status in "
            f"{sorted(s.value for s in ALLOWED_STAGE_STATUS[approval_status])}, "
            f"got {stage_status.value}"
        )
    if approval_status == ApprovalStatus.REJECTED and not (rejection_comment or "").strip():
        return "approval_status=rejected requires a rejection comment"
    return None
