"""Domain types shared by the store, the clients and the sync layer.

Entities are immutable snapshots: the sync layer never edits one in
place, it replaces the cached snapshot with the store-confirmed response.
Writes are expressed as explicit patch structures rather than partial
dictionaries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from .workflow.states import (
    ApprovalStatus,
    LifecycleState,
    StageStatus,
    WorkflowStage,
)


class EntityKind(str, Enum):
    """Kinds of specification artifact that carry approval state."""

    CAPABILITY = "capability"
    ENABLER = "enabler"
    STORY_CARD = "story_card"

    @property
    def collection(self) -> str:
        """Plural name used for tables and snapshot keys."""
        return _COLLECTIONS[self]

    @classmethod
    def from_business_id(cls, business_id: str) -> "EntityKind":
        """Infer the kind from a business identifier prefix."""
        prefix = business_id.strip().upper()
        if prefix.startswith("CAP-"):
            return cls.CAPABILITY
        if prefix.startswith("ENB-"):
            return cls.ENABLER
        return cls.STORY_CARD

    @classmethod
    def parse(cls, value) -> "EntityKind":
        """Accept either the singular value or the plural collection name."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for kind, plural in _COLLECTIONS.items():
            if text in (kind.value, plural):
                return kind
        valid = ", ".join(kind.value for kind in cls)
        raise ValueError(f"Unknown entity kind: {value!r}. Must be one of: {valid}")


_COLLECTIONS = {
    EntityKind.CAPABILITY: "capabilities",
    EntityKind.ENABLER: "enablers",
    EntityKind.STORY_CARD: "story_cards",
}

# Store write order: parents before children
KIND_ORDER: List[EntityKind] = [
    EntityKind.CAPABILITY,
    EntityKind.ENABLER,
    EntityKind.STORY_CARD,
]


@dataclass(frozen=True)
class Entity:
    """Last-known store state of a capability, enabler or story card."""

    kind: EntityKind
    business_id: str
    internal_id: int
    workspace_id: str
    name: str
    description: str
    lifecycle_state: LifecycleState
    workflow_stage: WorkflowStage
    stage_status: StageStatus
    approval_status: ApprovalStatus
    version: int
    rejection_comment: Optional[str] = None
    file_path: Optional[str] = None
    capability_id: Optional[int] = None  # enablers only
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.approval_status == ApprovalStatus.REJECTED


@dataclass(frozen=True)
class StatePatch:
    """The approval-state half of a write.

    ``stage_status`` and ``approval_status`` are always written together.
    ``rejection_comment`` travels with them: ``None`` clears it.
    ``lifecycle_state`` and ``workflow_stage`` are left untouched when None.
    """

    stage_status: StageStatus
    approval_status: ApprovalStatus
    lifecycle_state: Optional[LifecycleState] = None
    workflow_stage: Optional[WorkflowStage] = None
    rejection_comment: Optional[str] = None

    def changes(self) -> Dict[str, object]:
        """Fields this patch writes, keyed by column name."""
        values: Dict[str, object] = {
            "stage_status": self.stage_status,
            "approval_status": self.approval_status,
            "rejection_comment": self.rejection_comment,
        }
        if self.lifecycle_state is not None:
            values["lifecycle_state"] = self.lifecycle_state
        if self.workflow_stage is not None:
            values["workflow_stage"] = self.workflow_stage
        return values


@dataclass(frozen=True)
class EntityPatch:
    """Create, overwrite or compare-and-swap a capability or story card.

    Without ``version`` the store creates the record, or overwrites the
    supplied fields of an existing one. With ``version`` the write only
    lands if the stored version still matches.
    """

    workspace_id: str
    business_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    file_path: Optional[str] = None
    state: Optional[StatePatch] = None
    version: Optional[int] = None
    change_reason: Optional[str] = None
    changed_by: Optional[str] = None

    @property
    def is_create_or_overwrite(self) -> bool:
        return self.version is None


@dataclass(frozen=True)
class EnablerPatch(EntityPatch):
    """Enabler write; ``capability_id`` is the parent's internal id."""

    capability_id: Optional[int] = None


@dataclass(frozen=True)
class PhaseApproval:
    """Phase-level approval record, one per (workspace, phase)."""

    workspace_id: str
    phase: WorkflowStage
    approved: bool
    approved_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class StateChange:
    """One audited change of one state field."""

    kind: EntityKind
    business_id: str
    field_name: str
    old_value: Optional[str]
    new_value: Optional[str]
    version: int
    change_reason: Optional[str] = None
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class WorkspaceSnapshot:
    """All entities and phase approvals of one workspace."""

    workspace_id: str
    capabilities: List[Entity] = field(default_factory=list)
    enablers: List[Entity] = field(default_factory=list)
    story_cards: List[Entity] = field(default_factory=list)
    phase_approvals: List[PhaseApproval] = field(default_factory=list)

    def entities(self, kind: EntityKind) -> List[Entity]:
        """Entities of one kind."""
        return getattr(self, kind.collection)

    def phase_approval(self, phase: WorkflowStage) -> Optional[PhaseApproval]:
        for record in self.phase_approvals:
            if record.phase == phase:
                return record
        return None

    @property
    def total(self) -> int:
        return len(self.capabilities) + len(self.enablers) + len(self.story_cards)
