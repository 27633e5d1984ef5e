"""Entity state schemas.

Shared by the API routers and the HTTP store client, which parses
responses back into domain objects through ``to_domain``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from specstate.core.entities import (
    Entity,
    EntityKind,
    PhaseApproval,
    StateChange,
    StatePatch,
    WorkspaceSnapshot,
)
from specstate.core.workflow.states import (
    ApprovalStatus,
    LifecycleState,
    StageStatus,
    WorkflowStage,
)


class StatePatchSchema(BaseModel):
    stage_status: StageStatus
    approval_status: ApprovalStatus
    lifecycle_state: Optional[LifecycleState] = None
    workflow_stage: Optional[WorkflowStage] = None
    rejection_comment: Optional[str] = None

    class Config:
        from_attributes = True

    def to_domain(self) -> StatePatch:
        return StatePatch(
            stage_status=self.stage_status,
            approval_status=self.approval_status,
            lifecycle_state=self.lifecycle_state,
            workflow_stage=self.workflow_stage,
            rejection_comment=self.rejection_comment,
        )


class EntityUpsertRequest(BaseModel):
    """Body of ``PUT /entities/{kind}/{business_id}``.

    Omit ``version`` to create or overwrite; supply it for compare-and-swap.
    """
    version: Optional[int] = Field(None, ge=1)
    name: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = None
    file_path: Optional[str] = Field(None, max_length=1000)
    state: Optional[StatePatchSchema] = None
    capability_id: Optional[int] = None
    change_reason: Optional[str] = Field(None, max_length=500)
    changed_by: Optional[str] = Field(None, max_length=255)


class EntityResponse(BaseModel):
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
    rejection_comment: Optional[str] = None
    version: int
    file_path: Optional[str] = None
    capability_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def to_domain(self) -> Entity:
        return Entity(**self.model_dump())


class PhaseApprovalResponse(BaseModel):
    workspace_id: str
    phase: WorkflowStage
    approved: bool
    approved_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def to_domain(self) -> PhaseApproval:
        return PhaseApproval(**self.model_dump())


class WorkspaceStateResponse(BaseModel):
    workspace_id: str
    capabilities: List[EntityResponse] = []
    enablers: List[EntityResponse] = []
    story_cards: List[EntityResponse] = []
    phase_approvals: List[PhaseApprovalResponse] = []

    class Config:
        from_attributes = True

    def to_domain(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot(
            workspace_id=self.workspace_id,
            capabilities=[e.to_domain() for e in self.capabilities],
            enablers=[e.to_domain() for e in self.enablers],
            story_cards=[e.to_domain() for e in self.story_cards],
            phase_approvals=[p.to_domain() for p in self.phase_approvals],
        )


class StateChangeResponse(BaseModel):
    id: Optional[int] = None
    kind: EntityKind
    business_id: str
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    version: int
    change_reason: Optional[str] = None
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def to_domain(self) -> StateChange:
        return StateChange(**self.model_dump())


class HistoryResponse(BaseModel):
    kind: EntityKind
    business_id: str
    history: List[StateChangeResponse]


class ImportResponse(BaseModel):
    success: bool
    imported: Dict[str, int]
    failed: List[Dict[str, Any]] = []
    workspace_id: str
