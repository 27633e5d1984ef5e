"""Phase approval endpoints."""

from typing import List

from fastapi import APIRouter, Depends

from specstate.api.deps import get_repository
from specstate.api.schemas.common import ERROR_RESPONSES
from specstate.api.schemas.state import PhaseApprovalResponse
from specstate.core.errors import ValidationError
from specstate.core.workflow.states import WorkflowStage, parse_phase
from specstate.db.repository import EntityStateRepository

router = APIRouter(prefix="/workspaces/{workspace_id}/phases", tags=["phases"], responses=ERROR_RESPONSES)


def _parse_phase(phase: str) -> WorkflowStage:
    try:
        return parse_phase(phase)
    except ValueError as e:
        raise ValidationError(str(e)) from None


@router.get("", response_model=List[PhaseApprovalResponse])
def list_phase_approvals(repo: EntityStateRepository = Depends(get_repository)):
    return [PhaseApprovalResponse.model_validate(p) for p in repo.list_phase_approvals()]


@router.post("/{phase}/approve", response_model=PhaseApprovalResponse)
def approve_phase(phase: str, repo: EntityStateRepository = Depends(get_repository)):
    """Record a phase approval. Re-approving returns the existing record."""
    record = repo.approve_phase(_parse_phase(phase))
    repo.db.commit()
    return PhaseApprovalResponse.model_validate(record)


@router.post("/{phase}/revoke", response_model=PhaseApprovalResponse)
def revoke_phase(phase: str, repo: EntityStateRepository = Depends(get_repository)):
    """Clear a phase approval; entity approvals are left as they are."""
    record = repo.revoke_phase(_parse_phase(phase))
    repo.db.commit()
    return PhaseApprovalResponse.model_validate(record)
