"""Entity state endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from specstate.api.deps import get_repository
from specstate.api.schemas.common import ERROR_RESPONSES
from specstate.api.schemas.state import (
    EntityResponse,
    EntityUpsertRequest,
    HistoryResponse,
    ImportResponse,
    StateChangeResponse,
    WorkspaceStateResponse,
)
from specstate.core.config import get_settings
from specstate.core.entities import EnablerPatch, EntityKind, EntityPatch
from specstate.core.errors import ValidationError
from specstate.db.repository import EntityStateRepository

router = APIRouter(prefix="/workspaces/{workspace_id}", tags=["state"], responses=ERROR_RESPONSES)


def _parse_kind(kind: str) -> EntityKind:
    try:
        return EntityKind.parse(kind)
    except ValueError as e:
        raise ValidationError(str(e)) from None


@router.get("/state", response_model=WorkspaceStateResponse)
def get_workspace_state(repo: EntityStateRepository = Depends(get_repository)):
    """All entities and phase approvals of a workspace."""
    return WorkspaceStateResponse.model_validate(repo.snapshot())


@router.get("/entities/{kind}/{business_id}", response_model=EntityResponse)
def get_entity(kind: str, business_id: str, repo: EntityStateRepository = Depends(get_repository)):
    return EntityResponse.model_validate(repo.get(_parse_kind(kind), business_id))


@router.put("/entities/{kind}/{business_id}", response_model=EntityResponse)
def upsert_entity(
    kind: str,
    business_id: str,
    request: EntityUpsertRequest,
    repo: EntityStateRepository = Depends(get_repository),
):
    """Create, overwrite or compare-and-swap an entity.

    A stale ``version`` returns 409 with the stored version in the body.
    """
    entity_kind = _parse_kind(kind)
    fields = dict(
        workspace_id=repo.workspace_id,
        business_id=business_id,
        name=request.name,
        description=request.description,
        file_path=request.file_path,
        state=request.state.to_domain() if request.state else None,
        version=request.version,
        change_reason=request.change_reason,
        changed_by=request.changed_by,
    )
    if entity_kind == EntityKind.ENABLER:
        patch = EnablerPatch(capability_id=request.capability_id, **fields)
    elif request.capability_id is not None:
        raise ValidationError(
            f"capability_id is only valid for enablers, not {entity_kind.value}",
            kind=entity_kind.value,
            business_id=business_id,
        )
    else:
        patch = EntityPatch(**fields)

    entity = repo.upsert(entity_kind, patch)
    repo.db.commit()
    return EntityResponse.model_validate(entity)


@router.get("/entities/{kind}/{business_id}/history", response_model=HistoryResponse)
def get_entity_history(
    kind: str,
    business_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    repo: EntityStateRepository = Depends(get_repository),
):
    """State changes of one entity, newest first."""
    entity_kind = _parse_kind(kind)
    changes = repo.history(entity_kind, business_id, limit or get_settings().history_limit)
    return HistoryResponse(
        kind=entity_kind,
        business_id=business_id,
        history=[StateChangeResponse.model_validate(change) for change in changes],
    )


@router.get("/export")
def export_workspace(
    include_history: bool = Query(False),
    repo: EntityStateRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return repo.export(include_history=include_history)


@router.post("/import", response_model=ImportResponse)
def import_workspace(
    document: Dict[str, Any] = Body(...),
    repo: EntityStateRepository = Depends(get_repository),
):
    """Import an exported document into this workspace.

    The path workspace wins over the one recorded in the document. Records
    that fail are listed in ``failed``; the rest are committed.
    """
    result = repo.import_document(document)
    repo.db.commit()
    return ImportResponse(**result)
