"""HTTP store client.

Talks to the specstate API with ``httpx.AsyncClient`` and maps responses
back to domain objects and typed errors. Transport failures, timeouts and
5xx responses become ``NetworkError``; nothing is retried.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from specstate.api.schemas.state import (
    EntityResponse,
    HistoryResponse,
    PhaseApprovalResponse,
    WorkspaceStateResponse,
)
from specstate.client.base import StateStoreClient
from specstate.core.entities import (
    EnablerPatch,
    Entity,
    EntityKind,
    EntityPatch,
    PhaseApproval,
    StateChange,
    WorkspaceSnapshot,
)
from specstate.core.errors import (
    ERRORS_BY_CODE,
    ForeignKeyError,
    NetworkError,
    NotFoundError,
    OptimisticLockError,
    PhaseNotReadyError,
    StateSyncError,
    ValidationError,
)
from specstate.core.workflow.states import WorkflowStage, parse_phase

logger = logging.getLogger(__name__)


def patch_to_body(patch: EntityPatch) -> Dict[str, Any]:
    """Serialize a patch into the upsert request body."""
    body: Dict[str, Any] = {}
    for name in ("version", "name", "description", "file_path", "change_reason", "changed_by"):
        value = getattr(patch, name)
        if value is not None:
            body[name] = value
    if isinstance(patch, EnablerPatch) and patch.capability_id is not None:
        body["capability_id"] = patch.capability_id
    if patch.state is not None:
        state = {
            "stage_status": patch.state.stage_status.value,
            "approval_status": patch.state.approval_status.value,
            "rejection_comment": patch.state.rejection_comment,
        }
        if patch.state.lifecycle_state is not None:
            state["lifecycle_state"] = patch.state.lifecycle_state.value
        if patch.state.workflow_stage is not None:
            state["workflow_stage"] = patch.state.workflow_stage.value
        body["state"] = state
    return body


def error_from_response(response: httpx.Response) -> StateSyncError:
    """Build the typed error described by an error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    code = body.get("code")
    detail = body.get("detail")
    if not isinstance(detail, str):
        # FastAPI request validation errors carry a list of problems
        detail = str(detail) if detail else f"HTTP {response.status_code}"
    kind = body.get("kind")
    business_id = body.get("business_id")

    cls = ERRORS_BY_CODE.get(code)
    if cls is None:
        if response.status_code >= 500:
            return NetworkError(f"Store returned HTTP {response.status_code}: {detail}")
        if response.status_code == 404:
            cls = NotFoundError
        elif response.status_code == 409:
            cls = OptimisticLockError
        else:
            cls = ValidationError

    if cls is NotFoundError:
        return NotFoundError(kind or "entity", business_id or "", body.get("workspace_id"))
    if cls is PhaseNotReadyError:
        return PhaseNotReadyError(body.get("phase") or "", body.get("reason") or detail)
    if cls is OptimisticLockError:
        return OptimisticLockError(
            kind or "entity",
            business_id or "",
            body.get("expected_version"),
            body.get("actual_version"),
        )
    if cls in (ValidationError, ForeignKeyError, NetworkError):
        return cls(detail, kind=kind, business_id=business_id)
    return ValidationError(detail, kind=kind, business_id=business_id)


class HttpStateStoreClient(StateStoreClient):
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def _workspace_path(workspace_id: str) -> str:
        return f"/api/workspaces/{workspace_id}"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {type(e).__name__}: {e}")
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            error = error_from_response(response)
            if isinstance(error, NetworkError):
                logger.warning(f"{method} {path} returned {response.status_code}")
            raise error
        return response.json()

    async def fetch(self, kind: EntityKind, workspace_id: str, business_id: str) -> Entity:
        kind = EntityKind.parse(kind)
        data = await self._request(
            "GET", f"{self._workspace_path(workspace_id)}/entities/{kind.value}/{business_id}"
        )
        return EntityResponse.model_validate(data).to_domain()

    async def upsert(self, kind: EntityKind, patch: EntityPatch) -> Entity:
        kind = EntityKind.parse(kind)
        if not patch.business_id or not patch.business_id.strip():
            raise ValidationError("business_id is required", kind=kind.value)
        if isinstance(patch, EnablerPatch) and kind != EntityKind.ENABLER:
            raise ValidationError(
                f"Enabler patch cannot be applied to a {kind.value}",
                kind=kind.value,
                business_id=patch.business_id,
            )
        data = await self._request(
            "PUT",
            f"{self._workspace_path(patch.workspace_id)}/entities/{kind.value}/{patch.business_id}",
            json=patch_to_body(patch),
        )
        return EntityResponse.model_validate(data).to_domain()

    async def fetch_workspace_snapshot(self, workspace_id: str) -> WorkspaceSnapshot:
        data = await self._request("GET", f"{self._workspace_path(workspace_id)}/state")
        return WorkspaceStateResponse.model_validate(data).to_domain()

    async def approve_phase(self, workspace_id: str, phase: WorkflowStage) -> PhaseApproval:
        phase = parse_phase(phase)
        data = await self._request(
            "POST", f"{self._workspace_path(workspace_id)}/phases/{phase.value}/approve"
        )
        return PhaseApprovalResponse.model_validate(data).to_domain()

    async def revoke_phase(self, workspace_id: str, phase: WorkflowStage) -> PhaseApproval:
        phase = parse_phase(phase)
        data = await self._request(
            "POST", f"{self._workspace_path(workspace_id)}/phases/{phase.value}/revoke"
        )
        return PhaseApprovalResponse.model_validate(data).to_domain()

    async def list_phase_approvals(self, workspace_id: str) -> List[PhaseApproval]:
        data = await self._request("GET", f"{self._workspace_path(workspace_id)}/phases")
        return [PhaseApprovalResponse.model_validate(item).to_domain() for item in data]

    async def history(
        self,
        kind: EntityKind,
        workspace_id: str,
        business_id: str,
        limit: int = 50,
    ) -> List[StateChange]:
        kind = EntityKind.parse(kind)
        data = await self._request(
            "GET",
            f"{self._workspace_path(workspace_id)}/entities/{kind.value}/{business_id}/history",
            params={"limit": limit},
        )
        return [change.to_domain() for change in HistoryResponse.model_validate(data).history]

    async def export_workspace(self, workspace_id: str, include_history: bool = False) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"{self._workspace_path(workspace_id)}/export",
            params={"include_history": str(include_history).lower()},
        )

    async def import_workspace(self, workspace_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "POST", f"{self._workspace_path(workspace_id)}/import", json=document
        )

    async def close(self) -> None:
        await self._client.aclose()
