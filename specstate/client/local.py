"""In-process store client backed directly by the repository.

Each call runs in its own transaction, committed on success and rolled
back on error, so it behaves like one request to the HTTP service.

The database work is synchronous and blocks the event loop for the length
of each transaction. Use this client for tests and the CLI with
``--local``; concurrent callers should go through the HTTP service.
"""

from typing import Any, Dict, List

from sqlalchemy.orm import sessionmaker

from specstate.client.base import StateStoreClient
from specstate.core.entities import (
    Entity,
    EntityKind,
    EntityPatch,
    PhaseApproval,
    StateChange,
    WorkspaceSnapshot,
)
from specstate.core.workflow.states import WorkflowStage
from specstate.db.repository import EntityStateRepository


class LocalStateStoreClient(StateStoreClient):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _run(self, workspace_id: str, operation):
        with self.session_factory() as db:
            with db.begin():
                return operation(EntityStateRepository(db, workspace_id))

    async def fetch(self, kind: EntityKind, workspace_id: str, business_id: str) -> Entity:
        return self._run(workspace_id, lambda repo: repo.get(kind, business_id))

    async def upsert(self, kind: EntityKind, patch: EntityPatch) -> Entity:
        return self._run(patch.workspace_id, lambda repo: repo.upsert(kind, patch))

    async def fetch_workspace_snapshot(self, workspace_id: str) -> WorkspaceSnapshot:
        return self._run(workspace_id, lambda repo: repo.snapshot())

    async def approve_phase(self, workspace_id: str, phase: WorkflowStage) -> PhaseApproval:
        return self._run(workspace_id, lambda repo: repo.approve_phase(phase))

    async def revoke_phase(self, workspace_id: str, phase: WorkflowStage) -> PhaseApproval:
        return self._run(workspace_id, lambda repo: repo.revoke_phase(phase))

    async def list_phase_approvals(self, workspace_id: str) -> List[PhaseApproval]:
        return self._run(workspace_id, lambda repo: repo.list_phase_approvals())

    async def history(
        self,
        kind: EntityKind,
        workspace_id: str,
        business_id: str,
        limit: int = 50,
    ) -> List[StateChange]:
        return self._run(workspace_id, lambda repo: repo.history(kind, business_id, limit))

    async def export_workspace(self, workspace_id: str, include_history: bool = False) -> Dict[str, Any]:
        return self._run(workspace_id, lambda repo: repo.export(include_history=include_history))

    async def import_workspace(self, workspace_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        return self._run(workspace_id, lambda repo: repo.import_document(document))
