"""Abstract state store contract.

Every call is a single request/response. Implementations raise the typed
errors from ``specstate.core.errors`` and never retry a mutating call:
after a ``NetworkError`` the write may or may not have landed.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from specstate.core.entities import (
    Entity,
    EntityKind,
    EntityPatch,
    PhaseApproval,
    StateChange,
    WorkspaceSnapshot,
)
from specstate.core.workflow.states import WorkflowStage


class StateStoreClient(ABC):
    """Typed access to the entity state store."""

    @abstractmethod
    async def fetch(self, kind: EntityKind, workspace_id: str, business_id: str) -> Entity:
        """Fetch one entity.

        Raises:
            NotFoundError: If the entity does not exist
        """

    @abstractmethod
    async def upsert(self, kind: EntityKind, patch: EntityPatch) -> Entity:
        """Create-or-overwrite (no version) or compare-and-swap (version set).

        Returns:
            The stored entity; its version is greater than ``patch.version``

        Raises:
            OptimisticLockError: If ``patch.version`` is stale
            ForeignKeyError: If an enabler's parent cannot be resolved
        """

    @abstractmethod
    async def fetch_workspace_snapshot(self, workspace_id: str) -> WorkspaceSnapshot:
        """All entities and phase approvals of a workspace."""

    @abstractmethod
    async def approve_phase(self, workspace_id: str, phase: WorkflowStage) -> PhaseApproval:
        """Record a phase approval; idempotent."""

    @abstractmethod
    async def revoke_phase(self, workspace_id: str, phase: WorkflowStage) -> PhaseApproval:
        """Clear a phase approval."""

    @abstractmethod
    async def list_phase_approvals(self, workspace_id: str) -> List[PhaseApproval]:
        """Phase approval records of a workspace, in phase order."""

    @abstractmethod
    async def history(
        self,
        kind: EntityKind,
        workspace_id: str,
        business_id: str,
        limit: int = 50,
    ) -> List[StateChange]:
        """State changes of one entity, newest first."""

    @abstractmethod
    async def export_workspace(self, workspace_id: str, include_history: bool = False) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def import_workspace(self, workspace_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        pass

    async def close(self) -> None:
        """Release transport resources."""

    async def __aenter__(self) -> "StateStoreClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
