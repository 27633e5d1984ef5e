"""Workspace state service.

One instance per workspace session. It owns the entity cache, the
document index and the optimistic view, and is handed to callers
explicitly rather than living in a process-wide context.
"""

import logging
from typing import Dict, Iterable, List, Optional

from specstate.client.base import StateStoreClient
from specstate.core.config import get_settings
from specstate.core.entities import Entity, EntityKind, PhaseApproval, StateChange, WorkspaceSnapshot
from specstate.core.errors import StateSyncError, ValidationError
from specstate.core.workflow.rules import Action
from specstate.core.workflow.states import WorkflowStage, parse_phase
from specstate.sync.bulk import BulkOperationCoordinator, BulkResult
from specstate.sync.cache import EntityCache
from specstate.sync.documents import DocumentIndex, PhaseScope, SpecDocument
from specstate.sync.guarded import OptimisticView
from specstate.sync.orchestrator import Conflict, SyncOrchestrator
from specstate.sync.phases import PhaseAggregator, PhaseSummary

logger = logging.getLogger(__name__)


class WorkspaceStateService:
    """Entity approval state of one workspace.

    Args:
        store: State store client
        workspace_id: Workspace scope
        phase_categories: Required categories per phase (defaults apply if None)
        documents: Reconciliation seed and phase scoping source
    """

    def __init__(
        self,
        store: StateStoreClient,
        workspace_id: str,
        phase_categories: Optional[Dict[WorkflowStage, List[str]]] = None,
        documents: Optional[Iterable[SpecDocument]] = None,
    ):
        if not workspace_id or not workspace_id.strip():
            raise ValidationError("workspace_id is required")
        self.store = store
        self.workspace_id = workspace_id
        self.cache = EntityCache()
        self.documents = DocumentIndex(documents or ())
        self.view = OptimisticView()
        self.orchestrator = SyncOrchestrator(store, self.cache, workspace_id, self.documents)
        self.aggregator = PhaseAggregator(store, self.cache, workspace_id, phase_categories)
        self.bulk = BulkOperationCoordinator(self.orchestrator, self.refresh, self.view)

    @classmethod
    def from_settings(
        cls,
        store: StateStoreClient,
        workspace_id: str,
        settings=None,
        documents: Optional[Iterable[SpecDocument]] = None,
    ) -> "WorkspaceStateService":
        """Service whose phase requirements come from ``phase_config_path``."""
        settings = settings or get_settings()
        return cls(store, workspace_id, settings.phase_categories(), documents)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def refresh(self) -> WorkspaceSnapshot:
        """Reload the whole workspace into the cache."""
        snapshot = await self.store.fetch_workspace_snapshot(self.workspace_id)
        self.cache.replace_all(snapshot)
        self.view.reset(
            snapshot.capabilities + snapshot.enablers + snapshot.story_cards
        )
        logger.debug(f"Refreshed workspace {self.workspace_id}: {snapshot.total} entities")
        return snapshot

    async def fetch_workspace_state(self, refresh: bool = True) -> WorkspaceSnapshot:
        """All cached entities and phase approvals, refreshed first by default."""
        if refresh or not self.cache.loaded:
            await self.refresh()
        return self.cache.snapshot(self.workspace_id)

    async def fetch(self, kind, business_id: str) -> Entity:
        """Point-fetch one entity into the cache."""
        entity = await self.store.fetch(EntityKind.parse(kind), self.workspace_id, business_id)
        return self.cache.put(entity)

    def get(self, kind, business_id: str) -> Optional[Entity]:
        """Cached entity, or None."""
        return self.cache.get(EntityKind.parse(kind), business_id)

    async def history(self, kind, business_id: str, limit: int = 50) -> List[StateChange]:
        return await self.store.history(EntityKind.parse(kind), self.workspace_id, business_id, limit)

    # ------------------------------------------------------------------
    # Single-entity actions
    # ------------------------------------------------------------------

    async def approve_item(self, kind, business_id: str, phase) -> Entity:
        return await self.orchestrator.sync(kind, business_id, Action.approve(phase))

    async def reject_item(self, kind, business_id: str, phase, comment: str) -> Entity:
        return await self.orchestrator.sync(kind, business_id, Action.reject(phase, comment))

    async def reset_item(self, kind, business_id: str) -> Entity:
        return await self.orchestrator.sync(kind, business_id, Action.reset())

    # ------------------------------------------------------------------
    # Bulk actions
    # ------------------------------------------------------------------

    async def bulk_approve(self, items: Iterable, phase) -> BulkResult:
        return await self.bulk.approve(items, phase)

    async def bulk_reject(self, items: Iterable, phase, comment: str) -> BulkResult:
        return await self.bulk.reject(items, phase, comment)

    async def bulk_reset(self, items: Iterable) -> BulkResult:
        return await self.bulk.reset(items)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def scope_for(self, phase) -> PhaseScope:
        return self.documents.scope_for(phase)

    async def phase_summary(self, phase, scope: Optional[PhaseScope] = None) -> PhaseSummary:
        scope = self._scope(phase, scope)
        await self._ensure_loaded()
        return self.aggregator.summarize(scope)

    async def can_approve_phase(self, phase, scope: Optional[PhaseScope] = None) -> bool:
        return (await self.phase_summary(phase, scope)).can_approve

    async def approve_phase(self, phase, scope: Optional[PhaseScope] = None) -> PhaseApproval:
        scope = self._scope(phase, scope)
        await self._ensure_loaded()
        return await self.aggregator.approve_phase(scope)

    async def revoke_phase(self, phase) -> PhaseApproval:
        return await self.aggregator.revoke_phase(phase)

    def is_phase_approved(self, phase) -> bool:
        """Cached phase approval; refreshed by reads and phase actions."""
        return self.aggregator.is_phase_approved(phase)

    async def _ensure_loaded(self) -> None:
        if not self.cache.loaded:
            await self.refresh()

    def _scope(self, phase, scope: Optional[PhaseScope]) -> PhaseScope:
        phase = parse_phase(phase)
        if scope is None:
            return self.documents.scope_for(phase)
        if scope.phase != phase:
            raise ValidationError(f"Scope is for phase {scope.phase.value}, not {phase.value}")
        return scope

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def reconcile(self, documents: Optional[Iterable[SpecDocument]] = None) -> BulkResult:
        """Create store records for documents the store does not have yet.

        Existing records keep their state. Capabilities are created before
        enablers so parents resolve from the cache.
        """
        for document in documents or ():
            self.documents.add(document)

        await self.refresh()
        result = BulkResult()
        for document in self.documents.ordered():
            if self.cache.get(document.kind, document.business_id) is not None:
                continue
            try:
                entity = await self.orchestrator.ensure(document)
            except StateSyncError as e:
                logger.warning(f"Failed to create {document.kind.value} {document.business_id}: {e}")
                result.fail_count += 1
                result.failed_ids.append(document.business_id)
                result.errors[document.business_id] = str(e)
                continue
            result.success_count += 1
            result.succeeded.append(entity)

        try:
            await self.refresh()
            result.refreshed = True
        except StateSyncError as e:
            logger.warning(f"Refresh after reconcile failed: {e}")

        logger.info(
            f"Reconciled workspace {self.workspace_id}: "
            f"{result.success_count} created, {result.fail_count} failed"
        )
        return result

    def document_deleted(self, business_id: str) -> None:
        """Forget a deleted document; its store record is left alone."""
        document = self.documents.remove(business_id)
        kind = document.kind if document else EntityKind.from_business_id(business_id)
        self.cache.invalidate(kind, business_id)

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    @property
    def conflict(self) -> Optional[Conflict]:
        """The last unresolved optimistic-lock conflict."""
        return self.orchestrator.conflict

    async def resolve_conflict(self) -> Optional[Entity]:
        """Re-fetch the conflicting entity and clear the marker.

        The caller decides whether to re-apply its action against the
        fresh version; nothing is retried here.
        """
        conflict = self.orchestrator.conflict
        if conflict is None:
            return None
        entity = await self.fetch(conflict.kind, conflict.business_id)
        self.orchestrator.conflict = None
        logger.info(f"Resolved conflict on {conflict.kind.value} {conflict.business_id} at version {entity.version}")
        return entity
