"""Entity state synchronization between documents and the state store."""

from specstate.sync.bulk import BulkOperationCoordinator, BulkResult
from specstate.sync.cache import EntityCache
from specstate.sync.documents import DocumentIndex, PhaseScope, ScopeItem, SpecDocument
from specstate.sync.guarded import OptimisticView, guarded_update
from specstate.sync.orchestrator import Conflict, SyncOrchestrator
from specstate.sync.phases import PhaseAggregator, PhaseSummary
from specstate.sync.service import WorkspaceStateService

__all__ = [
    "BulkOperationCoordinator",
    "BulkResult",
    "Conflict",
    "DocumentIndex",
    "EntityCache",
    "OptimisticView",
    "PhaseAggregator",
    "PhaseScope",
    "PhaseSummary",
    "ScopeItem",
    "SpecDocument",
    "SyncOrchestrator",
    "WorkspaceStateService",
    "guarded_update",
]
