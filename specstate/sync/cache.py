"""Per-workspace entity cache.

Maps ``business_id`` to the last store-confirmed ``Entity`` for each kind.
Only store responses are written here; intended values never are.
"""

import logging
from typing import Dict, List, Optional

from specstate.core.entities import Entity, EntityKind, PhaseApproval, WorkspaceSnapshot
from specstate.core.workflow.states import PHASE_ORDER, WorkflowStage

logger = logging.getLogger(__name__)


class EntityCache:
    def __init__(self):
        self._entities: Dict[EntityKind, Dict[str, Entity]] = {kind: {} for kind in EntityKind}
        self._phase_approvals: Dict[WorkflowStage, PhaseApproval] = {}
        self.loaded = False

    def get(self, kind: EntityKind, business_id: str) -> Optional[Entity]:
        return self._entities[kind].get(business_id)

    def entities(self, kind: EntityKind) -> List[Entity]:
        return sorted(self._entities[kind].values(), key=lambda e: e.business_id)

    def put(self, entity: Entity) -> Entity:
        """Store a confirmed entity; returns what the cache now holds.

        A response older than the cached version is ignored so that a slow
        read cannot overwrite a newer write.
        """
        current = self._entities[entity.kind].get(entity.business_id)
        if current is not None and current.version > entity.version:
            logger.debug(
                f"Ignoring stale {entity.kind.value} {entity.business_id} "
                f"v{entity.version} (cached v{current.version})"
            )
            return current
        self._entities[entity.kind][entity.business_id] = entity
        return entity

    def invalidate(self, kind: EntityKind, business_id: str) -> Optional[Entity]:
        """Drop an entry, e.g. after its document was deleted."""
        return self._entities[kind].pop(business_id, None)

    def find_by_internal_id(self, kind: EntityKind, internal_id: int) -> Optional[Entity]:
        for entity in self._entities[kind].values():
            if entity.internal_id == internal_id:
                return entity
        return None

    def replace_all(self, snapshot: WorkspaceSnapshot) -> None:
        """Replace the whole cache with a workspace snapshot."""
        for kind in EntityKind:
            self._entities[kind] = {e.business_id: e for e in snapshot.entities(kind)}
        self._phase_approvals = {p.phase: p for p in snapshot.phase_approvals}
        self.loaded = True

    def phase_approval(self, phase: WorkflowStage) -> Optional[PhaseApproval]:
        return self._phase_approvals.get(phase)

    def put_phase_approval(self, record: PhaseApproval) -> None:
        self._phase_approvals[record.phase] = record

    def discard_phase_approval(self, phase: WorkflowStage) -> None:
        self._phase_approvals.pop(phase, None)

    def snapshot(self, workspace_id: str) -> WorkspaceSnapshot:
        """Cached state as a snapshot."""
        return WorkspaceSnapshot(
            workspace_id=workspace_id,
            capabilities=self.entities(EntityKind.CAPABILITY),
            enablers=self.entities(EntityKind.ENABLER),
            story_cards=self.entities(EntityKind.STORY_CARD),
            phase_approvals=[
                self._phase_approvals[phase] for phase in PHASE_ORDER if phase in self._phase_approvals
            ],
        )

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entities.values())
