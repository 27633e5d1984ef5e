"""Sync orchestrator.

Turns a caller intent ("approve enabler X in phase specification") into
one store write:

1. Look up the entity in the cache; absent means not yet created.
2. For an enabler, resolve its parent capability to an internal id. A
   parent missing from the cache is fetched; a parent missing from the
   store is created with default state. Resolution is exactly one hop.
3. Compute the next state with the transition rules.
4. Upsert, passing the cached version for compare-and-swap.
5. Put the store-confirmed entity in the cache.

A version conflict is recorded and re-raised; the orchestrator never
merges or retries.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from specstate.client.base import StateStoreClient
from specstate.core.entities import EnablerPatch, Entity, EntityKind, EntityPatch, StatePatch
from specstate.core.errors import ForeignKeyError, NotFoundError, OptimisticLockError, ValidationError
from specstate.core.workflow.rules import Action, next_state
from specstate.sync.cache import EntityCache
from specstate.sync.documents import DocumentIndex, SpecDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conflict:
    """The last entity whose write lost an optimistic-lock race."""

    kind: EntityKind
    business_id: str
    expected_version: Optional[int]
    actual_version: Optional[int]
    message: str


class SyncOrchestrator:
    def __init__(
        self,
        store: StateStoreClient,
        cache: EntityCache,
        workspace_id: str,
        documents: Optional[DocumentIndex] = None,
    ):
        self.store = store
        self.cache = cache
        self.workspace_id = workspace_id
        self.documents = documents if documents is not None else DocumentIndex()
        self.conflict: Optional[Conflict] = None

    async def sync(
        self,
        kind,
        business_id: str,
        action: Action,
        parent_reference: Optional[str] = None,
    ) -> Entity:
        """Apply an action to one entity and return the confirmed entity.

        Args:
            kind: Entity kind
            business_id: Business identifier
            action: Validated Approve/Reject/Reset action
            parent_reference: Parent capability business id for an enabler,
                overriding the document's

        Raises:
            ValidationError: Missing business id (before any I/O)
            ForeignKeyError: Enabler with no resolvable parent (before any I/O)
            OptimisticLockError: The cached version is stale
            NetworkError: Transport failure; the write may have landed
        """
        kind = self._check_target(kind, business_id)
        if not isinstance(action, Action):
            raise ValidationError(f"Expected an Action, got {type(action).__name__}", kind=kind.value)

        entity = self.cache.get(kind, business_id)
        document = self.documents.get(business_id)

        capability_id = None
        if kind == EntityKind.ENABLER:
            capability_id = await self._resolve_parent(business_id, entity, document, parent_reference)

        state = next_state(entity, action)
        patch = self._build_patch(kind, business_id, entity, document, state, capability_id, action)
        return await self._write(kind, patch)

    async def ensure(self, document: SpecDocument) -> Entity:
        """Create the entity for a document if the store has none.

        Never changes the state of an existing record.
        """
        kind = self._check_target(document.kind, document.business_id)
        cached = self.cache.get(kind, document.business_id)
        if cached is not None:
            return cached

        capability_id = None
        if kind == EntityKind.ENABLER:
            capability_id = await self._resolve_parent(document.business_id, None, document, None)

        fields = dict(
            workspace_id=self.workspace_id,
            business_id=document.business_id,
            name=document.name,
            description=document.description,
            file_path=document.file_path,
            change_reason="synced from document",
        )
        if kind == EntityKind.ENABLER:
            patch = EnablerPatch(capability_id=capability_id, **fields)
        else:
            patch = EntityPatch(**fields)
        return await self._write(kind, patch)

    def _check_target(self, kind, business_id: str) -> EntityKind:
        try:
            kind = EntityKind.parse(kind)
        except ValueError as e:
            raise ValidationError(str(e)) from None
        if not business_id or not business_id.strip():
            raise ValidationError("business_id is required", kind=kind.value)
        return kind

    async def _resolve_parent(
        self,
        business_id: str,
        entity: Optional[Entity],
        document: Optional[SpecDocument],
        parent_reference: Optional[str],
    ) -> int:
        """Resolve an enabler's parent capability to its internal id."""
        parent_id = parent_reference or (document.parent_reference if document else None)

        if not parent_id:
            if entity is not None and entity.capability_id is not None:
                return entity.capability_id
            raise ForeignKeyError(
                f"enabler {business_id} has no parent capability",
                kind=EntityKind.ENABLER.value,
                business_id=business_id,
            )

        parent = self.cache.get(EntityKind.CAPABILITY, parent_id)
        if parent is not None:
            return parent.internal_id

        # One hop: fetch the parent, create it if the store has none
        try:
            parent = await self.store.fetch(EntityKind.CAPABILITY, self.workspace_id, parent_id)
        except NotFoundError:
            parent_document = self.documents.get(parent_id)
            patch = EntityPatch(
                workspace_id=self.workspace_id,
                business_id=parent_id,
                name=parent_document.name if parent_document else "",
                description=parent_document.description if parent_document else "",
                file_path=parent_document.file_path if parent_document else None,
                change_reason=f"created as parent of {business_id}",
            )
            parent = await self.store.upsert(EntityKind.CAPABILITY, patch)
            logger.info(
                f"Created parent capability {parent_id} (id {parent.internal_id}) for enabler {business_id}"
            )

        self.cache.put(parent)
        return parent.internal_id

    def _build_patch(
        self,
        kind: EntityKind,
        business_id: str,
        entity: Optional[Entity],
        document: Optional[SpecDocument],
        state: StatePatch,
        capability_id: Optional[int],
        action: Action,
    ) -> EntityPatch:
        fields = dict(
            workspace_id=self.workspace_id,
            business_id=business_id,
            state=state,
            version=entity.version if entity is not None else None,
            change_reason=action.type.value if not action.comment else f"{action.type.value}: {action.comment}",
        )
        if entity is None and document is not None:
            # First sync seeds content from the document of record
            fields.update(
                name=document.name,
                description=document.description,
                file_path=document.file_path,
            )
        if kind == EntityKind.ENABLER:
            return EnablerPatch(capability_id=capability_id, **fields)
        return EntityPatch(**fields)

    async def _write(self, kind: EntityKind, patch: EntityPatch) -> Entity:
        try:
            result = await self.store.upsert(kind, patch)
        except OptimisticLockError as e:
            logger.warning(f"Conflict on {kind.value} {patch.business_id}: {e}")
            self.conflict = Conflict(
                kind=kind,
                business_id=patch.business_id,
                expected_version=e.expected_version,
                actual_version=e.actual_version,
                message=str(e),
            )
            raise

        logger.info(f"Synced {kind.value} {patch.business_id} at version {result.version}")
        return self.cache.put(result)
