"""Bulk operation coordinator.

Applies one action to a list of entities sequentially. A failing item is
recorded and the batch continues; nothing is rolled back on the store
side. One workspace refresh runs after the loop.

Items are processed one at a time so two enablers never race to create
the same missing parent capability.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from specstate.core.entities import Entity, EntityKind
from specstate.core.errors import StateSyncError, ValidationError
from specstate.core.workflow.rules import Action
from specstate.sync.documents import ScopeItem
from specstate.sync.guarded import OptimisticView, guarded_update
from specstate.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class BulkResult:
    """Outcome of a bulk operation."""

    success_count: int = 0
    fail_count: int = 0
    failed_ids: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    succeeded: List[Entity] = field(default_factory=list)
    refreshed: bool = False

    @property
    def is_success(self) -> bool:
        return self.fail_count == 0

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "failed_ids": list(self.failed_ids),
            "errors": dict(self.errors),
            "refreshed": self.refreshed,
        }


def as_scope_item(item) -> ScopeItem:
    """Accept an Entity, a ScopeItem or a ``(kind, business_id)`` pair."""
    if isinstance(item, Entity):
        return ScopeItem(item.kind, item.business_id)
    try:
        kind, business_id = item
        return ScopeItem(EntityKind.parse(kind), business_id)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid bulk item {item!r}: {e}") from None


def _label(item) -> str:
    business_id = getattr(item, "business_id", None)
    if business_id is None and isinstance(item, (tuple, list)) and len(item) == 2:
        business_id = item[1]
    return str(business_id if business_id is not None else item)


class BulkOperationCoordinator:
    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        refresh: Callable[[], Awaitable[object]],
        view: Optional[OptimisticView] = None,
    ):
        self.orchestrator = orchestrator
        self.refresh = refresh
        self.view = view if view is not None else OptimisticView()

    async def run(self, items: Iterable, action: Action) -> BulkResult:
        """Apply ``action`` to every item in order.

        Only ``StateSyncError`` counts as an item failure; anything else
        is a bug and propagates.
        """
        result = BulkResult()
        target_status = action.rule.approval_status

        for raw in items:
            try:
                item = as_scope_item(raw)
                entity = await self._run_one(item, action, target_status)
            except StateSyncError as e:
                label = _label(raw)
                logger.warning(f"Bulk {action.type.value} failed for {label}: {e}")
                result.fail_count += 1
                result.failed_ids.append(label)
                result.errors[label] = str(e)
                continue
            result.success_count += 1
            result.succeeded.append(entity)

        try:
            await self.refresh()
            result.refreshed = True
        except StateSyncError as e:
            logger.warning(f"Refresh after bulk {action.type.value} failed: {e}")

        logger.info(
            f"Bulk {action.type.value}: {result.success_count} succeeded, {result.fail_count} failed"
        )
        return result

    async def _run_one(self, item: ScopeItem, action: Action, target_status) -> Entity:
        entity = await guarded_update(
            apply_local=lambda: self.view.apply(item.kind, item.business_id, target_status),
            commit_remote=lambda: self.orchestrator.sync(item.kind, item.business_id, action),
            rollback_local=lambda previous: self.view.restore(item.kind, item.business_id, previous),
        )
        self.view.confirm(entity)
        return entity

    async def approve(self, items: Iterable, phase) -> BulkResult:
        return await self.run(items, Action.approve(phase))

    async def reject(self, items: Iterable, phase, comment: str) -> BulkResult:
        return await self.run(items, Action.reject(phase, comment))

    async def reset(self, items: Iterable) -> BulkResult:
        return await self.run(items, Action.reset())
