"""Guarded local update.

Callers that show an optimistic value before the store confirms it go
through ``guarded_update`` so the local change is rolled back to its
pre-call snapshot whenever the remote call fails.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from specstate.core.entities import Entity, EntityKind
from specstate.core.workflow.states import ApprovalStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")
S = TypeVar("S")


async def guarded_update(
    apply_local: Callable[[], S],
    commit_remote: Callable[[], Awaitable[T]],
    rollback_local: Callable[[S], None],
) -> T:
    """Apply a local change, commit it remotely, undo it on failure.

    Args:
        apply_local: Applies the optimistic change; returns the snapshot
            needed to undo it
        commit_remote: Performs the store call
        rollback_local: Restores the snapshot returned by ``apply_local``

    Returns:
        The result of ``commit_remote``

    Raises:
        Whatever ``commit_remote`` raised, after the rollback
    """
    snapshot = apply_local()
    try:
        return await commit_remote()
    except Exception:
        rollback_local(snapshot)
        raise


class OptimisticView:
    """Caller-side approval status per entity, ahead of the store."""

    def __init__(self):
        self._status: Dict[Tuple[EntityKind, str], ApprovalStatus] = {}

    def status(self, kind: EntityKind, business_id: str) -> Optional[ApprovalStatus]:
        return self._status.get((kind, business_id))

    def apply(self, kind: EntityKind, business_id: str, status: ApprovalStatus) -> Optional[ApprovalStatus]:
        """Show ``status`` now; returns the previous value for rollback."""
        key = (kind, business_id)
        previous = self._status.get(key)
        self._status[key] = status
        return previous

    def restore(self, kind: EntityKind, business_id: str, previous: Optional[ApprovalStatus]) -> None:
        key = (kind, business_id)
        if previous is None:
            self._status.pop(key, None)
        else:
            self._status[key] = previous
        logger.debug(f"Rolled back optimistic status of {kind.value} {business_id}")

    def confirm(self, entity: Entity) -> None:
        """Replace the optimistic value with the store-confirmed one."""
        self._status[(entity.kind, entity.business_id)] = entity.approval_status

    def reset(self, entities) -> None:
        self._status = {(e.kind, e.business_id): e.approval_status for e in entities}
