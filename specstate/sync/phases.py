"""Phase aggregation.

A phase can be approved when every required category has at least one
entity in scope, every entity in scope is approved and none is rejected.
Phase scope is supplied by the caller (see ``DocumentIndex.scope_for``).
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from specstate.client.base import StateStoreClient
from specstate.core.entities import PhaseApproval
from specstate.core.errors import PhaseNotReadyError
from specstate.core.workflow.states import (
    ApprovalStatus,
    DEFAULT_PHASE_CATEGORIES,
    WorkflowStage,
    parse_phase,
)
from specstate.sync.cache import EntityCache
from specstate.sync.documents import PhaseScope

logger = logging.getLogger(__name__)


@dataclass
class CategoryCounts:
    total: int = 0
    approved: int = 0
    rejected: int = 0

    @property
    def pending(self) -> int:
        return self.total - self.approved - self.rejected


def completion_percentage(approved: int, total: int) -> int:
    """Approved share as a whole percentage, rounded half up; 0 when empty."""
    if total <= 0:
        return 0
    return (200 * approved + total) // (2 * total)


@dataclass
class PhaseSummary:
    phase: WorkflowStage
    required_categories: List[str] = field(default_factory=list)
    categories: Dict[str, CategoryCounts] = field(default_factory=dict)
    total: int = 0
    approved: int = 0
    rejected: int = 0

    @property
    def pending(self) -> int:
        return self.total - self.approved - self.rejected

    @property
    def completion_percentage(self) -> int:
        return completion_percentage(self.approved, self.total)

    @property
    def missing_categories(self) -> List[str]:
        return [
            name for name in self.required_categories
            if self.categories.get(name, CategoryCounts()).total == 0
        ]

    @property
    def can_approve(self) -> bool:
        return (
            not self.missing_categories
            and self.total > 0
            and self.approved == self.total
            and self.rejected == 0
        )

    def blocking_reason(self) -> Optional[str]:
        """Why the phase cannot be approved, or None if it can."""
        if self.missing_categories:
            return f"no items in required categories: {', '.join(self.missing_categories)}"
        if self.total == 0:
            return "no items in scope"
        if self.rejected:
            return f"{self.rejected} of {self.total} items rejected"
        if self.approved != self.total:
            return f"{self.total - self.approved} of {self.total} items not approved"
        return None


def summarize(
    scope: PhaseScope,
    cache: EntityCache,
    required_categories: Optional[List[str]] = None,
) -> PhaseSummary:
    """Count approval states of the entities in a phase scope.

    Entities in scope that the store does not know yet count as pending.
    """
    if required_categories is None:
        required_categories = DEFAULT_PHASE_CATEGORIES[scope.phase]
    summary = PhaseSummary(phase=scope.phase, required_categories=list(required_categories))

    def status_of(item):
        entity = cache.get(item.kind, item.business_id)
        return entity.approval_status if entity else ApprovalStatus.PENDING

    for category, items in scope.categories.items():
        counts = summary.categories.setdefault(category, CategoryCounts())
        for item in items:
            _tally(counts, status_of(item))

    # An entity listed under two categories counts once overall
    for item in scope.items():
        _tally(summary, status_of(item))

    return summary


def _tally(counts, status: ApprovalStatus) -> None:
    counts.total += 1
    if status == ApprovalStatus.APPROVED:
        counts.approved += 1
    elif status == ApprovalStatus.REJECTED:
        counts.rejected += 1


class PhaseAggregator:
    def __init__(
        self,
        store: StateStoreClient,
        cache: EntityCache,
        workspace_id: str,
        phase_categories: Optional[Dict[WorkflowStage, List[str]]] = None,
    ):
        self.store = store
        self.cache = cache
        self.workspace_id = workspace_id
        self.phase_categories = phase_categories or DEFAULT_PHASE_CATEGORIES

    def summarize(self, scope: PhaseScope) -> PhaseSummary:
        return summarize(scope, self.cache, self.phase_categories.get(scope.phase, []))

    def can_approve(self, scope: PhaseScope) -> bool:
        return self.summarize(scope).can_approve

    def is_phase_approved(self, phase) -> bool:
        record = self.cache.phase_approval(parse_phase(phase))
        return bool(record and record.approved)

    async def approve_phase(self, scope: PhaseScope) -> PhaseApproval:
        """Approve the scope's phase.

        The stored record is read first; if it is already approved it is
        returned unchanged. Otherwise every in-scope entity must be approved.

        Raises:
            PhaseNotReadyError: If the scope is not fully approved
        """
        stored = await self._load_phase_approval(scope.phase)
        if stored is not None and stored.approved:
            return stored

        summary = self.summarize(scope)
        if not summary.can_approve:
            raise PhaseNotReadyError(scope.phase.value, summary.blocking_reason())

        record = await self.store.approve_phase(self.workspace_id, scope.phase)
        self.cache.put_phase_approval(record)
        logger.info(f"Approved phase {scope.phase.value} ({summary.total} items)")
        return record

    async def _load_phase_approval(self, phase: WorkflowStage) -> Optional[PhaseApproval]:
        records = await self.store.list_phase_approvals(self.workspace_id)
        for record in records:
            self.cache.put_phase_approval(record)
        stored = next((r for r in records if r.phase == phase), None)
        if stored is None:
            self.cache.discard_phase_approval(phase)
        return stored

    async def revoke_phase(self, phase) -> PhaseApproval:
        """Clear the phase approval; entity approvals stay as they are."""
        phase = parse_phase(phase)
        record = await self.store.revoke_phase(self.workspace_id, phase)
        self.cache.put_phase_approval(record)
        logger.info(f"Revoked phase {phase.value}")
        return record
