"""Tests for the bulk operation coordinator."""

import pytest

from specstate.core.entities import EntityKind
from specstate.core.errors import NetworkError, ValidationError
from specstate.core.workflow.states import ApprovalStatus
from specstate.sync.bulk import BulkOperationCoordinator, BulkResult, as_scope_item
from specstate.sync.cache import EntityCache
from specstate.sync.documents import DocumentIndex, ScopeItem
from specstate.sync.guarded import OptimisticView
from specstate.sync.orchestrator import SyncOrchestrator
from tests.conftest import WORKSPACE
from tests.factories import make_document, make_entity


@pytest.fixture
def refreshes():
    return []


@pytest.fixture
def coordinator(local_store, refreshes):
    documents = DocumentIndex([make_document("ENB-1", parent="CAP-1"), make_document("ENB-2", parent="CAP-1")])
    orchestrator = SyncOrchestrator(local_store, EntityCache(), WORKSPACE, documents)

    async def refresh():
        refreshes.append(True)

    return BulkOperationCoordinator(orchestrator, refresh)


class TestAsScopeItem:
    def test_accepts_entities_and_pairs(self):
        assert as_scope_item(make_entity("CAP-1")) == ScopeItem(EntityKind.CAPABILITY, "CAP-1")
        assert as_scope_item(("enablers", "ENB-1")) == ScopeItem(EntityKind.ENABLER, "ENB-1")

    def test_rejects_garbage(self):
        with pytest.raises(ValidationError):
            as_scope_item("CAP-1")
        with pytest.raises(ValidationError):
            as_scope_item(("epic", "EPIC-1"))


class TestBulkRun:
    async def test_all_succeed(self, coordinator, refreshes):
        result = await coordinator.approve(
            [("capability", "CAP-1"), ("enabler", "ENB-1"), ("enabler", "ENB-2")], "specification",
        )
        assert result.is_success
        assert result.success_count == 3
        assert result.refreshed
        assert refreshes == [True]
        assert {e.approval_status for e in result.succeeded} == {ApprovalStatus.APPROVED}

    async def test_partial_failure_continues(self, coordinator):
        """Test a failing item is recorded and later items still run."""
        result = await coordinator.approve(
            [("enabler", "ENB-9"), ("capability", "CAP-1"), "garbage", ("story_card", "STORY-1")],
            "specification",
        )
        assert result.success_count == 2
        assert result.fail_count == 2
        assert result.failed_ids == ["ENB-9", "garbage"]
        assert "parent" in result.errors["ENB-9"]
        assert not result.is_success

    async def test_failed_item_rolled_back_in_view(self, coordinator):
        coordinator.view.reset([make_entity("ENB-9", kind=EntityKind.ENABLER)])
        await coordinator.approve([("enabler", "ENB-9")], "specification")
        assert coordinator.view.status(EntityKind.ENABLER, "ENB-9") == ApprovalStatus.PENDING

    async def test_succeeded_item_confirmed_in_view(self, coordinator):
        await coordinator.reject([("capability", "CAP-1")], "specification", "scope creep")
        assert coordinator.view.status(EntityKind.CAPABILITY, "CAP-1") == ApprovalStatus.REJECTED

    async def test_invalid_action_fails_whole_batch(self, coordinator):
        with pytest.raises(ValidationError):
            await coordinator.reject([("capability", "CAP-1")], "specification", " ")

    async def test_reset(self, coordinator):
        await coordinator.approve([("capability", "CAP-1")], "specification")
        result = await coordinator.reset([("capability", "CAP-1")])
        assert result.succeeded[0].approval_status == ApprovalStatus.PENDING

    async def test_refresh_failure_reported(self, local_store):
        async def refresh():
            raise NetworkError("store unreachable")

        coordinator = BulkOperationCoordinator(
            SyncOrchestrator(local_store, EntityCache(), WORKSPACE), refresh, OptimisticView(),
        )
        result = await coordinator.approve([("capability", "CAP-1")], "intent")
        assert result.success_count == 1
        assert not result.refreshed

    async def test_empty_batch(self, coordinator, refreshes):
        result = await coordinator.reset([])
        assert result.to_dict() == {
            "success_count": 0,
            "fail_count": 0,
            "failed_ids": [],
            "errors": {},
            "refreshed": True,
        }
        assert refreshes == [True]


class TestBulkResult:
    def test_defaults(self):
        result = BulkResult()
        assert result.is_success
        assert result.succeeded == []
