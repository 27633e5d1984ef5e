"""Tests for the entity state repository."""

import pytest

from specstate.core.entities import EnablerPatch, EntityKind, EntityPatch, StatePatch
from specstate.core.errors import (
    ForeignKeyError,
    NotFoundError,
    OptimisticLockError,
    ValidationError,
)
from specstate.core.workflow.states import (
    ApprovalStatus,
    LifecycleState,
    StageStatus,
    WorkflowStage,
)
from specstate.db.repository import EXPORT_FORMAT_VERSION, EntityStateRepository
from tests.conftest import WORKSPACE
from tests.factories import (
    approved_state,
    create_capability,
    create_enabler,
    create_story_card,
    rejected_state,
)


class TestUpsertCreate:
    """Test create-or-overwrite without a version."""

    def test_create_uses_defaults(self, repo):
        """Test a new entity starts as draft/intent/in_progress/pending at version 1."""
        cap = create_capability(repo, business_id="CAP-000123")
        assert cap.version == 1
        assert cap.internal_id is not None
        assert cap.lifecycle_state == LifecycleState.DRAFT
        assert cap.workflow_stage == WorkflowStage.INTENT
        assert cap.stage_status == StageStatus.IN_PROGRESS
        assert cap.approval_status == ApprovalStatus.PENDING
        assert cap.workspace_id == WORKSPACE

    def test_create_with_state(self, repo):
        cap = create_capability(repo, state=approved_state())
        assert cap.approval_status == ApprovalStatus.APPROVED
        assert cap.lifecycle_state == LifecycleState.ACTIVE

    def test_overwrite_bumps_version(self, repo):
        """Test an unversioned upsert on an existing record overwrites it."""
        cap = create_capability(repo, business_id="CAP-1")
        updated = repo.upsert(EntityKind.CAPABILITY, EntityPatch(
            workspace_id=WORKSPACE, business_id="CAP-1", name="Renamed",
        ))
        assert updated.version == cap.version + 1
        assert updated.name == "Renamed"
        assert updated.internal_id == cap.internal_id
        assert updated.approval_status == ApprovalStatus.PENDING

    def test_overwrite_keeps_unsupplied_fields(self, repo):
        create_capability(repo, business_id="CAP-1", name="Original")
        updated = repo.upsert(EntityKind.CAPABILITY, EntityPatch(
            workspace_id=WORKSPACE, business_id="CAP-1", state=approved_state(),
        ))
        assert updated.name == "Original"
        assert updated.file_path is not None

    def test_missing_business_id(self, repo):
        with pytest.raises(ValidationError):
            repo.upsert(EntityKind.CAPABILITY, EntityPatch(workspace_id=WORKSPACE, business_id=" "))

    def test_wrong_workspace(self, repo):
        with pytest.raises(ValidationError, match="workspace"):
            repo.upsert(EntityKind.CAPABILITY, EntityPatch(workspace_id="other", business_id="CAP-1"))

    def test_enabler_patch_for_capability(self, repo):
        with pytest.raises(ValidationError, match="Enabler patch"):
            repo.upsert(EntityKind.CAPABILITY, EnablerPatch(
                workspace_id=WORKSPACE, business_id="CAP-1", capability_id=1,
            ))

    def test_inconsistent_state_rejected(self, repo):
        """Test approved approval status with an in-progress stage is refused."""
        with pytest.raises(ValidationError, match="Inconsistent"):
            create_capability(repo, state=StatePatch(
                stage_status=StageStatus.IN_PROGRESS,
                approval_status=ApprovalStatus.APPROVED,
            ))

    def test_rejection_requires_comment(self, repo):
        with pytest.raises(ValidationError):
            create_capability(repo, state=rejected_state(comment=""))


class TestUpsertCompareAndSwap:
    """Test optimistic locking."""

    def test_matching_version(self, repo):
        cap = create_capability(repo, business_id="CAP-1")
        updated = repo.upsert(EntityKind.CAPABILITY, EntityPatch(
            workspace_id=WORKSPACE, business_id="CAP-1", version=cap.version, state=approved_state(),
        ))
        assert updated.version == cap.version + 1
        assert updated.approval_status == ApprovalStatus.APPROVED

    def test_stale_version(self, repo):
        """Test a write with an old version raises with both versions."""
        cap = create_capability(repo, business_id="CAP-1")
        repo.upsert(EntityKind.CAPABILITY, EntityPatch(
            workspace_id=WORKSPACE, business_id="CAP-1", version=cap.version, name="first",
        ))
        with pytest.raises(OptimisticLockError) as exc_info:
            repo.upsert(EntityKind.CAPABILITY, EntityPatch(
                workspace_id=WORKSPACE, business_id="CAP-1", version=cap.version, name="second",
            ))
        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        assert repo.get(EntityKind.CAPABILITY, "CAP-1").name == "first"

    def test_versioned_write_to_missing_record(self, repo):
        with pytest.raises(NotFoundError):
            repo.upsert(EntityKind.CAPABILITY, EntityPatch(
                workspace_id=WORKSPACE, business_id="CAP-404", version=1,
            ))

    def test_round_trip_version(self, repo):
        """Test fetch returns the version upsert returned."""
        cap = create_capability(repo, business_id="CAP-1")
        written = repo.upsert(EntityKind.CAPABILITY, EntityPatch(
            workspace_id=WORKSPACE, business_id="CAP-1", version=cap.version, state=approved_state(),
        ))
        assert repo.get(EntityKind.CAPABILITY, "CAP-1").version == written.version

    def test_merged_state_validated(self, repo):
        """Test a patch that would leave a rejected entity without comment is refused."""
        cap = create_capability(repo, business_id="CAP-1", state=rejected_state())
        with pytest.raises(ValidationError):
            repo.upsert(EntityKind.CAPABILITY, EntityPatch(
                workspace_id=WORKSPACE,
                business_id="CAP-1",
                version=cap.version,
                state=StatePatch(stage_status=StageStatus.APPROVED, approval_status=ApprovalStatus.REJECTED),
            ))


class TestEnablerParent:
    """Test foreign key handling for enablers."""

    def test_create_with_parent(self, repo):
        cap = create_capability(repo)
        enb = create_enabler(repo, capability=cap)
        assert enb.capability_id == cap.internal_id

    def test_create_without_parent(self, repo):
        with pytest.raises(ForeignKeyError):
            repo.upsert(EntityKind.ENABLER, EntityPatch(workspace_id=WORKSPACE, business_id="ENB-1"))

    def test_unknown_parent(self, repo):
        with pytest.raises(ForeignKeyError, match="unknown capability"):
            repo.upsert(EntityKind.ENABLER, EnablerPatch(
                workspace_id=WORKSPACE, business_id="ENB-1", capability_id=9999,
            ))

    def test_parent_in_other_workspace(self, db_session):
        other = EntityStateRepository(db_session, "ws-other")
        cap = create_capability(other)
        repo = EntityStateRepository(db_session, WORKSPACE)
        with pytest.raises(ForeignKeyError):
            create_enabler(repo, capability=cap)

    def test_update_keeps_parent(self, repo):
        cap = create_capability(repo)
        enb = create_enabler(repo, capability=cap, business_id="ENB-1")
        updated = repo.upsert(EntityKind.ENABLER, EnablerPatch(
            workspace_id=WORKSPACE, business_id="ENB-1", version=enb.version, state=approved_state(),
        ))
        assert updated.capability_id == cap.internal_id


class TestReads:
    def test_get_missing(self, repo):
        with pytest.raises(NotFoundError):
            repo.get(EntityKind.STORY_CARD, "STORY-404")

    def test_workspaces_are_isolated(self, db_session):
        a = EntityStateRepository(db_session, "ws-a")
        b = EntityStateRepository(db_session, "ws-b")
        create_capability(a, business_id="CAP-1")
        create_capability(b, business_id="CAP-1")
        assert len(a.list_entities(EntityKind.CAPABILITY)) == 1
        assert a.get(EntityKind.CAPABILITY, "CAP-1").internal_id != b.get(EntityKind.CAPABILITY, "CAP-1").internal_id

    def test_snapshot(self, repo):
        cap = create_capability(repo)
        create_enabler(repo, capability=cap)
        create_enabler(repo, capability=cap)
        create_story_card(repo)
        repo.approve_phase(WorkflowStage.INTENT)

        snapshot = repo.snapshot()
        assert len(snapshot.capabilities) == 1
        assert len(snapshot.enablers) == 2
        assert len(snapshot.story_cards) == 1
        assert snapshot.total == 4
        assert snapshot.phase_approval(WorkflowStage.INTENT).approved


class TestHistory:
    """Test the state change audit trail."""

    def test_create_records_initial_state(self, repo):
        create_capability(repo, business_id="CAP-1")
        history = repo.history(EntityKind.CAPABILITY, "CAP-1")
        fields = {change.field_name for change in history}
        assert fields == {"lifecycle_state", "workflow_stage", "stage_status", "approval_status"}
        assert all(change.change_reason == "created" for change in history)

    def test_only_changed_fields_recorded(self, repo):
        cap = create_capability(repo, business_id="CAP-1")
        repo.upsert(EntityKind.CAPABILITY, EntityPatch(
            workspace_id=WORKSPACE,
            business_id="CAP-1",
            version=cap.version,
            state=approved_state(WorkflowStage.INTENT),
            change_reason="approve",
            changed_by="reviewer@example.com",
        ))
        latest = [c for c in repo.history(EntityKind.CAPABILITY, "CAP-1") if c.version == 2]
        assert {c.field_name for c in latest} == {"lifecycle_state", "stage_status", "approval_status"}
        approval = next(c for c in latest if c.field_name == "approval_status")
        assert approval.old_value == "pending"
        assert approval.new_value == "approved"
        assert approval.changed_by == "reviewer@example.com"

    def test_newest_first_and_limit(self, repo):
        cap = create_capability(repo, business_id="CAP-1")
        repo.upsert(EntityKind.CAPABILITY, EntityPatch(
            workspace_id=WORKSPACE, business_id="CAP-1", version=cap.version, state=approved_state(),
        ))
        history = repo.history(EntityKind.CAPABILITY, "CAP-1", limit=2)
        assert len(history) == 2
        assert all(change.version == 2 for change in history)

    def test_content_edit_records_nothing(self, repo):
        create_capability(repo, business_id="CAP-1")
        before = len(repo.history(EntityKind.CAPABILITY, "CAP-1"))
        repo.upsert(EntityKind.CAPABILITY, EntityPatch(workspace_id=WORKSPACE, business_id="CAP-1", name="x"))
        assert len(repo.history(EntityKind.CAPABILITY, "CAP-1")) == before

    def test_invalid_limit(self, repo):
        with pytest.raises(ValidationError):
            repo.history(EntityKind.CAPABILITY, "CAP-1", limit=0)


class TestPhaseApprovals:
    def test_approve_is_idempotent(self, repo):
        """Test re-approving keeps the original approved_at."""
        first = repo.approve_phase(WorkflowStage.SPECIFICATION)
        second = repo.approve_phase("specification")
        assert first.approved and second.approved
        assert second.approved_at == first.approved_at

    def test_revoke_clears_record_only(self, repo):
        """Test revoking leaves entity approvals alone."""
        cap = create_capability(repo, state=approved_state(WorkflowStage.INTENT))
        repo.approve_phase(WorkflowStage.INTENT)
        revoked = repo.revoke_phase(WorkflowStage.INTENT)
        assert not revoked.approved
        assert revoked.approved_at is None
        assert repo.get(EntityKind.CAPABILITY, cap.business_id).approval_status == ApprovalStatus.APPROVED

    def test_one_record_per_phase(self, repo):
        repo.approve_phase(WorkflowStage.INTENT)
        repo.revoke_phase(WorkflowStage.INTENT)
        repo.approve_phase(WorkflowStage.INTENT)
        assert len(repo.list_phase_approvals()) == 1

    def test_revoke_unknown_phase_creates_record(self, repo):
        record = repo.revoke_phase(WorkflowStage.CONTROL_LOOP)
        assert not record.approved
        assert repo.get_phase_approval(WorkflowStage.CONTROL_LOOP) is not None

    def test_listed_in_phase_order(self, repo):
        repo.approve_phase(WorkflowStage.IMPLEMENTATION)
        repo.approve_phase(WorkflowStage.INTENT)
        assert [p.phase for p in repo.list_phase_approvals()] == [
            WorkflowStage.INTENT, WorkflowStage.IMPLEMENTATION,
        ]


class TestExportImport:
    """Test workspace portability."""

    def test_export_format(self, repo):
        cap = create_capability(repo, business_id="CAP-1", state=approved_state())
        create_enabler(repo, capability=cap, business_id="ENB-1")
        document = repo.export()
        assert document["version"] == EXPORT_FORMAT_VERSION
        assert document["workspace_id"] == WORKSPACE
        assert document["capabilities"][0]["approval_status"] == "approved"
        assert document["enablers"][0]["capability_business_id"] == "CAP-1"
        assert "state_changes" not in document

    def test_export_with_history(self, repo):
        create_capability(repo)
        document = repo.export(include_history=True)
        assert len(document["state_changes"]) == 4

    def test_import_into_other_workspace(self, db_session, repo):
        """Test the target workspace wins and parents resolve by business id."""
        cap = create_capability(repo, business_id="CAP-1", state=approved_state())
        create_enabler(repo, capability=cap, business_id="ENB-1", state=rejected_state("too vague"))
        create_story_card(repo, business_id="STORY-1")
        document = repo.export()

        target = EntityStateRepository(db_session, "ws-copy")
        result = target.import_document(document)

        assert result["success"] is True
        assert result["imported"] == {"capabilities": 1, "enablers": 1, "story_cards": 1}
        assert result["workspace_id"] == "ws-copy"
        copied_cap = target.get(EntityKind.CAPABILITY, "CAP-1")
        copied_enb = target.get(EntityKind.ENABLER, "ENB-1")
        assert copied_cap.approval_status == ApprovalStatus.APPROVED
        assert copied_enb.capability_id == copied_cap.internal_id
        assert copied_enb.rejection_comment == "too vague"

    def test_import_continues_after_failure(self, db_session):
        """Test a bad record is reported and the rest are imported."""
        target = EntityStateRepository(db_session, "ws-import")
        document = {
            "capabilities": [
                {"business_id": "CAP-1", "name": "ok"},
                {"business_id": "CAP-2", "approval_status": "approved", "stage_status": "in_progress"},
            ],
            "enablers": [
                {"business_id": "ENB-1", "capability_business_id": "CAP-404"},
                {"business_id": "ENB-2", "capability_business_id": "CAP-1"},
            ],
            "story_cards": [{"business_id": "STORY-1", "approval_status": "bogus"}],
        }
        result = target.import_document(document)

        assert result["success"] is False
        assert result["imported"] == {"capabilities": 1, "enablers": 1, "story_cards": 0}
        assert {f["business_id"] for f in result["failed"]} == {"CAP-2", "ENB-1", "STORY-1"}
        assert target.get(EntityKind.ENABLER, "ENB-2").capability_id == target.get(EntityKind.CAPABILITY, "CAP-1").internal_id
        with pytest.raises(NotFoundError):
            target.get(EntityKind.CAPABILITY, "CAP-2")

    def test_import_requires_mapping(self, repo):
        with pytest.raises(ValidationError):
            repo.import_document(["not", "a", "mapping"])

    def test_import_non_mapping_record_reported(self, db_session):
        target = EntityStateRepository(db_session, "ws-import")
        result = target.import_document({"capabilities": ["CAP-1", None, {"business_id": "CAP-2"}]})

        assert result["imported"]["capabilities"] == 1
        assert [f["business_id"] for f in result["failed"]] == ["CAP-1", "None"]
        assert "mapping" in result["failed"][0]["error"]
        assert target.get(EntityKind.CAPABILITY, "CAP-2").business_id == "CAP-2"

    def test_import_collection_must_be_list(self, repo):
        with pytest.raises(ValidationError):
            repo.import_document({"capabilities": {"business_id": "CAP-1"}})
