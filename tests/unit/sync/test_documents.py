"""Tests for specification documents and phase scopes."""

import pytest

from specstate.core.entities import EntityKind
from specstate.core.workflow.states import WorkflowStage
from specstate.sync.documents import DocumentIndex, PhaseScope, ScopeItem
from tests.factories import make_document


class TestSpecDocument:
    def test_kind_inferred_from_business_id(self):
        assert make_document("CAP-1").kind == EntityKind.CAPABILITY
        assert make_document("ENB-1").kind == EntityKind.ENABLER
        assert make_document("STORY-1").kind == EntityKind.STORY_CARD

    def test_default_category(self):
        assert make_document("STORY-1").category == "storyboard"
        assert make_document("ENB-1").category == "enablers"

    def test_explicit_kind_and_category(self):
        document = make_document("VISION-1", kind="story_cards", category="vision")
        assert document.kind == EntityKind.STORY_CARD
        assert document.category == "vision"

    def test_phases_parsed(self):
        document = make_document("CAP-1", phases=["Specification", WorkflowStage.UI_DESIGN])
        assert document.phases == (WorkflowStage.SPECIFICATION, WorkflowStage.UI_DESIGN)

    def test_unknown_phase(self):
        with pytest.raises(ValueError):
            make_document("CAP-1", phases=["launch"])


class TestPhaseScope:
    def test_items_deduplicated(self):
        """Test an entity under two categories is one item overall."""
        scope = PhaseScope("intent")
        item = ScopeItem(EntityKind.STORY_CARD, "STORY-1")
        scope.add("vision", item)
        scope.add("storyboard", item)
        scope.add("storyboard", ScopeItem(EntityKind.STORY_CARD, "STORY-2"))
        assert scope.phase == WorkflowStage.INTENT
        assert len(scope) == 2
        assert scope.items()[0] == item

    def test_of_groups_by_kind(self):
        scope = PhaseScope.of(WorkflowStage.SPECIFICATION, [
            ("capability", "CAP-1"),
            (EntityKind.ENABLER, "ENB-1"),
            ("enablers", "ENB-2"),
        ])
        assert list(scope.categories) == ["capabilities", "enablers"]
        assert len(scope.categories["enablers"]) == 2


class TestDocumentIndex:
    def test_ordered_parents_first(self):
        index = DocumentIndex([
            make_document("STORY-1"),
            make_document("ENB-2", parent="CAP-1"),
            make_document("CAP-1"),
            make_document("ENB-1", parent="CAP-1"),
        ])
        assert [d.business_id for d in index.ordered()] == ["CAP-1", "ENB-1", "ENB-2", "STORY-1"]
        assert [d.business_id for d in index] == ["CAP-1", "ENB-1", "ENB-2", "STORY-1"]

    def test_add_replaces(self):
        index = DocumentIndex([make_document("CAP-1", name="old")])
        index.add(make_document("CAP-1", name="new"))
        assert len(index) == 1
        assert index.get("CAP-1").name == "new"

    def test_remove(self):
        index = DocumentIndex([make_document("CAP-1")])
        assert index.remove("CAP-1").business_id == "CAP-1"
        assert index.remove("CAP-1") is None
        assert index.get("CAP-1") is None

    def test_scope_for(self):
        index = DocumentIndex([
            make_document("CAP-1", phases=["specification"]),
            make_document("ENB-1", parent="CAP-1", phases=["specification", "implementation"]),
            make_document("STORY-1", phases=["intent"]),
        ])
        scope = index.scope_for("specification")
        assert scope.categories == {
            "capabilities": [ScopeItem(EntityKind.CAPABILITY, "CAP-1")],
            "enablers": [ScopeItem(EntityKind.ENABLER, "ENB-1")],
        }
        assert len(index.scope_for(WorkflowStage.CONTROL_LOOP)) == 0
