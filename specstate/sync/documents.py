"""Specification documents used as the reconciliation seed.

Documents are the content authority (name, description, parent link,
file path) and decide which entities are in scope for a phase. They are
never consulted for approval state.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from specstate.core.entities import EntityKind, KIND_ORDER
from specstate.core.workflow.states import WorkflowStage, parse_phase

# Category an entity counts under when its document does not name one
DEFAULT_CATEGORIES = {
    EntityKind.CAPABILITY: "capabilities",
    EntityKind.ENABLER: "enablers",
    EntityKind.STORY_CARD: "storyboard",
}


class ScopeItem(NamedTuple):
    """One entity in a phase scope."""
    kind: EntityKind
    business_id: str


@dataclass(frozen=True)
class SpecDocument:
    business_id: str
    name: str = ""
    description: str = ""
    parent_reference: Optional[str] = None
    file_path: Optional[str] = None
    kind: Optional[EntityKind] = None
    category: Optional[str] = None
    phases: Tuple[WorkflowStage, ...] = ()

    def __post_init__(self):
        if self.kind is None:
            object.__setattr__(self, "kind", EntityKind.from_business_id(self.business_id))
        else:
            object.__setattr__(self, "kind", EntityKind.parse(self.kind))
        if self.category is None:
            object.__setattr__(self, "category", DEFAULT_CATEGORIES[self.kind])
        object.__setattr__(self, "phases", tuple(parse_phase(p) for p in self.phases))

    @property
    def item(self) -> ScopeItem:
        return ScopeItem(self.kind, self.business_id)


@dataclass
class PhaseScope:
    """Entities in scope for a phase, grouped by category."""

    phase: WorkflowStage
    categories: Dict[str, List[ScopeItem]] = field(default_factory=dict)

    def __post_init__(self):
        self.phase = parse_phase(self.phase)

    def add(self, category: str, item: ScopeItem) -> None:
        self.categories.setdefault(category, []).append(item)

    def items(self) -> List[ScopeItem]:
        seen = set()
        result = []
        for members in self.categories.values():
            for item in members:
                if item not in seen:
                    seen.add(item)
                    result.append(item)
        return result

    @classmethod
    def of(cls, phase, items: Iterable[ScopeItem]) -> "PhaseScope":
        """Scope whose items are grouped under their kind's default category."""
        scope = cls(phase)
        for item in items:
            item = ScopeItem(EntityKind.parse(item[0]), item[1])
            scope.add(DEFAULT_CATEGORIES[item.kind], item)
        return scope

    def __len__(self) -> int:
        return len(self.items())


class DocumentIndex:
    """Documents of one workspace, keyed by business id."""

    def __init__(self, documents: Iterable[SpecDocument] = ()):
        self._documents: Dict[str, SpecDocument] = {}
        for document in documents:
            self.add(document)

    def add(self, document: SpecDocument) -> None:
        self._documents[document.business_id] = document

    def remove(self, business_id: str) -> Optional[SpecDocument]:
        return self._documents.pop(business_id, None)

    def get(self, business_id: str) -> Optional[SpecDocument]:
        return self._documents.get(business_id)

    def by_kind(self, kind: EntityKind) -> List[SpecDocument]:
        return sorted(
            (d for d in self._documents.values() if d.kind == kind),
            key=lambda d: d.business_id,
        )

    def ordered(self) -> List[SpecDocument]:
        """Documents with parents before children."""
        result: List[SpecDocument] = []
        for kind in KIND_ORDER:
            result.extend(self.by_kind(kind))
        return result

    def scope_for(self, phase) -> PhaseScope:
        """Scope of a phase: every document tagged with it."""
        phase = parse_phase(phase)
        scope = PhaseScope(phase)
        for document in self.ordered():
            if phase in document.phases:
                scope.add(document.category, document.item)
        return scope

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self):
        return iter(self.ordered())
