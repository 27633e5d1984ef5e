"""Entity state tables.

Capabilities, enablers and story cards share one column set. The integer
primary key is the store-assigned internal id; ``business_id`` is the
external identifier, unique within a workspace.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from specstate.core.entities import EntityKind
from specstate.db.base import Base, utcnow


class EntityStateMixin:
    """Columns common to every entity kind."""

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(255), nullable=False, index=True)
    business_id = Column(String(100), nullable=False)

    # Content (document of record lives at file_path)
    name = Column(String(500), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    file_path = Column(String(1000), nullable=True)

    # Approval state
    lifecycle_state = Column(String(50), nullable=False, default="draft")
    workflow_stage = Column(String(50), nullable=False, default="intent")
    stage_status = Column(String(50), nullable=False, default="in_progress")
    approval_status = Column(String(50), nullable=False, default="pending", index=True)
    rejection_comment = Column(Text, nullable=True)

    # Optimistic lock token
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.business_id} v{self.version} [{self.approval_status}]>"


class Capability(EntityStateMixin, Base):
    __tablename__ = "capabilities"
    __table_args__ = (
        UniqueConstraint("workspace_id", "business_id", name="uq_capabilities_workspace_business"),
    )

    enablers = relationship("Enabler", back_populates="capability")


class Enabler(EntityStateMixin, Base):
    __tablename__ = "enablers"
    __table_args__ = (
        UniqueConstraint("workspace_id", "business_id", name="uq_enablers_workspace_business"),
    )

    capability_id = Column(Integer, ForeignKey("capabilities.id", ondelete="RESTRICT"), nullable=False, index=True)

    capability = relationship("Capability", back_populates="enablers")


class StoryCard(EntityStateMixin, Base):
    __tablename__ = "story_cards"
    __table_args__ = (
        UniqueConstraint("workspace_id", "business_id", name="uq_story_cards_workspace_business"),
    )


MODELS_BY_KIND = {
    EntityKind.CAPABILITY: Capability,
    EntityKind.ENABLER: Enabler,
    EntityKind.STORY_CARD: StoryCard,
}
