"""Audit trail of entity state changes."""

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from specstate.db.base import Base, utcnow


class EntityStateChange(Base):
    """
    Records one changed state field per row.

    Rows are append-only and keyed by business id rather than a foreign
    key, so history survives re-imports.
    """
    __tablename__ = "entity_state_changes"
    __table_args__ = (
        Index("ix_entity_state_changes_entity", "workspace_id", "entity_type", "business_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(255), nullable=False)
    entity_type = Column(String(50), nullable=False)
    business_id = Column(String(100), nullable=False)

    field_name = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)

    change_reason = Column(String(500), nullable=True)
    changed_by = Column(String(255), nullable=True)
    changed_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<EntityStateChange {self.business_id}.{self.field_name} {self.old_value}->{self.new_value}>"
