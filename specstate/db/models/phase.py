"""Phase approval records."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint

from specstate.db.base import Base, utcnow


class PhaseApprovalRecord(Base):
    """
    Phase-level approval for a workspace.

    At most one record per (workspace, phase). Revoking keeps the record
    and clears ``approved``/``approved_at``.
    """
    __tablename__ = "phase_approvals"
    __table_args__ = (
        UniqueConstraint("workspace_id", "phase", name="uq_phase_approvals_workspace_phase"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(255), nullable=False, index=True)
    phase = Column(String(50), nullable=False)
    approved = Column(Boolean, nullable=False, default=False)
    approved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<PhaseApprovalRecord {self.workspace_id}/{self.phase} approved={self.approved}>"
