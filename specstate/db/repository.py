"""Entity state repository.

Implements the store contract on top of SQLAlchemy: point reads,
create-or-overwrite and compare-and-swap upserts, workspace snapshots,
phase approval records, the state-change audit trail and workspace
export/import.

The repository flushes but never commits; the caller owns the
transaction.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from specstate.core.entities import (
    EnablerPatch,
    Entity,
    EntityKind,
    EntityPatch,
    KIND_ORDER,
    PhaseApproval,
    StateChange,
    StatePatch,
    WorkspaceSnapshot,
)
from specstate.core.errors import (
    ForeignKeyError,
    NotFoundError,
    OptimisticLockError,
    StateSyncError,
    ValidationError,
)
from specstate.core.workflow.states import (
    ApprovalStatus,
    DEFAULT_APPROVAL_STATUS,
    DEFAULT_LIFECYCLE_STATE,
    DEFAULT_STAGE_STATUS,
    DEFAULT_WORKFLOW_STAGE,
    LifecycleState,
    PHASE_ORDER,
    STATE_FIELDS,
    StageStatus,
    WorkflowStage,
    parse_phase,
    state_violation,
)
from specstate.db.base import utcnow
from specstate.db.models import (
    Capability,
    EntityStateChange,
    MODELS_BY_KIND,
    PhaseApprovalRecord,
)

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "1.0"
DEFAULT_HISTORY_LIMIT = 50


def _value(obj) -> Optional[str]:
    """Column value for an enum or plain string."""
    if obj is None:
        return None
    return obj.value if hasattr(obj, "value") else str(obj)


def row_to_entity(kind: EntityKind, row) -> Entity:
    """Convert an ORM row into an immutable Entity snapshot."""
    return Entity(
        kind=kind,
        business_id=row.business_id,
        internal_id=row.id,
        workspace_id=row.workspace_id,
        name=row.name or "",
        description=row.description or "",
        lifecycle_state=LifecycleState(row.lifecycle_state),
        workflow_stage=WorkflowStage(row.workflow_stage),
        stage_status=StageStatus(row.stage_status),
        approval_status=ApprovalStatus(row.approval_status),
        version=row.version,
        rejection_comment=row.rejection_comment,
        file_path=row.file_path,
        capability_id=getattr(row, "capability_id", None),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def record_to_phase_approval(record: PhaseApprovalRecord) -> PhaseApproval:
    return PhaseApproval(
        workspace_id=record.workspace_id,
        phase=WorkflowStage(record.phase),
        approved=bool(record.approved),
        approved_at=record.approved_at,
        updated_at=record.updated_at,
    )


class EntityStateRepository:
    """Store operations scoped to one workspace."""

    def __init__(self, db: Session, workspace_id: str):
        if not workspace_id or not workspace_id.strip():
            raise ValidationError("workspace_id is required")
        self.db = db
        self.workspace_id = workspace_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get_row(self, kind: EntityKind, business_id: str):
        model = MODELS_BY_KIND[kind]
        return self.db.execute(
            select(model).where(
                model.workspace_id == self.workspace_id,
                model.business_id == business_id,
            )
        ).scalar_one_or_none()

    def get(self, kind, business_id: str) -> Entity:
        """Fetch one entity.

        Raises:
            NotFoundError: If the entity does not exist in this workspace
        """
        kind = EntityKind.parse(kind)
        row = self._get_row(kind, business_id)
        if row is None:
            raise NotFoundError(kind.value, business_id, self.workspace_id)
        return row_to_entity(kind, row)

    def list_entities(self, kind) -> List[Entity]:
        kind = EntityKind.parse(kind)
        model = MODELS_BY_KIND[kind]
        rows = self.db.execute(
            select(model)
            .where(model.workspace_id == self.workspace_id)
            .order_by(model.business_id)
        ).scalars().all()
        return [row_to_entity(kind, row) for row in rows]

    def list_phase_approvals(self) -> List[PhaseApproval]:
        records = self.db.execute(
            select(PhaseApprovalRecord).where(PhaseApprovalRecord.workspace_id == self.workspace_id)
        ).scalars().all()
        order = {phase.value: index for index, phase in enumerate(PHASE_ORDER)}
        records = sorted(records, key=lambda r: order.get(r.phase, len(order)))
        return [record_to_phase_approval(r) for r in records]

    def snapshot(self) -> WorkspaceSnapshot:
        """All entities and phase approvals of the workspace."""
        return WorkspaceSnapshot(
            workspace_id=self.workspace_id,
            capabilities=self.list_entities(EntityKind.CAPABILITY),
            enablers=self.list_entities(EntityKind.ENABLER),
            story_cards=self.list_entities(EntityKind.STORY_CARD),
            phase_approvals=self.list_phase_approvals(),
        )

    def history(self, kind, business_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[StateChange]:
        """State changes of one entity, newest first."""
        kind = EntityKind.parse(kind)
        if limit <= 0:
            raise ValidationError("limit must be positive")
        rows = self.db.execute(
            select(EntityStateChange)
            .where(
                EntityStateChange.workspace_id == self.workspace_id,
                EntityStateChange.entity_type == kind.value,
                EntityStateChange.business_id == business_id,
            )
            .order_by(EntityStateChange.id.desc())
            .limit(limit)
        ).scalars().all()
        return [
            StateChange(
                kind=kind,
                business_id=row.business_id,
                field_name=row.field_name,
                old_value=row.old_value,
                new_value=row.new_value,
                version=row.version,
                change_reason=row.change_reason,
                changed_by=row.changed_by,
                changed_at=row.changed_at,
                id=row.id,
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, kind, patch: EntityPatch) -> Entity:
        """Create, overwrite or compare-and-swap one entity.

        Without ``patch.version`` a missing record is created (version 1)
        and an existing one has the supplied fields overwritten. With
        ``patch.version`` the write only lands if the stored version
        matches. Either way the returned version is greater than any
        version the caller could have held.

        Raises:
            ValidationError: Malformed patch or an inconsistent merged state
            NotFoundError: CAS against a record that does not exist
            OptimisticLockError: Stored version differs from ``patch.version``
            ForeignKeyError: Enabler parent missing or in another workspace
        """
        kind = EntityKind.parse(kind)
        self._validate_patch(kind, patch)

        row = self._get_row(kind, patch.business_id)

        if patch.version is None:
            if row is None:
                return self._create(kind, patch)
            return self._overwrite(kind, row, patch, expected_version=row.version)

        if row is None:
            raise NotFoundError(kind.value, patch.business_id, self.workspace_id)
        if row.version != patch.version:
            logger.warning(
                f"Version conflict on {kind.value} {patch.business_id}: "
                f"expected {patch.version}, stored {row.version}"
            )
            raise OptimisticLockError(kind.value, patch.business_id, patch.version, row.version)
        return self._overwrite(kind, row, patch, expected_version=patch.version)

    def _validate_patch(self, kind: EntityKind, patch: EntityPatch) -> None:
        if not patch.business_id or not patch.business_id.strip():
            raise ValidationError("business_id is required", kind=kind.value)
        if patch.workspace_id != self.workspace_id:
            raise ValidationError(
                f"Patch for workspace {patch.workspace_id} sent to workspace {self.workspace_id}",
                kind=kind.value,
                business_id=patch.business_id,
            )
        if isinstance(patch, EnablerPatch) and kind != EntityKind.ENABLER:
            raise ValidationError(
                f"Enabler patch cannot be applied to a {kind.value}",
                kind=kind.value,
                business_id=patch.business_id,
            )
        if patch.version is not None and patch.version < 1:
            raise ValidationError(
                f"Invalid version {patch.version}",
                kind=kind.value,
                business_id=patch.business_id,
            )

    def _check_parent(self, kind: EntityKind, patch: EntityPatch, required: bool) -> None:
        if kind != EntityKind.ENABLER:
            return
        capability_id = getattr(patch, "capability_id", None)
        if capability_id is None:
            if required:
                raise ForeignKeyError(
                    f"enabler {patch.business_id} has no parent capability",
                    kind=kind.value,
                    business_id=patch.business_id,
                )
            return
        parent = self.db.get(Capability, capability_id)
        if parent is None or parent.workspace_id != self.workspace_id:
            raise ForeignKeyError(
                f"enabler {patch.business_id} references unknown capability id {capability_id}",
                kind=kind.value,
                business_id=patch.business_id,
            )

    def _check_state(self, kind: EntityKind, business_id: str, state: Dict[str, Any]) -> None:
        problem = state_violation(
            StageStatus(state["stage_status"]),
            ApprovalStatus(state["approval_status"]),
            state.get("rejection_comment"),
        )
        if problem:
            raise ValidationError(
                f"Inconsistent state for {kind.value} {business_id}: {problem}",
                kind=kind.value,
                business_id=business_id,
            )

    def _field_values(self, patch: EntityPatch) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for name in ("name", "description", "file_path"):
            value = getattr(patch, name)
            if value is not None:
                values[name] = value
        capability_id = getattr(patch, "capability_id", None)
        if capability_id is not None:
            values["capability_id"] = capability_id
        if patch.state is not None:
            for name, value in patch.state.changes().items():
                values[name] = _value(value)
        return values

    def _create(self, kind: EntityKind, patch: EntityPatch) -> Entity:
        self._check_parent(kind, patch, required=True)

        model = MODELS_BY_KIND[kind]
        now = utcnow()
        values = {
            "lifecycle_state": DEFAULT_LIFECYCLE_STATE.value,
            "workflow_stage": DEFAULT_WORKFLOW_STAGE.value,
            "stage_status": DEFAULT_STAGE_STATUS.value,
            "approval_status": DEFAULT_APPROVAL_STATUS.value,
            "rejection_comment": None,
            "name": "",
            "description": "",
        }
        values.update(self._field_values(patch))
        self._check_state(kind, patch.business_id, values)

        row = model(
            workspace_id=self.workspace_id,
            business_id=patch.business_id,
            version=1,
            created_at=now,
            updated_at=now,
            **values,
        )
        self.db.add(row)
        self.db.flush()

        self._record_changes(
            kind,
            patch,
            old={name: None for name in STATE_FIELDS},
            new={name: getattr(row, name) for name in STATE_FIELDS},
            version=row.version,
            default_reason="created",
        )
        logger.info(f"Created {kind.value} {patch.business_id} in workspace {self.workspace_id}")
        return row_to_entity(kind, row)

    def _overwrite(self, kind: EntityKind, row, patch: EntityPatch, expected_version: int) -> Entity:
        self._check_parent(kind, patch, required=False)

        values = self._field_values(patch)
        old_state = {name: getattr(row, name) for name in STATE_FIELDS}
        merged = dict(old_state)
        merged.update({k: v for k, v in values.items() if k in STATE_FIELDS})
        self._check_state(kind, patch.business_id, merged)

        model = MODELS_BY_KIND[kind]
        new_version = expected_version + 1
        result = self.db.execute(
            update(model)
            .where(model.id == row.id, model.version == expected_version)
            .values(version=new_version, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.expire(row)
            actual = self.db.execute(select(model.version).where(model.id == row.id)).scalar_one_or_none()
            logger.warning(
                f"Lost update on {kind.value} {patch.business_id}: "
                f"expected {expected_version}, stored {actual}"
            )
            raise OptimisticLockError(kind.value, patch.business_id, expected_version, actual)

        self.db.refresh(row)
        self._record_changes(
            kind,
            patch,
            old=old_state,
            new={name: getattr(row, name) for name in STATE_FIELDS},
            version=row.version,
        )
        logger.info(f"Updated {kind.value} {patch.business_id} to version {row.version}")
        return row_to_entity(kind, row)

    def _record_changes(
        self,
        kind: EntityKind,
        patch: EntityPatch,
        old: Dict[str, Optional[str]],
        new: Dict[str, Optional[str]],
        version: int,
        default_reason: Optional[str] = None,
    ) -> None:
        now = utcnow()
        for name in STATE_FIELDS:
            if old.get(name) == new.get(name):
                continue
            self.db.add(EntityStateChange(
                workspace_id=self.workspace_id,
                entity_type=kind.value,
                business_id=patch.business_id,
                field_name=name,
                old_value=old.get(name),
                new_value=new.get(name),
                version=version,
                change_reason=patch.change_reason or default_reason,
                changed_by=patch.changed_by,
                changed_at=now,
            ))
        self.db.flush()

    # ------------------------------------------------------------------
    # Phase approvals
    # ------------------------------------------------------------------

    def _get_phase_record(self, phase: WorkflowStage) -> Optional[PhaseApprovalRecord]:
        return self.db.execute(
            select(PhaseApprovalRecord).where(
                PhaseApprovalRecord.workspace_id == self.workspace_id,
                PhaseApprovalRecord.phase == phase.value,
            )
        ).scalar_one_or_none()

    def get_phase_approval(self, phase) -> Optional[PhaseApproval]:
        record = self._get_phase_record(parse_phase(phase))
        return record_to_phase_approval(record) if record else None

    def approve_phase(self, phase) -> PhaseApproval:
        """Mark a phase approved.

        Idempotent: an already-approved record is returned unchanged,
        keeping its original ``approved_at``. Readiness of the phase is
        decided by the caller, which owns the phase scope.
        """
        phase = parse_phase(phase)
        record = self._get_phase_record(phase)
        if record is not None and record.approved:
            return record_to_phase_approval(record)

        now = utcnow()
        if record is None:
            record = PhaseApprovalRecord(workspace_id=self.workspace_id, phase=phase.value, created_at=now)
            self.db.add(record)
        record.approved = True
        record.approved_at = now
        record.updated_at = now
        self.db.flush()

        logger.info(f"Phase {phase.value} approved in workspace {self.workspace_id}")
        return record_to_phase_approval(record)

    def revoke_phase(self, phase) -> PhaseApproval:
        """Clear a phase approval. Entity states are not touched."""
        phase = parse_phase(phase)
        record = self._get_phase_record(phase)
        now = utcnow()
        if record is None:
            record = PhaseApprovalRecord(workspace_id=self.workspace_id, phase=phase.value, created_at=now)
            self.db.add(record)
        record.approved = False
        record.approved_at = None
        record.updated_at = now
        self.db.flush()

        logger.info(f"Phase {phase.value} revoked in workspace {self.workspace_id}")
        return record_to_phase_approval(record)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export(self, include_history: bool = False) -> Dict[str, Any]:
        """Serialize the workspace into a portable document."""
        snapshot = self.snapshot()
        capability_ids = {cap.internal_id: cap.business_id for cap in snapshot.capabilities}

        document: Dict[str, Any] = {
            "version": EXPORT_FORMAT_VERSION,
            "exported_at": utcnow().isoformat(),
            "workspace_id": self.workspace_id,
            "capabilities": [_export_entity(e) for e in snapshot.capabilities],
            "enablers": [],
            "story_cards": [_export_entity(e) for e in snapshot.story_cards],
        }
        for enabler in snapshot.enablers:
            item = _export_entity(enabler)
            item["capability_business_id"] = capability_ids.get(enabler.capability_id)
            document["enablers"].append(item)

        if include_history:
            rows = self.db.execute(
                select(EntityStateChange)
                .where(EntityStateChange.workspace_id == self.workspace_id)
                .order_by(EntityStateChange.id)
            ).scalars().all()
            document["state_changes"] = [
                {
                    "entity_type": row.entity_type,
                    "business_id": row.business_id,
                    "field_name": row.field_name,
                    "old_value": row.old_value,
                    "new_value": row.new_value,
                    "version": row.version,
                    "change_reason": row.change_reason,
                    "changed_by": row.changed_by,
                    "changed_at": row.changed_at.isoformat() if row.changed_at else None,
                }
                for row in rows
            ]
        return document

    def import_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Write an exported document into this workspace.

        Each record is written in its own savepoint; a failing record is
        reported and the rest continue. Capabilities are imported before
        enablers so parents resolve by business id.
        """
        if not isinstance(document, dict):
            raise ValidationError("Import document must be a mapping")

        imported = {kind.collection: 0 for kind in KIND_ORDER}
        failed: List[Dict[str, Any]] = []

        for kind in KIND_ORDER:
            items = document.get(kind.collection) or []
            if not isinstance(items, list):
                raise ValidationError(f"Import field {kind.collection} must be a list")
            for item in items:
                business_id = (item.get("business_id") or "") if isinstance(item, dict) else str(item)
                try:
                    if not isinstance(item, dict):
                        raise ValidationError(f"{kind.value} record must be a mapping", kind=kind.value)
                    with self.db.begin_nested():
                        patch = self._import_patch(kind, item)
                        self.upsert(kind, patch)
                except (StateSyncError, ValueError, TypeError) as e:
                    logger.warning(f"Failed to import {kind.value} {business_id}: {e}")
                    failed.append({"kind": kind.value, "business_id": business_id, "error": str(e)})
                    continue
                imported[kind.collection] += 1

        logger.info(
            f"Imported into workspace {self.workspace_id}: "
            + ", ".join(f"{count} {name}" for name, count in imported.items())
            + f"; {len(failed)} failed"
        )
        return {
            "success": not failed,
            "imported": imported,
            "failed": failed,
            "workspace_id": self.workspace_id,
        }

    def _import_patch(self, kind: EntityKind, item: Dict[str, Any]) -> EntityPatch:
        state = StatePatch(
            stage_status=StageStatus(item.get("stage_status", DEFAULT_STAGE_STATUS.value)),
            approval_status=ApprovalStatus(item.get("approval_status", DEFAULT_APPROVAL_STATUS.value)),
            lifecycle_state=LifecycleState(item.get("lifecycle_state", DEFAULT_LIFECYCLE_STATE.value)),
            workflow_stage=WorkflowStage(item.get("workflow_stage", DEFAULT_WORKFLOW_STAGE.value)),
            rejection_comment=item.get("rejection_comment"),
        )
        fields = dict(
            workspace_id=self.workspace_id,
            business_id=item.get("business_id") or "",
            name=item.get("name") or "",
            description=item.get("description") or "",
            file_path=item.get("file_path"),
            state=state,
            change_reason="imported",
        )
        if kind != EntityKind.ENABLER:
            return EntityPatch(**fields)

        parent_business_id = item.get("capability_business_id")
        parent = self._get_row(EntityKind.CAPABILITY, parent_business_id) if parent_business_id else None
        if parent is None:
            raise ForeignKeyError(
                f"enabler {fields['business_id']} references unknown capability {parent_business_id}",
                kind=kind.value,
                business_id=fields["business_id"],
            )
        return EnablerPatch(capability_id=parent.id, **fields)


def _export_entity(entity: Entity) -> Dict[str, Any]:
    return {
        "business_id": entity.business_id,
        "name": entity.name,
        "description": entity.description,
        "file_path": entity.file_path,
        "lifecycle_state": entity.lifecycle_state.value,
        "workflow_stage": entity.workflow_stage.value,
        "stage_status": entity.stage_status.value,
        "approval_status": entity.approval_status.value,
        "rejection_comment": entity.rejection_comment,
        "version": entity.version,
        "updated_at": entity.updated_at.isoformat() if entity.updated_at else None,
    }
