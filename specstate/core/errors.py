"""Error taxonomy for entity state synchronization.

Usage errors (``ValidationError``, ``ForeignKeyError``) are raised before
any store call is made. Store errors (``NotFoundError``,
``OptimisticLockError``) and transport errors (``NetworkError``) are
propagated to the caller unchanged; nothing in this package retries a
mutating call.
"""

from typing import Optional


class StateSyncError(Exception):
    """Base class for all entity state errors."""

    code = "state_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[str] = None,
        business_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.business_id = business_id

    def to_dict(self) -> dict:
        """Serialize to the API error body."""
        return {
            "error": self.__class__.__name__,
            "detail": self.message,
            "code": self.code,
            "kind": self.kind,
            "business_id": self.business_id,
        }


class ValidationError(StateSyncError):
    """Raised when a request is malformed (missing id, missing rejection comment)."""

    code = "validation_error"
    status_code = 400


class PhaseNotReadyError(ValidationError):
    """Raised when a phase is approved before every in-scope entity is approved."""

    code = "phase_not_ready"

    def __init__(self, phase: str, reason: str):
        super().__init__(f"Phase {phase} cannot be approved: {reason}")
        self.phase = phase
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["phase"] = self.phase
        data["reason"] = self.reason
        return data


class NotFoundError(StateSyncError):
    """Raised when an entity does not exist in the store."""

    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, business_id: str, workspace_id: Optional[str] = None):
        scope = f" in workspace {workspace_id}" if workspace_id else ""
        super().__init__(
            f"{kind} {business_id} not found{scope}",
            kind=kind,
            business_id=business_id,
        )
        self.workspace_id = workspace_id


class OptimisticLockError(StateSyncError):
    """Raised when the supplied version does not match the stored version."""

    code = "optimistic_lock"
    status_code = 409

    def __init__(
        self,
        kind: str,
        business_id: str,
        expected_version: int,
        actual_version: Optional[int],
    ):
        super().__init__(
            f"Concurrent update detected on {kind} {business_id}: "
            f"expected version {expected_version}, found {actual_version}",
            kind=kind,
            business_id=business_id,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["expected_version"] = self.expected_version
        data["actual_version"] = self.actual_version
        return data


class ForeignKeyError(StateSyncError):
    """Raised when an enabler's parent capability cannot be resolved."""

    code = "foreign_key"
    status_code = 422


class NetworkError(StateSyncError):
    """Raised on transport failure or timeout talking to the store.

    The mutation may or may not have landed; callers must re-fetch before
    deciding to retry.
    """

    code = "network_error"
    status_code = 503


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        PhaseNotReadyError,
        NotFoundError,
        OptimisticLockError,
        ForeignKeyError,
        NetworkError,
    )
}
