"""Common schemas for the specstate API."""

from typing import Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None
    kind: Optional[str] = None
    business_id: Optional[str] = None
    expected_version: Optional[int] = None
    actual_version: Optional[int] = None
    phase: Optional[str] = None
    reason: Optional[str] = None


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    404: {"model": ErrorResponse, "description": "Entity not found"},
    409: {"model": ErrorResponse, "description": "Version conflict"},
    422: {"model": ErrorResponse, "description": "Parent capability could not be resolved"},
}
