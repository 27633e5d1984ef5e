"""Database models for specstate."""

from specstate.db.models.entity import (
    Capability,
    Enabler,
    StoryCard,
    MODELS_BY_KIND,
)
from specstate.db.models.phase import PhaseApprovalRecord
from specstate.db.models.history import EntityStateChange

__all__ = [
    "Capability",
    "Enabler",
    "StoryCard",
    "MODELS_BY_KIND",
    "PhaseApprovalRecord",
    "EntityStateChange",
]
