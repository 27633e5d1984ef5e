"""Persistence layer: SQLAlchemy models and the entity state repository."""
