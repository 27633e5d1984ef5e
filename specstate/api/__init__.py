"""HTTP API exposing the entity state store."""
