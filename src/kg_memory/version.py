"""Centralized application/version constants for kg-memory."""

# Bump when application version changes
KG_MEMORY_VERSION: str = "0.3.0"

# Bump when the persisted record layout changes
KG_MEMORY_SCHEMA_VERSION: int = 1
