"""Storage adapters for the knowledge graph."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import StorageAdapter, StorageError
from .jsonl import JsonlStorage
from .memory import InMemoryStorage

if TYPE_CHECKING:
    from ..settings import KGSettings


def build_storage(settings: "KGSettings") -> StorageAdapter:
    """Create the storage adapter selected by the settings."""
    if settings.backend == "memory":
        return InMemoryStorage()
    if settings.backend == "jsonl":
        return JsonlStorage(settings.memory_path)
    if settings.backend == "supabase":
        # Imported lazily so the supabase client is only loaded when selected
        from .supabase import SupabaseStorage

        if settings.supabase is None:
            raise ValueError("Supabase backend selected but KG_SUPABASE_URL/KG_SUPABASE_KEY are not set")
        return SupabaseStorage(settings.supabase)
    raise ValueError(f"Unknown storage backend '{settings.backend}'")


__all__ = ["InMemoryStorage", "JsonlStorage", "StorageAdapter", "StorageError", "build_storage"]
