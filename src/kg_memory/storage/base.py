"""
Storage adapter interface.

The graph manager and its repositories only talk to storage through the seven
capabilities defined here. Records are plain JSON-compatible dicts using the
external field names; keys are the typed keys from `kg_memory.models`
(`EntityKey` for entities, the `Relation` value object for relations).

Two tables exist:

- "entity": keyed by `name`
- "relation": keyed by (`from`, `to`, `relationType`)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Literal, Protocol

from ..models import KnowledgeGraphException

Table = Literal["entity", "relation"]

ENTITY_TABLE: Table = "entity"
RELATION_TABLE: Table = "relation"
TABLES: tuple[Table, ...] = (ENTITY_TABLE, RELATION_TABLE)

# Record fields forming the key of each table, in key order
KEY_FIELDS: dict[str, tuple[str, ...]] = {
    ENTITY_TABLE: ("name",),
    RELATION_TABLE: ("from", "to", "relationType"),
}

# Record fields matched by search_text
SEARCHABLE_FIELDS: dict[str, tuple[str, ...]] = {
    ENTITY_TABLE: ("name", "entityType", "observations"),
    RELATION_TABLE: ("relationType",),
}

Record = dict[str, Any]


class StorageKey(Protocol):
    """Anything that addresses a single record: a table name plus its key fields."""

    table: ClassVar[str]

    def key_fields(self) -> dict[str, str]: ...


class StorageError(KnowledgeGraphException):
    """Exception raised when a storage adapter call fails."""

    pass


def key_of(key: StorageKey) -> tuple[str, ...]:
    """Return the key of a typed key as a tuple, in KEY_FIELDS order."""
    fields = key.key_fields()
    return tuple(fields[f] for f in KEY_FIELDS[key.table])


def record_key(table: str, record: Record) -> tuple[str, ...]:
    """Return the key of a stored record as a tuple, in KEY_FIELDS order."""
    try:
        key = tuple(record[f] for f in KEY_FIELDS[table])
    except KeyError as e:
        raise StorageError(f"Record in table '{table}' is missing key field {e}") from e
    for field, value in zip(KEY_FIELDS[table], key):
        if not isinstance(value, str):
            raise StorageError(f"Record in table '{table}' has a non-string key field '{field}'")
    return key


def record_matches(table: str, record: Record, query: str) -> bool:
    """
    Check whether `query` occurs in any searchable field of a record.

    Matching is a case-insensitive substring test. String fields are tested
    directly; list fields match if any string element matches.
    """
    needle = query.lower()
    for field in SEARCHABLE_FIELDS[table]:
        value = record.get(field)
        if isinstance(value, str):
            if needle in value.lower():
                return True
        elif isinstance(value, list):
            if any(isinstance(v, str) and needle in v.lower() for v in value):
                return True
    return False


def edge_matches(record: Record, from_names: set[str] | None, to_names: set[str] | None) -> bool:
    """Check a relation record against optional endpoint sets (None means unrestricted)."""
    if from_names is not None and record.get("from") not in from_names:
        return False
    if to_names is not None and record.get("to") not in to_names:
        return False
    return True


class StorageAdapter(ABC):
    """
    Keyed record storage backing the knowledge graph.

    Every method is a coroutine and may suspend. Each individual call is expected to be
    atomic with respect to the underlying store; no cross-call transactions are offered.
    """

    backend: str = "abstract"

    @abstractmethod
    async def get(self, key: StorageKey) -> Record | None:
        """Point lookup by key. Returns None if absent."""

    @abstractmethod
    async def get_many(self, keys: list[StorageKey]) -> list[Record]:
        """Batch lookup. Missing keys are omitted; results follow the order of `keys`."""

    @abstractmethod
    async def put(self, key: StorageKey, record: Record) -> None:
        """Insert or replace the record stored under `key`."""

    @abstractmethod
    async def delete(self, key: StorageKey) -> bool:
        """Remove the record under `key`. Returns whether a record was removed."""

    @abstractmethod
    async def scan(self, table: Table) -> list[Record]:
        """Return every record of a table."""

    @abstractmethod
    async def search_text(self, table: Table, query: str) -> list[Record]:
        """Return every record of a table whose searchable fields contain `query`."""

    @abstractmethod
    async def scan_edges(
        self, from_names: set[str] | None, to_names: set[str] | None
    ) -> list[Record]:
        """
        Return relation records whose `from` is in `from_names` and whose `to` is in
        `to_names`. Passing None for a side leaves that side unrestricted.
        """

    async def close(self) -> None:
        """Release any resources held by the adapter."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(backend={self.backend!r})"


__all__ = [
    "ENTITY_TABLE",
    "KEY_FIELDS",
    "RELATION_TABLE",
    "Record",
    "SEARCHABLE_FIELDS",
    "StorageAdapter",
    "StorageError",
    "StorageKey",
    "TABLES",
    "Table",
    "edge_matches",
    "key_of",
    "record_key",
    "record_matches",
]
