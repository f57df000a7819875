"""Storage adapter: in-memory (non-persistent; used for tests and ephemeral sessions)."""

from __future__ import annotations

from copy import deepcopy

from .base import (
    RELATION_TABLE,
    TABLES,
    Record,
    StorageAdapter,
    StorageKey,
    Table,
    edge_matches,
    key_of,
    record_matches,
)


class InMemoryStorage(StorageAdapter):
    """Dict-backed storage. Records are copied in and out so callers never share state with it."""

    backend = "memory"

    def __init__(self) -> None:
        self._tables: dict[str, dict[tuple[str, ...], Record]] = {t: {} for t in TABLES}

    async def get(self, key: StorageKey) -> Record | None:
        record = self._tables[key.table].get(key_of(key))
        return deepcopy(record) if record is not None else None

    async def get_many(self, keys: list[StorageKey]) -> list[Record]:
        records: list[Record] = []
        for key in keys:
            record = self._tables[key.table].get(key_of(key))
            if record is not None:
                records.append(deepcopy(record))
        return records

    async def put(self, key: StorageKey, record: Record) -> None:
        self._tables[key.table][key_of(key)] = deepcopy(record)

    async def delete(self, key: StorageKey) -> bool:
        return self._tables[key.table].pop(key_of(key), None) is not None

    async def scan(self, table: Table) -> list[Record]:
        return [deepcopy(r) for r in self._tables[table].values()]

    async def search_text(self, table: Table, query: str) -> list[Record]:
        return [deepcopy(r) for r in self._tables[table].values() if record_matches(table, r, query)]

    async def scan_edges(
        self, from_names: set[str] | None, to_names: set[str] | None
    ) -> list[Record]:
        return [
            deepcopy(r)
            for r in self._tables[RELATION_TABLE].values()
            if edge_matches(r, from_names, to_names)
        ]
