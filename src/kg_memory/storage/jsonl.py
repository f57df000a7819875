"""
Storage adapter: JSONL file.

The file holds one JSON object per line:

    {"type":"meta","data":{"schema_version":1,"app_version":"0.3.0"}}
    {"type":"entity","data":{"name":"Alice","entityType":"person","observations":[...]}}
    {"type":"relation","data":{"from":"Alice","to":"Bob","relationType":"knows"}}

Every call loads the whole file, applies its change and writes it back. Loading
and saving are synchronous, so no other coroutine can interleave within a call.
"""

from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path

from pydantic import ValidationError

from ..kg_logging import logger
from ..models import Entity, MemoryRecord, Relation
from ..version import KG_MEMORY_SCHEMA_VERSION, KG_MEMORY_VERSION
from .base import (
    ENTITY_TABLE,
    RELATION_TABLE,
    TABLES,
    Record,
    StorageAdapter,
    StorageError,
    StorageKey,
    Table,
    edge_matches,
    key_of,
    record_key,
    record_matches,
)

_Tables = dict[str, dict[tuple[str, ...], Record]]

# Model each record of a table must validate against to be loaded
_RECORD_MODELS = {ENTITY_TABLE: Entity, RELATION_TABLE: Relation}


class JsonlStorage(StorageAdapter):
    """File-backed storage using one JSON record per line."""

    backend = "jsonl"

    def __init__(self, memory_file_path: str | Path):
        """
        Initialize the adapter.

        Args:
            memory_file_path: Path to the JSONL file for persistent storage. The file is
                created on the first write; its directory is created immediately.
        """
        self.memory_file_path = Path(memory_file_path)
        # Ensure the directory exists
        self.memory_file_path.parent.mkdir(parents=True, exist_ok=True)

    # ---------- File IO ----------
    def _load(self) -> _Tables:
        """Load every record from the memory file. Invalid lines are logged and skipped."""
        tables: _Tables = {t: {} for t in TABLES}
        if not self.memory_file_path.exists():
            return tables

        try:
            with open(self.memory_file_path, "r", encoding="utf-8") as f:
                for i, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    # Parse a MemoryRecord; on failure, log and continue
                    try:
                        rec = MemoryRecord.model_validate_json(line)
                    except Exception as e:
                        logger.warning(f"Skipping invalid line {i} in {self.memory_file_path}: {e}")
                        continue

                    if rec.type == "meta":
                        version = rec.data.get("schema_version")
                        if version is not None and version != KG_MEMORY_SCHEMA_VERSION:
                            logger.warning(
                                f"Memory file schema version {version} differs from {KG_MEMORY_SCHEMA_VERSION}"
                            )
                        continue

                    try:
                        key = record_key(rec.type, rec.data)
                        _RECORD_MODELS[rec.type].model_validate(rec.data)
                    except (StorageError, ValidationError) as e:
                        logger.warning(f"Skipping line {i} in {self.memory_file_path}: {e}")
                        continue
                    tables[rec.type][key] = rec.data
        except OSError as e:
            raise StorageError(f"Failed to read {self.memory_file_path}: {e}") from e

        return tables

    def _save(self, tables: _Tables) -> None:
        """Write every record back to the memory file, replacing it atomically."""
        meta = {"schema_version": KG_MEMORY_SCHEMA_VERSION, "app_version": KG_MEMORY_VERSION}
        lines = [json.dumps({"type": "meta", "data": meta}, separators=(",", ":"))]
        for table in TABLES:
            for record in tables[table].values():
                lines.append(
                    json.dumps({"type": table, "data": record}, separators=(",", ":"), ensure_ascii=False)
                )

        tmp_path = self.memory_file_path.with_name(self.memory_file_path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
            os.replace(tmp_path, self.memory_file_path)
        except OSError as e:
            logger.error(f"⛔ Failed to write graph to {self.memory_file_path}: {e}")
            raise StorageError(f"Failed to write graph to {self.memory_file_path}: {e}") from e
        logger.debug(f"💾 Saved {len(lines) - 1} records to {self.memory_file_path}")

    # ---------- Adapter interface ----------
    async def get(self, key: StorageKey) -> Record | None:
        return self._load()[key.table].get(key_of(key))

    async def get_many(self, keys: list[StorageKey]) -> list[Record]:
        tables = self._load()
        records: list[Record] = []
        for key in keys:
            record = tables[key.table].get(key_of(key))
            if record is not None:
                records.append(deepcopy(record))
        return records

    async def put(self, key: StorageKey, record: Record) -> None:
        tables = self._load()
        tables[key.table][key_of(key)] = deepcopy(record)
        self._save(tables)

    async def delete(self, key: StorageKey) -> bool:
        tables = self._load()
        if tables[key.table].pop(key_of(key), None) is None:
            return False
        self._save(tables)
        return True

    async def scan(self, table: Table) -> list[Record]:
        return list(self._load()[table].values())

    async def search_text(self, table: Table, query: str) -> list[Record]:
        return [r for r in self._load()[table].values() if record_matches(table, r, query)]

    async def scan_edges(
        self, from_names: set[str] | None, to_names: set[str] | None
    ) -> list[Record]:
        return [
            r for r in self._load()[RELATION_TABLE].values() if edge_matches(r, from_names, to_names)
        ]

    def __repr__(self) -> str:
        return f"JsonlStorage(memory_file_path={str(self.memory_file_path)!r})"
