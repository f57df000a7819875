"""
Storage adapter: Supabase (PostgREST) tables.

Expected schema (table names are configurable):

- `kgEntities`: `name` (primary key), `entityType`, `observations` (jsonb/text[]),
  `createdAt`, `updatedAt`
- `kgRelations`: `from`, `to`, `relationType`, `createdAt`, unique on
  (`from`, `to`, `relationType`)
"""

from __future__ import annotations

from typing import Any

from supabase import create_client, Client as SBClient  # type: ignore

from ..kg_logging import logger
from ..settings import SupabaseConfig
from .base import (
    ENTITY_TABLE,
    KEY_FIELDS,
    RELATION_TABLE,
    Record,
    StorageAdapter,
    StorageError,
    StorageKey,
    Table,
    key_of,
    record_key,
    record_matches,
)


def _row_to_record(row: dict[str, Any]) -> Record:
    """Drop null columns so unset optional fields fall back to model defaults."""
    return {k: v for k, v in row.items() if v is not None}


class SupabaseStorage(StorageAdapter):
    """Storage adapter backed by two Supabase tables.

    Pass in a SupabaseConfig object to configure the adapter:
    - `url`: Supabase project URL
    - `key`: Supabase anon or service role key with read/write access
    - `entities_table` (optional): Name of the entities table (default: "kgEntities")
    - `relations_table` (optional): Name of the relations table (default: "kgRelations")

    An already-constructed client may be passed in place of one created from the config.
    """

    backend = "supabase"

    def __init__(self, config: SupabaseConfig, client: SBClient | None = None) -> None:
        self.settings: SupabaseConfig = config
        self.client = client if client is not None else create_client(config.url, config.key)

    def _ensure_client(self) -> SBClient:
        if not self.client:
            logger.error("(Supabase) client not initialized, (re)initializing...")
            self.client = create_client(self.settings.url, self.settings.key)
        return self.client

    def _table_name(self, table: str) -> str:
        if table == ENTITY_TABLE:
            return self.settings.entities_table
        if table == RELATION_TABLE:
            return self.settings.relations_table
        raise StorageError(f"Unknown table '{table}'")

    def _select_key(self, key: StorageKey):
        query = self._ensure_client().table(self._table_name(key.table)).select("*")
        for column, value in key.key_fields().items():
            query = query.eq(column, value)
        return query

    # ---------- Adapter interface ----------
    async def get(self, key: StorageKey) -> Record | None:
        try:
            response = self._select_key(key).limit(1).execute()
        except Exception as e:
            logger.error(f"(Supabase) Error getting {key.table} {key.key_fields()}: {e}")
            raise StorageError(f"(Supabase) Error getting {key.table} record: {e}") from e
        rows = response.data or []
        return _row_to_record(rows[0]) if rows else None

    async def get_many(self, keys: list[StorageKey]) -> list[Record]:
        if not keys:
            return []

        found: dict[tuple[str, tuple[str, ...]], Record] = {}

        # Entities resolve in a single query; relations are looked up one by one
        entity_names = [key_of(k)[0] for k in keys if k.table == ENTITY_TABLE]
        if entity_names:
            try:
                response = (
                    self._ensure_client()
                    .table(self.settings.entities_table)
                    .select("*")
                    .in_("name", list(dict.fromkeys(entity_names)))
                    .execute()
                )
            except Exception as e:
                logger.error(f"(Supabase) Error getting entities {entity_names}: {e}")
                raise StorageError(f"(Supabase) Error getting entities: {e}") from e
            for row in response.data or []:
                record = _row_to_record(row)
                found[(ENTITY_TABLE, record_key(ENTITY_TABLE, record))] = record

        for key in keys:
            if key.table != ENTITY_TABLE:
                record = await self.get(key)
                if record is not None:
                    found[(key.table, key_of(key))] = record

        records: list[Record] = []
        for key in keys:
            record = found.get((key.table, key_of(key)))
            if record is not None:
                records.append(dict(record))
        return records

    async def put(self, key: StorageKey, record: Record) -> None:
        table_name = self._table_name(key.table)
        try:
            (
                self._ensure_client()
                .table(table_name)
                .upsert(record, on_conflict=",".join(KEY_FIELDS[key.table]))
                .execute()
            )
        except Exception as e:
            logger.error(f"(Supabase) Error upserting into {table_name}: {e}")
            raise StorageError(f"(Supabase) Error upserting into {table_name}: {e}") from e
        logger.debug(f"(Supabase) Upserted {key.table} {key.key_fields()}")

    async def delete(self, key: StorageKey) -> bool:
        table_name = self._table_name(key.table)
        try:
            query = self._ensure_client().table(table_name).delete()
            for column, value in key.key_fields().items():
                query = query.eq(column, value)
            response = query.execute()
        except Exception as e:
            logger.error(f"(Supabase) Error deleting from {table_name}: {e}")
            raise StorageError(f"(Supabase) Error deleting from {table_name}: {e}") from e
        return bool(response.data)

    async def scan(self, table: Table) -> list[Record]:
        table_name = self._table_name(table)
        try:
            response = self._ensure_client().table(table_name).select("*").execute()
        except Exception as e:
            logger.error(f"(Supabase) Error loading {table_name}: {e}")
            raise StorageError(f"(Supabase) Error loading {table_name}: {e}") from e
        return [_row_to_record(row) for row in response.data or []]

    async def search_text(self, table: Table, query: str) -> list[Record]:
        # Observations are stored as an array column; matching happens client-side
        return [r for r in await self.scan(table) if record_matches(table, r, query)]

    async def scan_edges(
        self, from_names: set[str] | None, to_names: set[str] | None
    ) -> list[Record]:
        if (from_names is not None and not from_names) or (to_names is not None and not to_names):
            return []
        table_name = self.settings.relations_table
        try:
            query = self._ensure_client().table(table_name).select("*")
            if from_names is not None:
                query = query.in_("from", sorted(from_names))
            if to_names is not None:
                query = query.in_("to", sorted(to_names))
            response = query.execute()
        except Exception as e:
            logger.error(f"(Supabase) Error scanning {table_name}: {e}")
            raise StorageError(f"(Supabase) Error scanning {table_name}: {e}") from e
        return [_row_to_record(row) for row in response.data or []]

    def __repr__(self) -> str:
        return f"SupabaseStorage(url={self.settings.url!r})"
