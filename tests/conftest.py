"""
Pytest configuration and fixtures for kg-memory tests.

This module provides shared fixtures for setting up isolated test environments
and an in-process stand-in for the Supabase client, so the Supabase adapter's
query building can be exercised without a network.
"""

from copy import deepcopy
from pathlib import Path
from typing import Any, AsyncGenerator, Generator

import pytest
import pytest_asyncio

from kg_memory.context import ctx
from kg_memory.manager import KnowledgeGraphManager
from kg_memory.settings import KGSettings
from kg_memory.storage import InMemoryStorage, JsonlStorage


# ---------- Fake Supabase client ----------
class FakeResponse:
    def __init__(self, data: list[dict[str, Any]]):
        self.data = data


class FakeQuery:
    """Records filters like the PostgREST query builder and applies them on execute()."""

    def __init__(self, client: "FakeSupabaseClient", table: str, op: str, payload=None, on_conflict=None):
        self.client = client
        self.table = table
        self.op = op
        self.payload = payload
        self.on_conflict = on_conflict
        self.filters: list[tuple[str, str, Any]] = []
        self.row_limit: int | None = None

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        self.filters.append(("in", column, list(values)))
        return self

    def limit(self, n: int) -> "FakeQuery":
        self.row_limit = n
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        for op, column, value in self.filters:
            if op == "eq" and row.get(column) != value:
                return False
            if op == "in" and row.get(column) not in value:
                return False
        return True

    def execute(self) -> FakeResponse:
        self.client.executed.append(self)
        if self.client.fail:
            raise ConnectionError("supabase unreachable")
        rows = self.client.tables.setdefault(self.table, [])

        if self.op == "select":
            found = [deepcopy(r) for r in rows if self._matches(r)]
            if self.row_limit is not None:
                found = found[: self.row_limit]
            return FakeResponse(found)

        if self.op == "upsert":
            conflict = self.on_conflict.split(",")
            for i, row in enumerate(rows):
                if all(row.get(c) == self.payload.get(c) for c in conflict):
                    rows[i] = deepcopy(self.payload)
                    break
            else:
                rows.append(deepcopy(self.payload))
            return FakeResponse([dict(self.payload)])

        if self.op == "delete":
            removed = [r for r in rows if self._matches(r)]
            self.client.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResponse(removed)

        raise AssertionError(f"unexpected op {self.op}")


class FakeTable:
    def __init__(self, client: "FakeSupabaseClient", name: str):
        self.client = client
        self.name = name

    def select(self, *columns: str) -> FakeQuery:
        return FakeQuery(self.client, self.name, "select")

    def upsert(self, payload: dict[str, Any], on_conflict: str = "") -> FakeQuery:
        return FakeQuery(self.client, self.name, "upsert", payload=payload, on_conflict=on_conflict)

    def delete(self) -> FakeQuery:
        return FakeQuery(self.client, self.name, "delete")


class FakeSupabaseClient:
    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.executed: list[FakeQuery] = []
        self.fail = False

    def table(self, name: str) -> FakeTable:
        return FakeTable(self, name)


@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


# ---------- Storage and manager ----------
@pytest.fixture
def temp_memory_file(tmp_path: Path) -> Path:
    """Path to a not-yet-existing JSONL memory file inside a temporary directory."""
    return tmp_path / "memory.jsonl"


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def manager(storage: InMemoryStorage) -> KnowledgeGraphManager:
    """A KnowledgeGraphManager over fresh in-memory storage."""
    return KnowledgeGraphManager(storage)


@pytest.fixture
def jsonl_manager(temp_memory_file: Path) -> KnowledgeGraphManager:
    """A KnowledgeGraphManager over a temporary JSONL file."""
    return KnowledgeGraphManager(JsonlStorage(temp_memory_file))


@pytest.fixture
def sample_entities() -> list[dict[str, Any]]:
    """Sample entities with varied entity types and observations."""
    return [
        {
            "name": "Alice Johnson",
            "entityType": "person",
            "observations": ["Software engineer at TechCorp", "Lives in San Francisco"],
        },
        {
            "name": "TechCorp",
            "entityType": "organization",
            "observations": ["Technology company founded in 2010", "Specializes in cloud computing"],
        },
        {
            "name": "Project Alpha",
            "entityType": "project",
            "observations": ["Machine learning initiative"],
        },
    ]


@pytest.fixture
def sample_relations() -> list[dict[str, str]]:
    return [
        {"from": "Alice Johnson", "to": "TechCorp", "relationType": "works at"},
        {"from": "Alice Johnson", "to": "Project Alpha", "relationType": "leads"},
        {"from": "TechCorp", "to": "Project Alpha", "relationType": "sponsors"},
    ]


@pytest_asyncio.fixture
async def populated_manager(
    manager: KnowledgeGraphManager,
    sample_entities: list[dict[str, Any]],
    sample_relations: list[dict[str, str]],
) -> AsyncGenerator[KnowledgeGraphManager, None]:
    """A manager with the sample entities and relations already stored."""
    await manager.create_entities(sample_entities)
    await manager.create_relations(sample_relations)
    yield manager


# ---------- Application context ----------
@pytest.fixture
def mock_context(tmp_path: Path) -> Generator[None, None, None]:
    """Initialize the global context with in-memory storage; reset it afterwards."""
    ctx.reset()
    settings = KGSettings(backend="memory", memory_path=tmp_path / "memory.jsonl", project_root=tmp_path)
    ctx.init(settings)
    try:
        yield
    finally:
        ctx.reset()
