"""
Tests for the storage adapters.

The contract tests run against every adapter; the classes after them cover
behavior specific to the JSONL file and the Supabase query building.
"""

import json
from pathlib import Path

import pytest

from kg_memory.manager import KnowledgeGraphManager
from kg_memory.models import EntityKey, Relation
from kg_memory.settings import SupabaseConfig
from kg_memory.storage import InMemoryStorage, JsonlStorage, StorageError
from kg_memory.storage.base import record_key
from kg_memory.storage.supabase import SupabaseStorage

pytestmark = pytest.mark.unit


def _entity(name: str, entity_type: str = "person", observations: list[str] | None = None) -> dict:
    return {"name": name, "entityType": entity_type, "observations": observations or []}


def _rel(a: str, b: str, t: str = "knows") -> Relation:
    return Relation(from_entity=a, to_entity=b, relation_type=t)


@pytest.fixture(params=["memory", "jsonl", "supabase"])
def adapter(request, temp_memory_file: Path, fake_supabase):
    if request.param == "memory":
        return InMemoryStorage()
    if request.param == "jsonl":
        return JsonlStorage(temp_memory_file)
    return SupabaseStorage(SupabaseConfig(url="https://example.supabase.co", key="k"), client=fake_supabase)


class TestAdapterContract:
    async def test_get_put_delete(self, adapter):
        key = EntityKey(name="Alice")
        assert await adapter.get(key) is None

        await adapter.put(key, _entity("Alice", observations=["x"]))
        assert await adapter.get(key) == _entity("Alice", observations=["x"])

        # put replaces
        await adapter.put(key, _entity("Alice", observations=["x", "y"]))
        assert (await adapter.get(key))["observations"] == ["x", "y"]

        assert await adapter.delete(key) is True
        assert await adapter.get(key) is None
        assert await adapter.delete(key) is False

    async def test_get_many_omits_missing_and_keeps_order(self, adapter):
        for name in ("A", "B", "C"):
            await adapter.put(EntityKey(name=name), _entity(name))
        records = await adapter.get_many([EntityKey(name=n) for n in ("C", "missing", "A")])
        assert [r["name"] for r in records] == ["C", "A"]
        assert await adapter.get_many([]) == []

    async def test_relation_key_is_the_triple(self, adapter):
        knows, likes = _rel("A", "B", "knows"), _rel("A", "B", "likes")
        await adapter.put(knows, knows.to_dict())
        await adapter.put(likes, likes.to_dict())
        await adapter.put(knows, knows.to_dict())

        assert len(await adapter.scan("relation")) == 2
        assert await adapter.get(knows) == knows.to_dict()
        assert await adapter.delete(likes) is True
        assert await adapter.scan("relation") == [knows.to_dict()]

    async def test_scan_is_per_table(self, adapter):
        await adapter.put(EntityKey(name="A"), _entity("A"))
        rel = _rel("A", "A", "is")
        await adapter.put(rel, rel.to_dict())
        assert [r["name"] for r in await adapter.scan("entity")] == ["A"]
        assert len(await adapter.scan("relation")) == 1

    async def test_search_text_matches_any_searchable_field(self, adapter):
        await adapter.put(EntityKey(name="Alice"), _entity("Alice", "person", ["Works at Acme"]))
        await adapter.put(EntityKey(name="Acme"), _entity("Acme", "organization"))
        await adapter.put(EntityKey(name="Bob"), _entity("Bob", "person", ["Plays chess"]))

        assert {r["name"] for r in await adapter.search_text("entity", "acme")} == {"Alice", "Acme"}
        assert {r["name"] for r in await adapter.search_text("entity", "PERSON")} == {"Alice", "Bob"}
        assert await adapter.search_text("entity", "nothing like this") == []

    async def test_scan_edges(self, adapter):
        for rel in (_rel("A", "B"), _rel("B", "C"), _rel("C", "A"), _rel("A", "C", "likes")):
            await adapter.put(rel, rel.to_dict())

        from_a = await adapter.scan_edges({"A"}, None)
        assert {(r["from"], r["to"]) for r in from_a} == {("A", "B"), ("A", "C")}

        to_a = await adapter.scan_edges(None, {"A"})
        assert {(r["from"], r["to"]) for r in to_a} == {("C", "A")}

        between = await adapter.scan_edges({"A", "B"}, {"A", "B"})
        assert {(r["from"], r["to"]) for r in between} == {("A", "B")}

        assert len(await adapter.scan_edges(None, None)) == 4
        assert await adapter.scan_edges(set(), None) == []

    async def test_returned_records_are_copies(self, adapter):
        key = EntityKey(name="A")
        await adapter.put(key, _entity("A", observations=["x"]))
        record = await adapter.get(key)
        record["observations"].append("mutated")
        assert (await adapter.get(key))["observations"] == ["x"]


class TestRecordKey:
    def test_key_in_field_order(self):
        assert record_key("relation", {"relationType": "r", "to": "B", "from": "A"}) == ("A", "B", "r")

    def test_missing_or_non_string_key_field(self):
        with pytest.raises(StorageError, match="missing key field"):
            record_key("entity", {"entityType": "t"})
        with pytest.raises(StorageError, match="non-string key field 'name'"):
            record_key("entity", {"name": ["x"]})
        with pytest.raises(StorageError, match="non-string key field 'to'"):
            record_key("relation", {"from": "A", "to": None, "relationType": "r"})


class TestJsonlStorage:
    async def test_persists_across_instances(self, temp_memory_file: Path):
        first = JsonlStorage(temp_memory_file)
        await first.put(EntityKey(name="Alice"), _entity("Alice"))
        rel = _rel("Alice", "Alice", "is")
        await first.put(rel, rel.to_dict())

        second = JsonlStorage(temp_memory_file)
        assert await second.get(EntityKey(name="Alice")) == _entity("Alice")
        assert await second.scan("relation") == [rel.to_dict()]

    async def test_file_layout(self, temp_memory_file: Path):
        storage = JsonlStorage(temp_memory_file)
        await storage.put(EntityKey(name="Alice"), _entity("Alice"))

        lines = [json.loads(line) for line in temp_memory_file.read_text(encoding="utf-8").splitlines()]
        assert lines[0]["type"] == "meta"
        assert lines[0]["data"]["schema_version"] == 1
        assert lines[1] == {"type": "entity", "data": _entity("Alice")}

    async def test_missing_file_is_empty(self, temp_memory_file: Path):
        storage = JsonlStorage(temp_memory_file)
        assert await storage.scan("entity") == []
        assert not temp_memory_file.exists()

    async def test_invalid_lines_are_skipped(self, temp_memory_file: Path):
        temp_memory_file.write_text(
            "\n".join(
                [
                    json.dumps({"type": "entity", "data": _entity("Alice")}),
                    "this is not json",
                    json.dumps({"type": "unknown", "data": {}}),
                    json.dumps({"type": "relation", "data": {"from": "Alice"}}),
                    "",
                    json.dumps({"type": "entity", "data": _entity("Bob")}),
                ]
            ),
            encoding="utf-8",
        )
        storage = JsonlStorage(temp_memory_file)
        assert [r["name"] for r in await storage.scan("entity")] == ["Alice", "Bob"]
        assert await storage.scan("relation") == []

    async def test_records_failing_model_validation_are_skipped(self, temp_memory_file: Path):
        temp_memory_file.write_text(
            "\n".join(
                [
                    json.dumps({"type": "entity", "data": _entity("Good")}),
                    json.dumps({"type": "entity", "data": {"name": "NoType", "observations": []}}),
                    json.dumps({"type": "relation", "data": {"from": "Good", "to": "Good", "relationType": " "}}),
                ]
            ),
            encoding="utf-8",
        )
        manager = KnowledgeGraphManager(JsonlStorage(temp_memory_file))

        graph = await manager.read_graph()
        assert [e.name for e in graph.entities] == ["Good"]
        assert graph.relations == []
        assert [e.name for e in (await manager.search_nodes("o")).entities] == ["Good"]
        assert (await manager.health_check()).status == "healthy"

    async def test_non_string_key_fields_are_skipped(self, temp_memory_file: Path):
        temp_memory_file.write_text(
            "\n".join(
                [
                    json.dumps({"type": "entity", "data": _entity("Good")}),
                    json.dumps({"type": "entity", "data": {"name": ["x"], "entityType": "t"}}),
                    json.dumps({"type": "relation", "data": {"from": "Good", "to": 7, "relationType": "r"}}),
                ]
            ),
            encoding="utf-8",
        )
        manager = KnowledgeGraphManager(JsonlStorage(temp_memory_file))

        opened = await manager.open_nodes(["Good"])
        assert [e.name for e in opened.entities] == ["Good"]
        assert opened.relations == []

    async def test_creates_parent_directory(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "memory.jsonl"
        storage = JsonlStorage(path)
        await storage.put(EntityKey(name="A"), _entity("A"))
        assert path.exists()


class TestSupabaseStorage:
    @pytest.fixture
    def supabase_storage(self, fake_supabase) -> SupabaseStorage:
        config = SupabaseConfig(
            url="https://example.supabase.co",
            key="k",
            entities_table="entities",
            relations_table="relations",
        )
        return SupabaseStorage(config, client=fake_supabase)

    async def test_uses_configured_tables(self, supabase_storage, fake_supabase):
        await supabase_storage.put(EntityKey(name="A"), _entity("A"))
        rel = _rel("A", "A", "is")
        await supabase_storage.put(rel, rel.to_dict())
        assert set(fake_supabase.tables) == {"entities", "relations"}

    async def test_upsert_conflict_columns(self, supabase_storage, fake_supabase):
        await supabase_storage.put(EntityKey(name="A"), _entity("A"))
        rel = _rel("A", "A", "is")
        await supabase_storage.put(rel, rel.to_dict())
        conflicts = [q.on_conflict for q in fake_supabase.executed if q.op == "upsert"]
        assert conflicts == ["name", "from,to,relationType"]

    async def test_null_columns_are_dropped(self, supabase_storage, fake_supabase):
        fake_supabase.tables["entities"] = [
            {"name": "A", "entityType": "t", "observations": ["x"], "updatedAt": None}
        ]
        assert await supabase_storage.get(EntityKey(name="A")) == {
            "name": "A",
            "entityType": "t",
            "observations": ["x"],
        }

    async def test_get_many_entities_in_one_query(self, supabase_storage, fake_supabase):
        for name in ("A", "B"):
            await supabase_storage.put(EntityKey(name=name), _entity(name))
        fake_supabase.executed.clear()

        records = await supabase_storage.get_many([EntityKey(name="B"), EntityKey(name="A")])
        assert [r["name"] for r in records] == ["B", "A"]
        assert len(fake_supabase.executed) == 1
        assert fake_supabase.executed[0].filters == [("in", "name", ["B", "A"])]

    async def test_scan_edges_filters_server_side(self, supabase_storage, fake_supabase):
        await supabase_storage.scan_edges({"B", "A"}, None)
        assert fake_supabase.executed[-1].filters == [("in", "from", ["A", "B"])]

    async def test_client_errors_become_storage_errors(self, supabase_storage, fake_supabase):
        fake_supabase.fail = True
        with pytest.raises(StorageError):
            await supabase_storage.get(EntityKey(name="A"))
        with pytest.raises(StorageError):
            await supabase_storage.put(EntityKey(name="A"), _entity("A"))
        with pytest.raises(StorageError):
            await supabase_storage.scan("entity")
