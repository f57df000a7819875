"""Relation repository: CRUD over directed typed edges between entities."""

from __future__ import annotations

from ..models import Entity, Relation, get_current_datetime
from ..storage.base import RELATION_TABLE, StorageAdapter
from .entity import EntityRepository


class RelationRepository:
    """
    Reads and writes `Relation` records through a storage adapter.

    Relations reference their endpoints by name only; entity data is never copied
    into relation records.
    """

    def __init__(self, storage: StorageAdapter, entities: EntityRepository):
        self.storage = storage
        self.entities = entities

    async def get_endpoints(self, relation: Relation) -> tuple[Entity | None, Entity | None]:
        """Resolve both endpoints of a relation. Either side is None if missing."""
        from_entity = await self.entities.find_by_name(relation.from_entity)
        to_entity = await self.entities.find_by_name(relation.to_entity)
        return from_entity, to_entity

    async def create(self, relation: Relation) -> Relation | None:
        """Store the relation. Returns None without writing if either endpoint is missing."""
        from_entity, to_entity = await self.get_endpoints(relation)
        if from_entity is None or to_entity is None:
            return None
        record = relation.to_dict()
        record["createdAt"] = get_current_datetime().isoformat()
        await self.storage.put(relation, record)
        return relation

    async def exists(self, relation: Relation) -> bool:
        return await self.storage.get(relation) is not None

    async def delete(self, relation: Relation) -> bool:
        return await self.storage.delete(relation)

    async def delete_by_entity(self, name: str) -> bool:
        """Remove every relation where `name` is either endpoint."""
        edges = await self.storage.scan_edges({name}, None)
        edges += await self.storage.scan_edges(None, {name})
        for record in edges:
            # A self-loop shows up in both scans; the second delete is a no-op
            await self.storage.delete(Relation.from_record(record))
        return True

    async def find_all(self) -> list[Relation]:
        return [Relation.from_record(r) for r in await self.storage.scan(RELATION_TABLE)]

    async def find_by_entities(self, names: set[str] | list[str]) -> list[Relation]:
        """Induced subgraph: relations whose endpoints are both in `names`."""
        name_set = set(names)
        if not name_set:
            return []
        return [Relation.from_record(r) for r in await self.storage.scan_edges(name_set, name_set)]
