"""Entity repository: CRUD over entity records keyed by unique name."""

from __future__ import annotations

from ..models import Entity, EntityKey, dedupe, get_current_datetime
from ..storage.base import ENTITY_TABLE, StorageAdapter


class EntityRepository:
    """Reads and writes `Entity` records through a storage adapter."""

    def __init__(self, storage: StorageAdapter):
        self.storage = storage

    async def find_by_name(self, name: str) -> Entity | None:
        record = await self.storage.get(EntityKey(name=name))
        return Entity.from_record(record) if record is not None else None

    async def find_by_names(self, names: list[str]) -> list[Entity]:
        """Batch lookup. Missing names are omitted; results keep the input order."""
        keys = [EntityKey(name=n) for n in dedupe(names)]
        if not keys:
            return []
        return [Entity.from_record(r) for r in await self.storage.get_many(keys)]

    async def create(self, entity: Entity) -> Entity:
        """Insert the entity unconditionally, stamping its timestamps."""
        now = get_current_datetime()
        stored = entity.model_copy(update={"created_at": now, "updated_at": now})
        await self.storage.put(stored.key, stored.to_record())
        return stored

    async def update_observations(self, name: str, observations: list[str]) -> Entity | None:
        """
        Replace the observation list of an entity.

        Returns the updated entity, or None if the entity no longer exists.
        """
        entity = await self.find_by_name(name)
        if entity is None:
            return None
        # Rebuilt through validation so the observation list stays deduplicated
        updated = Entity(
            name=entity.name,
            entity_type=entity.entity_type,
            observations=observations,
            created_at=entity.created_at,
            updated_at=get_current_datetime(),
        )
        await self.storage.put(updated.key, updated.to_record())
        return updated

    async def delete(self, name: str) -> bool:
        return await self.storage.delete(EntityKey(name=name))

    async def find_all(self) -> list[Entity]:
        return [Entity.from_record(r) for r in await self.storage.scan(ENTITY_TABLE)]

    async def search(self, query: str) -> list[Entity]:
        """Entities whose name, type or any observation contains `query` (case-insensitive)."""
        return [Entity.from_record(r) for r in await self.storage.search_text(ENTITY_TABLE, query)]
