"""
Knowledge Graph Manager.

This module contains the core business logic for managing the knowledge graph:
idempotent creation of entities and relations, observation updates, cascade
deletion and graph queries. Storage is reached only through the entity and
relation repositories, which in turn use a `StorageAdapter`.

Every mutation has two forms:

- `create_entities(...)` etc. return the subset of items that actually took effect.
- `create_entities_batch(...)` etc. return the full `BatchOutcome`, including
  skipped and failed items with their reasons.
"""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter

from .kg_logging import logger
from .models import (
    AddObservationResult,
    ClearGraphResult,
    CreateEntityRequest,
    DeleteObservationRequest,
    DeleteObservationResult,
    Entity,
    EntityName,
    EntityNotFoundError,
    HealthStatus,
    ImportSummary,
    KnowledgeGraph,
    NodeNames,
    NonEmptyStr,
    ObservationRequest,
    Relation,
    dedupe,
    validate_input,
)
from .outcomes import BatchOutcome, ItemOutcome, run_batch
from .repository import EntityRepository, RelationRepository
from .storage.base import StorageAdapter

_entity_requests = TypeAdapter(list[CreateEntityRequest])
_relations = TypeAdapter(list[Relation])
_observation_requests = TypeAdapter(list[ObservationRequest])
_deletion_requests = TypeAdapter(list[DeleteObservationRequest])
_entity_names = TypeAdapter(list[EntityName])
_node_names = TypeAdapter(NodeNames)
_query = TypeAdapter(NonEmptyStr)


class KnowledgeGraphManager:
    """
    Core manager for knowledge graph operations.

    The manager is the only writer of the graph invariants: unique entity names, no
    relation referencing a missing entity, no duplicate observations on an entity and
    no duplicate (from, to, relationType) triple. It holds no state of its own besides
    the repositories, so one instance can be shared by concurrent callers.
    """

    def __init__(self, storage: StorageAdapter):
        """
        Initialize the knowledge graph manager.

        Args:
            storage: The storage adapter backing both repositories
        """
        self.storage = storage
        self.entities = EntityRepository(storage)
        self.relations = RelationRepository(storage, self.entities)

    @classmethod
    def from_settings(cls, settings) -> "KnowledgeGraphManager":
        """Initialize the knowledge graph manager with the storage adapter selected by the settings."""
        from .storage import build_storage

        return cls(build_storage(settings))

    async def _induced_subgraph(self, entities: list[Entity]) -> KnowledgeGraph:
        if not entities:
            return KnowledgeGraph.empty()
        relations = await self.relations.find_by_entities({e.name for e in entities})
        return KnowledgeGraph(entities=entities, relations=relations)

    # ---------- Entities ----------
    async def create_entities_batch(self, entities: list[Any]) -> BatchOutcome:
        """
        Create multiple new entities, skipping any whose name already exists.

        Args:
            entities: list of entity creation requests (dicts or `CreateEntityRequest`)
        """
        requests: list[CreateEntityRequest] = validate_input(_entity_requests, entities, "entities")

        async def _create(request: CreateEntityRequest) -> ItemOutcome:
            if await self.entities.find_by_name(request.name) is not None:
                return ItemOutcome.skipped(request, "entity already exists")
            created = await self.entities.create(request.to_entity())
            logger.debug(f"✅ Created entity {created}")
            return ItemOutcome.applied(request, created)

        return await run_batch("create_entities", requests, _create)

    async def create_entities(self, entities: list[Any]) -> list[Entity]:
        """
        Create multiple new entities in the knowledge graph.

        Returns:
            The entities actually created. Entities whose name already existed are left
            unchanged and omitted.
        """
        return (await self.create_entities_batch(entities)).applied()

    async def delete_entities_batch(self, entity_names: list[Any]) -> BatchOutcome:
        names: list[str] = dedupe(validate_input(_entity_names, entity_names, "entity names"))

        async def _delete(name: str) -> ItemOutcome:
            if await self.entities.find_by_name(name) is None:
                return ItemOutcome.skipped(name, "entity does not exist")
            # Relations go first so no relation is ever left pointing at a missing entity
            await self.relations.delete_by_entity(name)
            if not await self.entities.delete(name):
                return ItemOutcome.skipped(name, "entity already removed")
            logger.debug(f"🗑️ Deleted entity {name} and its relations")
            return ItemOutcome.applied(name, name)

        return await run_batch("delete_entities", names, _delete)

    async def delete_entities(self, entity_names: list[Any]) -> list[str]:
        """
        Delete multiple entities and every relation touching them.

        Returns:
            The names actually deleted. Names that did not exist are omitted.
        """
        return (await self.delete_entities_batch(entity_names)).applied()

    # ---------- Relations ----------
    async def create_relations_batch(self, relations: list[Any]) -> BatchOutcome:
        validated: list[Relation] = validate_input(_relations, relations, "relations")

        async def _create(relation: Relation) -> ItemOutcome:
            from_entity, to_entity = await self.relations.get_endpoints(relation)
            missing = [
                name
                for name, entity in (
                    (relation.from_entity, from_entity),
                    (relation.to_entity, to_entity),
                )
                if entity is None
            ]
            if missing:
                raise EntityNotFoundError(f"Entity not found: {', '.join(dedupe(missing))}")
            if await self.relations.exists(relation):
                return ItemOutcome.skipped(relation, "relation already exists")
            created = await self.relations.create(relation)
            if created is None:
                # An endpoint was deleted between the check and the write
                raise EntityNotFoundError(f"Endpoint of {relation} disappeared during creation")
            logger.debug(f"🔗 Created relation {created}")
            return ItemOutcome.applied(relation, created)

        return await run_batch("create_relations", validated, _create)

    async def create_relations(self, relations: list[Any]) -> list[Relation]:
        """
        Create multiple new relations between existing entities.

        Returns:
            The relations actually created. Duplicates and relations with a missing
            endpoint are omitted.
        """
        return (await self.create_relations_batch(relations)).applied()

    async def delete_relations_batch(self, relations: list[Any]) -> BatchOutcome:
        validated: list[Relation] = validate_input(_relations, relations, "relations")

        async def _delete(relation: Relation) -> ItemOutcome:
            if not await self.relations.exists(relation):
                return ItemOutcome.skipped(relation, "relation does not exist")
            if not await self.relations.delete(relation):
                return ItemOutcome.skipped(relation, "relation already removed")
            return ItemOutcome.applied(relation, relation)

        return await run_batch("delete_relations", validated, _delete)

    async def delete_relations(self, relations: list[Any]) -> list[Relation]:
        """
        Delete multiple relations from the knowledge graph.

        Returns:
            The relations actually deleted. Relations that did not exist are omitted.
        """
        return (await self.delete_relations_batch(relations)).applied()

    # ---------- Observations ----------
    async def add_observations_batch(self, observations: list[Any]) -> BatchOutcome:
        requests: list[ObservationRequest] = validate_input(
            _observation_requests, observations, "observation requests"
        )

        async def _add(request: ObservationRequest) -> ItemOutcome:
            entity = await self.entities.find_by_name(request.entity_name)
            if entity is None:
                raise EntityNotFoundError(f"Entity not found: {request.entity_name}")

            existing = set(entity.observations)
            new = [c for c in dedupe(request.contents) if c not in existing]
            if not new:
                return ItemOutcome.skipped(
                    request,
                    "all observations already present",
                    AddObservationResult(entity_name=entity.name),
                )

            updated = await self.entities.update_observations(entity.name, entity.observations + new)
            if updated is None:
                raise EntityNotFoundError(f"Entity {entity.name} disappeared during update")
            return ItemOutcome.applied(
                request, AddObservationResult(entity_name=entity.name, added_observations=new)
            )

        return await run_batch("add_observations", requests, _add)

    async def add_observations(self, observations: list[Any]) -> list[AddObservationResult]:
        """
        Add new observations to existing entities.

        Returns:
            One result per input item, in input order, listing the observations newly
            added. The list is empty when the entity is missing or every observation
            was already present.
        """
        outcome = await self.add_observations_batch(observations)
        return [
            i.result
            if isinstance(i.result, AddObservationResult)
            else AddObservationResult(entity_name=i.input.entity_name)
            for i in outcome.items
        ]

    async def delete_observations_batch(self, deletions: list[Any]) -> BatchOutcome:
        requests: list[DeleteObservationRequest] = validate_input(
            _deletion_requests, deletions, "observation deletions"
        )

        async def _delete(request: DeleteObservationRequest) -> ItemOutcome:
            entity = await self.entities.find_by_name(request.entity_name)
            if entity is None:
                return ItemOutcome.skipped(
                    request,
                    "entity does not exist",
                    DeleteObservationResult(entity_name=request.entity_name),
                )

            existing = set(entity.observations)
            present = [o for o in dedupe(request.observations) if o in existing]
            if not present:
                return ItemOutcome.skipped(
                    request,
                    "no matching observations",
                    DeleteObservationResult(entity_name=entity.name),
                )

            to_delete = set(present)
            remaining = [o for o in entity.observations if o not in to_delete]
            updated = await self.entities.update_observations(entity.name, remaining)
            if updated is None:
                return ItemOutcome.skipped(
                    request,
                    "entity deleted during update",
                    DeleteObservationResult(entity_name=entity.name),
                )
            return ItemOutcome.applied(
                request, DeleteObservationResult(entity_name=entity.name, deleted_observations=present)
            )

        return await run_batch("delete_observations", requests, _delete)

    async def delete_observations(self, deletions: list[Any]) -> list[DeleteObservationResult]:
        """
        Delete specific observations from entities.

        Returns:
            One result per input item, in input order, listing the observations actually
            removed. Missing entities and observations are not errors.
        """
        outcome = await self.delete_observations_batch(deletions)
        return [
            i.result
            if isinstance(i.result, DeleteObservationResult)
            else DeleteObservationResult(entity_name=i.input.entity_name)
            for i in outcome.items
        ]

    # ---------- Queries ----------
    async def read_graph(self) -> KnowledgeGraph:
        """
        Read the entire knowledge graph.

        Returns:
            The complete knowledge graph
        """
        entities = await self.entities.find_all()
        relations = await self.relations.find_all()
        return KnowledgeGraph(entities=entities, relations=relations)

    async def search_nodes(self, query: str) -> KnowledgeGraph:
        """
        Search for nodes in the knowledge graph based on a query.

        Args:
            query: Search query to match against names, types, and observation content

        Returns:
            Filtered knowledge graph containing only matching entities and the relations
            between them
        """
        q: str = validate_input(_query, query, "search query")
        entities = await self.entities.search(q)
        logger.debug(f"🔍 Search for '{q}' matched {len(entities)} entities")
        return await self._induced_subgraph(entities)

    async def open_nodes(self, names: list[Any]) -> KnowledgeGraph:
        """
        Open specific nodes in the knowledge graph by their names.

        Args:
            names: Names of the entities to retrieve (at least one)

        Returns:
            The existing subset of the requested entities and the relations between them
        """
        validated: list[str] = validate_input(_node_names, names, "entity names")
        entities = await self.entities.find_by_names(validated)
        return await self._induced_subgraph(entities)

    # ---------- Maintenance ----------
    async def clear_graph(self) -> ClearGraphResult:
        """Remove every relation, then every entity. Returns how many of each were removed."""
        deleted_relations = 0
        for relation in await self.relations.find_all():
            if await self.relations.delete(relation):
                deleted_relations += 1

        deleted_entities = 0
        for entity in await self.entities.find_all():
            if await self.entities.delete(entity.name):
                deleted_entities += 1

        logger.info(f"🧹 Cleared graph: {deleted_entities} entities, {deleted_relations} relations")
        return ClearGraphResult(
            deleted_entities=deleted_entities, deleted_relations=deleted_relations
        )

    async def health_check(self) -> HealthStatus:
        """Check that the storage backend is reachable by reading the graph. Never raises."""
        try:
            await self.read_graph()
        except Exception as e:
            logger.error(f"⛔ Health check failed for {self.storage.backend} storage: {e}")
            return HealthStatus(backend=self.storage.backend, status="error", error=str(e))
        return HealthStatus(backend=self.storage.backend, status="healthy")

    async def import_records(
        self, entities: list[Any], relations: list[Any], invalid_lines: int = 0
    ) -> ImportSummary:
        """
        Import entity and relation records into the graph.

        Entities are created before relations so relations between imported entities
        resolve. Existing entities and relations are skipped, so importing the same
        data twice changes nothing.
        """
        entity_outcome = await self.create_entities_batch(entities)
        relation_outcome = await self.create_relations_batch(relations)
        entity_counts = entity_outcome.counts()
        relation_counts = relation_outcome.counts()
        summary = ImportSummary(
            entities_created=entity_counts["applied"],
            entities_skipped=entity_counts["skipped"],
            relations_created=relation_counts["applied"],
            relations_skipped=relation_counts["skipped"],
            failed=entity_counts["failed"] + relation_counts["failed"],
            invalid_lines=invalid_lines,
        )
        logger.info(f"📥 Import complete: {summary}")
        return summary

    async def close(self) -> None:
        await self.storage.close()


__all__ = ["KnowledgeGraphManager"]
