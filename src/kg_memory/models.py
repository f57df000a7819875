"""
Data models for the knowledge graph store.

This module defines the data structures shared by the storage adapters, the
repositories and the graph manager: entities, relations, the typed record keys
used to address them, and the request/result shapes of the public operations.

External field names are camelCase (`entityType`, `relationType`, `from`, `to`);
the Python attribute names are snake_case and accepted as well on input.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, ClassVar, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)


def get_current_datetime() -> datetime:
    """Get the current datetime (UTC)."""
    return datetime.now(timezone.utc)


def _strip_and_require(v: Any) -> str:
    if not isinstance(v, str):
        raise ValueError("must be a string")
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


# Non-empty string with surrounding whitespace removed
NonEmptyStr = Annotated[str, BeforeValidator(_strip_and_require)]

# Validated entity name; the unique key of an entity
EntityName = Annotated[str, BeforeValidator(_strip_and_require)]

# Node names for open_nodes: at least one name
NodeNames = Annotated[list[EntityName], Field(min_length=1)]


def dedupe(values: list[str]) -> list[str]:
    """Remove duplicate strings, keeping the first occurrence of each."""
    return list(dict.fromkeys(values))


class KnowledgeGraphException(Exception):
    """
    Base exception for the knowledge graph.

    KnowledgeGraphException should be raised when there is an issue involving interactions between
    elements or components of the knowledge graph.
    - Exceptions involving input validity are raised as `InvalidInputError`, which is also a `ValueError`.
    - Missing endpoints or target entities are raised as `EntityNotFoundError`.
    """

    pass


class InvalidInputError(KnowledgeGraphException, ValueError):
    """Malformed input. Raised before any storage call; aborts the whole operation."""

    pass


class EntityNotFoundError(KnowledgeGraphException):
    """An operation referenced an entity that does not exist."""

    pass


def validate_input(adapter: TypeAdapter, data: Any, what: str) -> Any:
    """Validate raw input against a type adapter, raising InvalidInputError on failure."""
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid {what}: {e}") from e


class EntityKey(BaseModel):
    """Typed storage key for an entity record."""

    model_config = ConfigDict(frozen=True)

    table: ClassVar[str] = "entity"

    name: EntityName

    def key_fields(self) -> dict[str, str]:
        """Record fields identifying the entity."""
        return {"name": self.name}


class Entity(BaseModel):
    """
    Primary nodes in the knowledge graph.

    Each entity has a unique name, a free-form type label, and an ordered list of
    observations. Observations have set semantics: duplicates are dropped on
    construction, keeping the first occurrence.

    Example:

    - {'name': 'Alice', 'entityType': 'person', 'observations': ['Works at Acme']}
    """

    model_config = ConfigDict(
        populate_by_name=True,
        validate_by_name=True,
        validate_by_alias=True,
    )
    name: EntityName = Field(
        ...,
        title="Entity name",
        description="The unique name of the entity",
    )
    entity_type: NonEmptyStr = Field(
        ...,
        alias="entityType",
        title="Entity type",
        description="Type classification (e.g., 'person', 'organization', 'event')",
    )
    observations: list[NonEmptyStr] = Field(
        default_factory=list,
        title="Observations",
        description="Free-text facts about the entity",
    )
    created_at: datetime | None = Field(
        default=None,
        alias="createdAt",
        title="Creation time",
        description="The time the entity was created, in UTC",
    )
    updated_at: datetime | None = Field(
        default=None,
        alias="updatedAt",
        title="Modification time",
        description="The time the entity was last modified, in UTC",
    )

    @field_validator("observations", mode="after")
    @classmethod
    def _dedupe_observations(cls, v: list[str]) -> list[str]:
        return dedupe(v)

    @property
    def key(self) -> EntityKey:
        return EntityKey(name=self.name)

    def to_dict(self) -> dict[str, Any]:
        """Return the entity in its external shape (name, entityType, observations)."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            include={"name", "entity_type", "observations"},
        )

    def to_record(self) -> dict[str, Any]:
        """Return the entity as a storage record, timestamps included."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Entity":
        """Initialize the entity from a storage record. Unknown fields are ignored."""
        return cls.model_validate(record)

    def __str__(self) -> str:
        return f"{self.name} ({self.entity_type})"


class Relation(BaseModel):
    """
    Directed, typed connection between two entities.

    A relation is an immutable value object: the triple (from, to, relationType) is its
    identity and also its storage key. Relations are stored in active voice and describe
    how entities interact or relate to each other.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        validate_by_name=True,
        validate_by_alias=True,
    )

    table: ClassVar[str] = "relation"

    from_entity: EntityName = Field(
        ...,
        alias="from",
        title="From entity",
        description="The name of the entity where the relation starts",
    )
    to_entity: EntityName = Field(
        ...,
        alias="to",
        title="To entity",
        description="The name of the entity where the relation ends",
    )
    relation_type: NonEmptyStr = Field(
        ...,
        alias="relationType",
        title="Relation type",
        description="Relationship in active voice. Example: 'works at'",
    )

    def key_fields(self) -> dict[str, str]:
        """Record fields identifying the relation."""
        return {
            "from": self.from_entity,
            "to": self.to_entity,
            "relationType": self.relation_type,
        }

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Relation":
        """Initialize the relation from a storage record. Unknown fields are ignored."""
        return cls.model_validate(record)

    def __str__(self) -> str:
        return f"{self.from_entity} -[{self.relation_type}]-> {self.to_entity}"


class KnowledgeGraph(BaseModel):
    """
    A graph snapshot: a list of entities plus a list of relations.

    Returned by read_graph, search_nodes and open_nodes. For search and open results,
    every relation has both endpoints among the returned entities.
    """

    entities: list[Entity] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "KnowledgeGraph":
        return cls()

    def to_dict(self) -> dict[str, Any]:
        return {
            "entities": [e.to_dict() for e in self.entities],
            "relations": [r.to_dict() for r in self.relations],
        }


class CreateEntityRequest(BaseModel):
    """
    Request model used to create an entity.

    Properties:
        name (str): The name of the new entity to create.
        entityType (str): The type of the entity. Arbitrary, but should be a noun.
        observations (list[str]): Initial observations. Optional; duplicates are dropped.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        validate_by_name=True,
        validate_by_alias=True,
    )
    name: EntityName = Field(
        ...,
        title="Entity name",
        description="The name of the new entity to create.",
    )
    entity_type: NonEmptyStr = Field(
        ...,
        alias="entityType",
        title="Entity type",
        description="The type of the entity. Arbitrary, but should be a noun.",
    )
    observations: list[NonEmptyStr] = Field(
        default_factory=list,
        title="Observations",
        description="An array of observation contents associated with the entity",
    )

    def to_entity(self) -> Entity:
        return Entity(
            name=self.name,
            entity_type=self.entity_type,
            observations=self.observations,
        )


class ObservationRequest(BaseModel):
    """Request model for adding observations to an entity."""

    model_config = ConfigDict(
        populate_by_name=True,
        validate_by_name=True,
        validate_by_alias=True,
    )
    entity_name: EntityName = Field(
        ...,
        alias="entityName",
        title="Entity name",
        description="The name of the entity to add the observations to",
    )
    contents: list[NonEmptyStr] = Field(
        ...,
        title="Contents",
        description="An array of observation contents to add",
    )


class DeleteObservationRequest(BaseModel):
    """Request model for deleting observations from an entity."""

    model_config = ConfigDict(
        populate_by_name=True,
        validate_by_name=True,
        validate_by_alias=True,
    )
    entity_name: EntityName = Field(
        ...,
        alias="entityName",
        title="Entity name",
        description="The name of the entity containing the observations",
    )
    observations: list[NonEmptyStr] = Field(
        ...,
        title="Observations",
        description="An array of observations to delete",
    )

    def __repr__(self):
        return f"DeleteObservationRequest(entity_name={self.entity_name}, observations={self.observations})"


class AddObservationResult(BaseModel):
    """Observations actually added to one entity (excluding duplicates)."""

    model_config = ConfigDict(populate_by_name=True, validate_by_name=True)

    entity_name: str = Field(..., alias="entityName")
    added_observations: list[str] = Field(default_factory=list, alias="addedObservations")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class DeleteObservationResult(BaseModel):
    """Observations actually removed from one entity."""

    model_config = ConfigDict(populate_by_name=True, validate_by_name=True)

    entity_name: str = Field(..., alias="entityName")
    deleted_observations: list[str] = Field(default_factory=list, alias="deletedObservations")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ClearGraphResult(BaseModel):
    """Counts of records removed by clear_graph."""

    model_config = ConfigDict(populate_by_name=True, validate_by_name=True)

    deleted_entities: int = Field(default=0, alias="deletedEntities")
    deleted_relations: int = Field(default=0, alias="deletedRelations")


class HealthStatus(BaseModel):
    """Result of a storage health check."""

    backend: str
    status: Literal["healthy", "error"]
    error: str | None = None


class ImportSummary(BaseModel):
    """Summary of a JSONL import."""

    model_config = ConfigDict(populate_by_name=True, validate_by_name=True)

    entities_created: int = Field(default=0, alias="entitiesCreated")
    entities_skipped: int = Field(default=0, alias="entitiesSkipped")
    relations_created: int = Field(default=0, alias="relationsCreated")
    relations_skipped: int = Field(default=0, alias="relationsSkipped")
    failed: int = Field(default=0, title="Items that failed to import")
    invalid_lines: int = Field(default=0, alias="invalidLines")

    def __str__(self) -> str:
        return (
            f"entities: {self.entities_created} created, {self.entities_skipped} skipped; "
            f"relations: {self.relations_created} created, {self.relations_skipped} skipped; "
            f"{self.failed} failed, {self.invalid_lines} invalid lines"
        )


# Structured JSONL record for storage IO
class MemoryRecord(BaseModel):
    type: Literal["meta", "entity", "relation"]
    data: dict[str, Any]


__all__ = [
    "AddObservationResult",
    "ClearGraphResult",
    "CreateEntityRequest",
    "DeleteObservationRequest",
    "DeleteObservationResult",
    "Entity",
    "EntityKey",
    "EntityName",
    "EntityNotFoundError",
    "HealthStatus",
    "ImportSummary",
    "InvalidInputError",
    "KnowledgeGraph",
    "KnowledgeGraphException",
    "MemoryRecord",
    "NodeNames",
    "NonEmptyStr",
    "ObservationRequest",
    "Relation",
    "dedupe",
    "get_current_datetime",
    "validate_input",
]
