"""Knowledge graph types for sqlite-memory.

Result types returned by the store and the graph façade are plain
dataclasses with a ``to_dict()`` that produces the camelCase wire shape
(``entityType``, ``relationType``, ``from``/``to``).

Request types accepted by the MCP tools are pydantic models. They only
shape the request; business validation (non-blank names, non-empty
observations, vector width) belongs to the store so that every caller
gets the same checks.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def _isoformat(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class Entity:
    """A named node in the knowledge graph.

    Attributes:
        name: Globally unique entity name
        entity_type: Free-form type label (e.g. 'person', 'company')
        observations: Free-text facts owned by this entity
        created_at: Creation time in epoch seconds (immutable across upserts)
        embedding: Optional fixed-width vector, only present if supplied
    """

    name: str
    entity_type: str
    observations: list[str] = field(default_factory=list)
    created_at: Optional[float] = None
    embedding: Optional[list[float]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "entityType": self.entity_type,
            "observations": list(self.observations),
            "createdAt": _isoformat(self.created_at),
        }
        if self.embedding is not None:
            data["embedding"] = list(self.embedding)
        return data


@dataclass(frozen=True)
class Relation:
    """A directed, typed edge between two entity names.

    The (source, target, relation_type) triple is unique in the store.
    Names are soft references: the entities need not exist.
    """

    source: str
    target: str
    relation_type: str

    def to_dict(self) -> dict[str, str]:
        return {
            "from": self.source,
            "to": self.target,
            "relationType": self.relation_type,
        }


@dataclass
class SearchResult:
    """Vector search hit: an entity and its cosine distance to the query.

    Attributes:
        entity: The matched entity, including observations and embedding
        distance: Cosine distance (0 = identical direction, 2 = opposite)
    """

    entity: Entity
    distance: float

    def to_dict(self) -> dict[str, Any]:
        return {"entity": self.entity.to_dict(), "distance": self.distance}


@dataclass
class GraphSnapshot:
    """A set of entities together with every relation touching that set.

    Attributes:
        entities: Entities in result order
        relations: Relations whose source or target is one of the entities
        distances: Cosine distance per entity name (vector searches only)
    """

    entities: list[Entity] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)
    distances: Optional[dict[str, float]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "entities": [e.to_dict() for e in self.entities],
            "relations": [r.to_dict() for r in self.relations],
        }
        if self.distances is not None:
            data["distances"] = dict(self.distances)
        return data


@dataclass
class EntityNeighborhood:
    """An entity, its incident relations and its hop-1 neighbours.

    Attributes:
        entity: The requested entity
        relations: Every relation where the entity is source or target
        related_entities: Distinct existing neighbours, in relation order
    """

    entity: Entity
    relations: list[Relation] = field(default_factory=list)
    related_entities: list[Entity] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity.to_dict(),
            "relations": [r.to_dict() for r in self.relations],
            "relatedEntities": [e.to_dict() for e in self.related_entities],
        }


# =============================================================================
# Request Models (MCP tool inputs)
# =============================================================================


class EntityInput(BaseModel):
    """An entity to create or update via create_entities."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    entity_type: str = Field(
        validation_alias=AliasChoices("entityType", "entity_type"),
        serialization_alias="entityType",
    )
    observations: list[str]
    embedding: Optional[list[float]] = None

    def to_record(self) -> dict[str, Any]:
        """Convert to the mapping shape accepted by the store."""
        record: dict[str, Any] = {
            "name": self.name,
            "entityType": self.entity_type,
            "observations": list(self.observations),
        }
        if self.embedding is not None:
            record["embedding"] = list(self.embedding)
        return record


class RelationInput(BaseModel):
    """A relation to create via create_relations.

    Accepts either ``from``/``to``/``relationType`` or
    ``source``/``target``/``type``.
    """

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(validation_alias=AliasChoices("from", "source"))
    target: str = Field(validation_alias=AliasChoices("to", "target"))
    relation_type: str = Field(
        validation_alias=AliasChoices("relationType", "type", "relation_type")
    )

    def to_record(self) -> dict[str, str]:
        """Convert to the mapping shape accepted by the store."""
        return {
            "from": self.source,
            "to": self.target,
            "relationType": self.relation_type,
        }
