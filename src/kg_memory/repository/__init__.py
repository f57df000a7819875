from .entity import EntityRepository
from .relation import RelationRepository

__all__ = ["EntityRepository", "RelationRepository"]
