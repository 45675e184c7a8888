"""Builds relation objects from relationship definitions."""

import logging
from typing import TYPE_CHECKING

from db2bridge.core.relationship import Relationship
from db2bridge.relations.base import Relation
from db2bridge.relations.belongs_to import BelongsTo
from db2bridge.relations.has_many import HasMany, HasOne
from db2bridge.relations.has_many_through import HasManyThrough, HasOneThrough
from db2bridge.validation import RelationNotFoundError

if TYPE_CHECKING:
    from db2bridge.core.bridge import Bridge
    from db2bridge.core.entity_type import EntityType

logger = logging.getLogger(__name__)

RELATION_CLASSES: dict[str, type[Relation]] = {
    "many_to_one": BelongsTo,
    "one_to_one": HasOne,
    "one_to_many": HasMany,
    "one_to_one_through": HasOneThrough,
    "one_to_many_through": HasManyThrough,
}


class RelationResolver:
    """Relationship definitions of one entity type, by accessor name.

    Args:
        relationships: Relationship definitions
        entity_name: Name of the owning entity type, used in error messages
    """

    def __init__(self, relationships: list[Relationship] | None = None, entity_name: str = ""):
        self.entity_name = entity_name
        self._relationships: dict[str, Relationship] = {r.name: r for r in relationships or []}

    def __contains__(self, name: str) -> bool:
        return name in self._relationships

    def has(self, name: str) -> bool:
        return name in self._relationships

    def names(self) -> list[str]:
        return list(self._relationships)

    def get(self, name: str) -> Relationship:
        """Get relationship by name.

        Raises:
            RelationNotFoundError: If no relationship has that name
        """
        if name not in self._relationships:
            raise RelationNotFoundError(self.entity_name, name)
        return self._relationships[name]

    def relation(self, bridge: "Bridge", parent_type: "EntityType", name: str) -> Relation:
        """Build an unconstrained relation object bound to a fresh related query."""
        relationship = self.get(name)
        related_type = bridge.get_entity(relationship.related)
        relation_class = RELATION_CLASSES[relationship.type]

        if relationship.is_through:
            through_type = bridge.get_entity(relationship.through)
            logger.debug("Resolving %s.%s through %s", parent_type.name, name, through_type.name)
            return relation_class(bridge, parent_type, relationship, related_type, through_type)
        logger.debug("Resolving %s.%s", parent_type.name, name)
        return relation_class(bridge, parent_type, relationship, related_type)
