"""Entity graph for managing entity types and their relationships."""

from dataclasses import dataclass

from db2bridge.core.entity_type import EntityType


@dataclass
class RelationEdge:
    """Represents a relationship from one entity type to another."""

    from_entity: str
    to_entity: str
    name: str
    relationship: str  # many_to_one, one_to_many, ...
    through: str | None = None


class EntityGraph:
    """Registry of entity types keyed by name."""

    def __init__(self):
        self.entities: dict[str, EntityType] = {}

    def add_entity(self, entity_type: EntityType) -> None:
        """Add an entity type to the graph.

        Args:
            entity_type: Entity type to add

        Raises:
            ValueError: If an entity type with the same name exists
        """
        if entity_type.name in self.entities:
            raise ValueError(f"Entity {entity_type.name} already exists")

        self.entities[entity_type.name] = entity_type

    def get_entity(self, name: str) -> EntityType:
        """Get entity type by name.

        Raises:
            KeyError: If entity type not found
        """
        if name not in self.entities:
            raise KeyError(f"Entity {name} not found")
        return self.entities[name]

    def edges(self, name: str) -> list[RelationEdge]:
        """Relationship edges leaving an entity type."""
        return [
            RelationEdge(
                from_entity=name,
                to_entity=rel.related,
                name=rel.name,
                relationship=rel.type,
                through=rel.through,
            )
            for rel in self.get_entity(name).relationships
        ]
