"""Validation and error handling for entity definitions."""

from typing import TYPE_CHECKING

from db2bridge.core.casts import is_valid_cast
from db2bridge.db.base import validate_identifier

if TYPE_CHECKING:
    from db2bridge.core.entity_graph import EntityGraph
    from db2bridge.core.entity_type import EntityType


class ValidationError(Exception):
    """Raised when bridge validation fails."""

    pass


class EntityValidationError(ValidationError):
    """Raised when entity type validation fails."""

    pass


class LazyLoadingError(RuntimeError):
    """Raised when a relation is loaded lazily while lazy loading is prevented."""

    def __init__(self, entity: str, relation: str):
        self.entity = entity
        self.relation = relation
        super().__init__(
            f"Attempted to lazy load relation '{relation}' on entity '{entity}' but lazy loading is disabled"
        )


class RelationNotFoundError(KeyError):
    """Raised when an entity type has no relation with the requested name."""

    def __init__(self, entity: str, relation: str):
        self.entity = entity
        self.relation = relation
        super().__init__(f"Entity '{entity}' has no relation named '{relation}'")

    def __str__(self) -> str:
        return self.args[0]


def _identifier_error(value: str, label: str) -> str | None:
    try:
        validate_identifier(value, label)
    except ValueError as e:
        return str(e)
    return None


def validate_entity(entity_type: "EntityType") -> list[str]:
    """Validate an entity type definition.

    Args:
        entity_type: Entity type to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    error = _identifier_error(entity_type.table, "table name")
    if error:
        errors.append(f"Entity '{entity_type.name}': {error}")

    for raw in entity_type.maps:
        error = _identifier_error(raw, "column name")
        if error:
            errors.append(f"Entity '{entity_type.name}': {error}")

    for extension in entity_type.extensions:
        error = _identifier_error(extension.table, "extension table name")
        if error:
            errors.append(f"Entity '{entity_type.name}': {error}")
        for ext_col, base_col in extension.join:
            for column in (ext_col, base_col):
                error = _identifier_error(column, "join column")
                if error:
                    errors.append(f"Entity '{entity_type.name}': extension '{extension.name}': {error}")

    for column, cast in entity_type.casts.items():
        if not is_valid_cast(cast):
            errors.append(
                f"Entity '{entity_type.name}': cast for '{column}' has invalid type '{cast}'. "
                f"Must be one of: integer, float, string, boolean"
            )

    seen = set()
    for relationship in entity_type.relationships:
        if relationship.name in seen:
            errors.append(f"Entity '{entity_type.name}': duplicate relationship '{relationship.name}'")
        seen.add(relationship.name)

        if relationship.name in entity_type.maps or relationship.name in entity_type.maps.values():
            errors.append(
                f"Entity '{entity_type.name}': relationship '{relationship.name}' shadows a mapped column"
            )

    return errors


def validate_graph(graph: "EntityGraph") -> list[str]:
    """Check that every relationship points at registered entity types.

    Args:
        graph: Entity graph to check

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []
    for name in graph.entities:
        for edge in graph.edges(name):
            if edge.to_entity not in graph.entities:
                errors.append(
                    f"Entity '{name}': relationship '{edge.name}' references unknown entity '{edge.to_entity}'"
                )
            if edge.through and edge.through not in graph.entities:
                errors.append(
                    f"Entity '{name}': relationship '{edge.name}' goes through unknown entity '{edge.through}'"
                )
    return errors
