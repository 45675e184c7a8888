"""db2bridge: entity mapping over legacy DB2-style tables with cryptic column names."""

__version__ = "0.1.0"

from db2bridge.core.entity import Entity
from db2bridge.core.entity_type import EntityType
from db2bridge.core.extension import Extension
from db2bridge.core.query import EntityQuery
from db2bridge.core.relationship import Relationship
from db2bridge.query_log import QueryLog
from db2bridge.sql.builder import QueryBuilder
from db2bridge.validation import (
    EntityValidationError,
    LazyLoadingError,
    RelationNotFoundError,
    ValidationError,
)

__all__ = [
    "Bridge",
    "Entity",
    "EntityQuery",
    "EntityType",
    "EntityValidationError",
    "Extension",
    "LazyLoadingError",
    "QueryBuilder",
    "QueryLog",
    "RelationNotFoundError",
    "Relationship",
    "ValidationError",
]


def __getattr__(name):  # Lazy import to avoid importing duckdb on package import
    if name == "Bridge":
        from db2bridge.core.bridge import Bridge

        return Bridge
    raise AttributeError(name)
