"""Bridge main API."""

import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import sqlglot
from sqlglot import exp

from db2bridge.core.entity_graph import EntityGraph
from db2bridge.core.entity_type import EntityType
from db2bridge.db.base import BaseDatabaseAdapter
from db2bridge.query_log import QueryLog
from db2bridge.sql.builder import QueryBuilder

if TYPE_CHECKING:
    from db2bridge.config import BridgeConfig
    from db2bridge.core.entity import Entity
    from db2bridge.core.query import EntityQuery

logger = logging.getLogger(__name__)


class Bridge:
    """Main bridge interface.

    Owns the database adapter, the registry of entity types and the query log.
    Entity types created inside ``with Bridge() as bridge:`` register themselves.
    """

    def __init__(
        self,
        connection: "str | BaseDatabaseAdapter" = "duckdb:///:memory:",
        dialect: str | None = None,
        auto_register: bool = False,
        query_log: QueryLog | None = None,
        prevent_lazy_loading: bool = False,
    ):
        """Initialize bridge.

        Args:
            connection: Connection string (default: in-memory DuckDB) or adapter instance
            dialect: SQL dialect for query generation (defaults to the adapter's)
            auto_register: Set as current bridge for auto-registration (default: False)
            query_log: Query log to record executed SQL in (default: a new, disabled log)
            prevent_lazy_loading: Raise instead of loading relations on first access
        """
        self.graph = EntityGraph()
        self._table_columns: dict[str, frozenset[str]] = {}
        self.query_log = query_log or QueryLog()
        self.prevent_lazy_loading = prevent_lazy_loading

        if isinstance(connection, BaseDatabaseAdapter):
            self.adapter = connection
            self.connection_string = None
        elif connection.startswith("duckdb://"):
            from db2bridge.db.duckdb import DuckDBAdapter

            self.adapter = DuckDBAdapter.from_url(connection)
            self.connection_string = connection
        else:
            raise NotImplementedError(f"Connection type {connection} not yet supported")

        self.dialect = dialect or self.adapter.dialect

        # Set as current bridge for auto-registration
        if auto_register:
            from .registry import set_current_bridge

            set_current_bridge(self)

    def __enter__(self):
        """Context manager entry - set as current bridge."""
        from .registry import set_current_bridge

        set_current_bridge(self)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - clear current bridge."""
        from .registry import set_current_bridge

        set_current_bridge(None)

    @classmethod
    def from_config(cls, config: "BridgeConfig") -> "Bridge":
        """Build a bridge from a loaded configuration.

        Creates the adapter and query log and loads entity definition files
        from ``config.entities_dir``.
        """
        from pathlib import Path

        from db2bridge.config import DuckDBConnection, build_connection_string
        from db2bridge.loaders import load_from_directory

        bridge = cls(
            build_connection_string(config),
            query_log=QueryLog(enabled=config.query_log.enabled, channels=config.query_log.channels),
            prevent_lazy_loading=config.prevent_lazy_loading,
        )
        if isinstance(config.connection, DuckDBConnection):
            bridge.adapter.identifier_case = config.connection.identifier_case

        if Path(config.entities_dir).exists():
            load_from_directory(bridge, config.entities_dir, defaults=config.defaults)
        return bridge

    # ------------------------------------------------------------------
    # Entity registry
    # ------------------------------------------------------------------

    def add_entity(self, entity_type: EntityType) -> None:
        """Add an entity type to the bridge.

        Args:
            entity_type: Entity type to add

        Raises:
            EntityValidationError: If entity validation fails
        """
        from db2bridge.validation import EntityValidationError, validate_entity

        errors = validate_entity(entity_type)
        if errors:
            raise EntityValidationError(
                f"Entity '{entity_type.name}' validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )

        self.graph.add_entity(entity_type)

    def get_entity(self, name: str) -> EntityType:
        """Get entity type by name.

        Raises:
            KeyError: If entity type not found
        """
        return self.graph.get_entity(name)

    def list_entities(self) -> list[str]:
        return list(self.graph.entities.keys())

    def validate(self) -> list[str]:
        """Check that relationships point at registered entity types."""
        from db2bridge.validation import validate_graph

        return validate_graph(self.graph)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, entity: str | EntityType) -> "EntityQuery":
        """Start a query on an entity type, with human name translation and scopes."""
        entity_type = entity if isinstance(entity, EntityType) else self.get_entity(entity)
        return entity_type.query(self)

    def table(self, name: str) -> QueryBuilder:
        """Start a plain query on a table, without translation or scopes."""
        return QueryBuilder(self, name)

    def new(self, entity: str, attributes: Mapping[str, Any] | None = None) -> "Entity":
        return self.get_entity(entity).new(self, dict(attributes or {}))

    def create(self, entity: str, attributes: Mapping[str, Any]) -> "Entity":
        return self.query(entity).create(attributes)

    def load(self, entities: list["Entity"], *relations, **constraints) -> list["Entity"]:
        """Eager load relations onto already fetched entities of one type."""
        if not entities:
            return entities
        query = entities[0].entity_type.query(self).with_(*relations, **constraints)
        return query.eager_load_relations(entities)

    def raw(self, sql: str) -> exp.Expression:
        """Wrap a SQL fragment as an expression that is passed through untranslated."""
        return sqlglot.parse_one(sql, dialect=self.dialect)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def select(self, sql: str) -> list[dict[str, Any]]:
        """Execute a query and return rows keyed by result column name."""
        start = time.perf_counter()
        result = self.adapter.execute(sql)
        rows = self.adapter.fetch_dicts(result)
        self.query_log.record(sql, (time.perf_counter() - start) * 1000)
        return rows

    def statement(self, sql: str) -> int:
        """Execute an INSERT, UPDATE or DELETE and return the affected row count."""
        start = time.perf_counter()
        result = self.adapter.execute(sql)
        count = self.adapter.rowcount(result)
        self.query_log.record(sql, (time.perf_counter() - start) * 1000)
        return count

    def table_columns(self, table: str) -> frozenset[str]:
        """Upper-cased column names of a table, read once from the catalogue."""
        if table not in self._table_columns:
            schema, _, name = table.rpartition(".")
            columns = self.adapter.get_columns(name, schema or None)
            self._table_columns[table] = frozenset(column["column_name"].upper() for column in columns)
        return self._table_columns[table]

    def close(self) -> None:
        self.adapter.close()
