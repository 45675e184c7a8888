"""Extension tables joined onto a base entity."""

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, model_validator
from sqlglot import exp

from db2bridge.sql.builder import QueryBuilder, column_ref, compare

if TYPE_CHECKING:
    from db2bridge.core.entity import Entity
    from db2bridge.core.query import EntityQuery

logger = logging.getLogger(__name__)


class Extension(BaseModel):
    """Auxiliary table joined to a base entity by one or more column pairs.

    Example:
        >>> Extension(
        ...     table="test_item_extensions",
        ...     join={"EXITEM": "ICITEM", "EXCOMP": "ICCOMP"},
        ...     maps={"EXDATA": "ext_data"},
        ... )
    """

    table: str = Field(..., description="Extension table name (schema.table)")
    name: str | None = Field(None, description="Name used to address the extension (defaults to table)")
    join: list[tuple[str, str]] = Field(
        ..., description="Ordered (extension_column, base_column) pairs, ANDed in the join condition"
    )
    columns: list[str] = Field(default_factory=lambda: ["*"], description="Columns to project, or ['*']")
    maps: dict[str, str] = Field(default_factory=dict, description="Raw column -> human name for this table")

    @model_validator(mode="before")
    @classmethod
    def _join_pairs(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("join"), dict):
            data = {**data, "join": list(data["join"].items())}
        return data

    @model_validator(mode="after")
    def _default_name(self) -> "Extension":
        if not self.join:
            raise ValueError(f"Extension '{self.table}' needs at least one join column pair")
        if self.name is None:
            self.name = self.table
        return self

    @property
    def is_wildcard(self) -> bool:
        return not self.columns or self.columns == ["*"]

    def join_condition(self, base_table: str) -> exp.Expression:
        """``ext.col = base.col`` for every pair, ANDed."""
        return exp.and_(
            *[
                compare(column_ref(f"{self.table}.{ext_col}"), "=", column_ref(f"{base_table}.{base_col}"))
                for ext_col, base_col in self.join
            ]
        )


class ExtensionComposer:
    """Joins extension tables into entity queries and reads extension rows.

    Args:
        extensions: Extensions in declaration order
    """

    def __init__(self, extensions: list[Extension] | None = None):
        self._extensions: dict[str, Extension] = {}
        for extension in extensions or []:
            self._extensions[extension.name] = extension

    def __bool__(self) -> bool:
        return bool(self._extensions)

    @property
    def extensions(self) -> list[Extension]:
        return list(self._extensions.values())

    def get(self, name: str) -> Extension | None:
        """Look an extension up by name or table; unknown names give ``None``."""
        if name in self._extensions:
            return self._extensions[name]
        for extension in self._extensions.values():
            if extension.table == name:
                return extension
        return None

    def apply(self, query: "EntityQuery", only: list[str] | None = None) -> "EntityQuery":
        """Left join the requested extensions (all when ``only`` is None).

        Projection policy, per table:
            caller selected columns, or auto-select on: mapped extension columns only
            otherwise: configured extension columns, or ``ext.*``
            base table: nothing extra when the caller selected columns, mapped
            columns when auto-select is on, ``base.*`` otherwise
        """
        requested = [e for e in self.extensions if only is None or e.name in only or e.table in only]
        if not requested:
            return query

        has_user_columns = bool(query.columns)
        auto_select = query.auto_select_enabled()
        base_table = query.table

        for extension in requested:
            query.left_join(extension.table, extension.join_condition(base_table))
            query.joined_extensions.append(extension.name)

            if has_user_columns or auto_select:
                columns = [f"{extension.table}.{raw}" for raw in extension.maps]
            elif extension.is_wildcard:
                columns = [f"{extension.table}.*"]
            else:
                columns = [f"{extension.table}.{column}" for column in extension.columns]
            query.add_select(*[column_ref(c) for c in columns])

        if not has_user_columns:
            if auto_select:
                query.add_select(*[column_ref(f"{base_table}.{raw}") for raw in query.mapper.maps])
            else:
                query.add_select(column_ref(f"{base_table}.*"))

        # Related entities loaded eagerly get their own extensions joined after
        # the caller's constraint has run.
        for name, constraint in list(query.eager_loads.items()):
            if "." in name:
                continue
            related = query.related_type(name)
            if related.extensions:
                query.eager_loads[name] = _join_after(constraint)

        logger.debug("Joined extensions %s onto %s", [e.name for e in requested], base_table)
        return query

    def existence_count(self, query: "EntityQuery", name: str, operator: str = ">=", count: int = 1):
        """Filter ``query`` by the number of extension rows each base row has.

        Unknown extension names leave the query unchanged.
        """
        extension = self.get(name)
        if extension is None:
            return query

        subquery = QueryBuilder(query.bridge, extension.table)
        subquery.columns = [exp.Count(this=exp.Star())]
        subquery.where(extension.join_condition(query.table))
        return query.where(subquery, operator, count)

    def load(self, entity: "Entity", name: str) -> dict[str, Any] | None:
        """Fetch the first extension row for one entity, without a join."""
        extension = self.get(name)
        if extension is None:
            return None
        row = self._entity_query(entity, extension).first()
        entity.set_extension_data(extension.name, row)
        return row

    def count_records(self, entity: "Entity", name: str) -> int:
        extension = self.get(name)
        if extension is None:
            return 0
        return self._entity_query(entity, extension).count()

    def _entity_query(self, entity: "Entity", extension: Extension) -> QueryBuilder:
        query = QueryBuilder(entity.bridge, extension.table)
        for ext_col, base_col in extension.join:
            query.where(column_ref(ext_col), "=", entity.raw(base_col))
        return query


def _join_after(constraint):
    def constrain(relation):
        if constraint is not None:
            constraint(relation)
        relation.query.with_extensions()

    return constrain
