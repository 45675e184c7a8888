"""Relations reached through an intermediate entity, over composite keys."""

from typing import TYPE_CHECKING, Any

from sqlglot import exp

from db2bridge.relations.base import (
    CompositeKey,
    Relation,
    column_equality,
    composite_key,
    distinct_keys,
    eager_condition,
    key_condition,
    qualify,
)
from db2bridge.sql.builder import column_ref, false_condition

if TYPE_CHECKING:
    from db2bridge.core.entity import Entity
    from db2bridge.core.entity_type import EntityType
    from db2bridge.core.query import EntityQuery

THROUGH_KEY_PREFIX = "throughkey_"


class HasManyThrough(Relation):
    """Related rows reached through an intermediate table.

    The intermediate table holds ``through_foreign_key`` (first keys) referencing
    ``primary_key`` on the parent; the related table holds ``foreign_key``
    (second keys) referencing ``through_primary_key`` on the intermediate.

    The related query joins the intermediate table and additionally projects
    every first key as ``throughkey_<column>``; results are matched to parents
    on those values, never on the related table's own columns.
    """

    def __init__(self, bridge, parent_type, relationship, related_type, through_type: "EntityType"):
        super().__init__(bridge, parent_type, relationship, related_type)
        self.through_type = through_type
        self.first_keys: list[str] = through_type.mapper.translate(relationship.through_foreign_key_columns)
        self.second_keys: list[str] = related_type.mapper.translate(relationship.foreign_key_columns)
        self.local_keys: list[str] = parent_type.mapper.translate(relationship.primary_key_columns)
        self.second_local_keys: list[str] = through_type.mapper.translate(relationship.through_primary_key_columns)

        self.query.join(
            self.through_table,
            column_equality(
                qualify(self.related_table, self.second_keys),
                qualify(self.through_table, self.second_local_keys),
            ),
        )

    @property
    def through_table(self) -> str:
        return self.through_type.table

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def with_columns(self, *columns) -> "HasManyThrough":
        """Select related columns; the through key aliases are still added."""
        self.query.select(*columns)
        return self

    def _qualify_column(self, column: exp.Expression) -> exp.Expression:
        if isinstance(column, exp.Star):
            return column_ref(f"{self.related_table}.*")
        if isinstance(column, exp.Column) and not column.table:
            return column_ref(f"{self.related_table}.{column.name}")
        return column

    def _select_through_columns(self, query: "EntityQuery") -> None:
        if query.is_aggregate:
            return
        columns = query.columns or [exp.Star()]
        selected: list[exp.Expression] = []
        seen: set[str] = set()
        for column in columns:
            column = self._qualify_column(column)
            sql = column.sql()
            if sql not in seen:
                seen.add(sql)
                selected.append(column)
        for key in self.first_keys:
            selected.append(exp.alias_(column_ref(f"{self.through_table}.{key}"), f"{THROUGH_KEY_PREFIX}{key}"))
        query.columns = selected

    def _through_key(self, result: "Entity") -> list[Any]:
        """Read and strip the synthetic through key attributes of one result."""
        values = []
        for key in self.first_keys:
            alias = f"{THROUGH_KEY_PREFIX}{key}"
            value = None
            for candidate in (alias.upper(), alias):
                if candidate in result.raw_attributes():
                    value = result.pop_raw(candidate)
                    break
            values.append(value)
        return values

    # ------------------------------------------------------------------
    # Constraints
    # ------------------------------------------------------------------

    def add_constraints(self, parent: "Entity") -> None:
        self.parent = parent
        self.query.after_scopes.append(self._select_through_columns)
        values = parent.key_values(self.local_keys)
        if composite_key(values) is None:
            self.query.where(false_condition())
            return
        self.query.where(key_condition(qualify(self.through_table, self.first_keys), values))

    def add_eager_constraints(self, parents: list["Entity"]) -> None:
        self.query.after_scopes.append(self._select_through_columns)
        keys = distinct_keys(parents, self.local_keys)
        self.query.where(eager_condition(qualify(self.through_table, self.first_keys), keys))

    def _parent_key_missing(self) -> bool:
        return composite_key(self.parent.key_values(self.local_keys)) is None

    def get_results(self) -> Any:
        if self._parent_key_missing():
            return []
        results = self.query.get()
        for result in results:
            self._through_key(result)
        return results

    def build_dictionary(self, results: list["Entity"]) -> dict[CompositeKey, list["Entity"]]:
        return self._dictionary(results, self._through_key)

    def match(self, parents: list["Entity"], results: list["Entity"], name: str) -> list["Entity"]:
        dictionary = self.build_dictionary(results)
        self._match(parents, dictionary, self.local_keys, name, list)
        return parents

    def existence_query(self, parent_query: "EntityQuery") -> "EntityQuery":
        self.query.where(
            column_equality(
                qualify(self.through_table, self.first_keys),
                qualify(parent_query.table, self.local_keys),
            )
        )
        return self.query


class HasOneThrough(HasManyThrough):
    """The first related row reached through the intermediate table."""

    def get_results(self) -> Any:
        if self._parent_key_missing():
            return self.default_value()
        result = self.query.first()
        if result is None:
            return self.default_value()
        self._through_key(result)
        return result

    def match(self, parents: list["Entity"], results: list["Entity"], name: str) -> list["Entity"]:
        dictionary = self.build_dictionary(results)
        self._match(parents, dictionary, self.local_keys, name, lambda matches: matches[0])
        return parents
