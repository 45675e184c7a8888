"""Many-to-one relations over composite keys."""

from typing import TYPE_CHECKING, Any

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
from db2bridge.sql.builder import false_condition

if TYPE_CHECKING:
    from db2bridge.core.entity import Entity
    from db2bridge.core.query import EntityQuery


class BelongsTo(Relation):
    """The parent holds ``foreign_key`` columns referencing ``primary_key`` on the related table.

    When several related rows share a key, the last one returned wins.
    """

    def __init__(self, bridge, parent_type, relationship, related_type):
        super().__init__(bridge, parent_type, relationship, related_type)
        self.foreign_keys: list[str] = parent_type.mapper.translate(relationship.foreign_key_columns)
        self.owner_keys: list[str] = related_type.mapper.translate(relationship.primary_key_columns)

    def add_constraints(self, parent: "Entity") -> None:
        self.parent = parent
        values = parent.key_values(self.foreign_keys)
        if composite_key(values) is None:
            self.query.where(false_condition())
            return
        self.query.where(key_condition(qualify(self.related_table, self.owner_keys), values))

    def get_results(self) -> Any:
        if composite_key(self.parent.key_values(self.foreign_keys)) is None:
            return self.default_value()
        result = self.query.first()
        return result if result is not None else self.default_value()

    def add_eager_constraints(self, parents: list["Entity"]) -> None:
        keys = distinct_keys(parents, self.foreign_keys)
        self.query.where(eager_condition(qualify(self.related_table, self.owner_keys), keys))

    def build_dictionary(self, results: list["Entity"]) -> dict[CompositeKey, list["Entity"]]:
        return self._dictionary(results, lambda result: result.key_values(self.owner_keys))

    def match(self, parents: list["Entity"], results: list["Entity"], name: str) -> list["Entity"]:
        dictionary = self.build_dictionary(results)
        self._match(parents, dictionary, self.foreign_keys, name, lambda matches: matches[-1])
        return parents

    def existence_query(self, parent_query: "EntityQuery") -> "EntityQuery":
        self.query.where(
            column_equality(
                qualify(self.related_table, self.owner_keys),
                qualify(parent_query.table, self.foreign_keys),
            )
        )
        return self.query
