"""One-to-many and one-to-one relations over composite keys."""

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


class HasOneOrMany(Relation):
    """The related table holds ``foreign_key`` columns referencing ``primary_key`` on the parent."""

    def __init__(self, bridge, parent_type, relationship, related_type):
        super().__init__(bridge, parent_type, relationship, related_type)
        self.foreign_keys: list[str] = related_type.mapper.translate(relationship.foreign_key_columns)
        self.local_keys: list[str] = parent_type.mapper.translate(relationship.primary_key_columns)

    def add_constraints(self, parent: "Entity") -> None:
        self.parent = parent
        values = parent.key_values(self.local_keys)
        if composite_key(values) is None:
            self.query.where(false_condition())
            return
        self.query.where(key_condition(qualify(self.related_table, self.foreign_keys), values))

    def add_eager_constraints(self, parents: list["Entity"]) -> None:
        keys = distinct_keys(parents, self.local_keys)
        self.query.where(eager_condition(qualify(self.related_table, self.foreign_keys), keys))

    def build_dictionary(self, results: list["Entity"]) -> dict[CompositeKey, list["Entity"]]:
        return self._dictionary(results, lambda result: result.key_values(self.foreign_keys))

    def existence_query(self, parent_query: "EntityQuery") -> "EntityQuery":
        self.query.where(
            column_equality(
                qualify(self.related_table, self.foreign_keys),
                qualify(parent_query.table, self.local_keys),
            )
        )
        return self.query

    def _parent_key_missing(self) -> bool:
        return composite_key(self.parent.key_values(self.local_keys)) is None


class HasMany(HasOneOrMany):
    """All related rows sharing the parent's key, in arrival order."""

    def get_results(self) -> list["Entity"]:
        if self._parent_key_missing():
            return []
        return self.query.get()

    def match(self, parents: list["Entity"], results: list["Entity"], name: str) -> list["Entity"]:
        dictionary = self.build_dictionary(results)
        self._match(parents, dictionary, self.local_keys, name, list)
        return parents


class HasOne(HasOneOrMany):
    """The first related row sharing the parent's key."""

    def get_results(self) -> Any:
        if self._parent_key_missing():
            return self.default_value()
        result = self.query.first()
        return result if result is not None else self.default_value()

    def match(self, parents: list["Entity"], results: list["Entity"], name: str) -> list["Entity"]:
        dictionary = self.build_dictionary(results)
        self._match(parents, dictionary, self.local_keys, name, lambda matches: matches[0])
        return parents
