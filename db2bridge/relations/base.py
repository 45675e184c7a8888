"""Shared machinery for composite-key relations.

DB2-class dialects have no tuple-valued ``IN``. A batch of composite keys is
matched with an OR of AND groups instead::

    (CTDEPT = 'D1' AND CTCOMP = 1) OR (CTDEPT = 'D2' AND CTCOMP = 1)

Keys are compared as tuples of strings so that ``1`` and ``"1"`` match; any
key containing ``None`` matches nothing.
"""

import functools
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from sqlglot import exp

from db2bridge.core.relationship import Relationship
from db2bridge.sql.builder import column_ref, compare, false_condition

if TYPE_CHECKING:
    from db2bridge.core.bridge import Bridge
    from db2bridge.core.entity import Entity
    from db2bridge.core.entity_type import EntityType
    from db2bridge.core.query import EntityQuery

logger = logging.getLogger(__name__)

CompositeKey = tuple[str, ...]


def composite_key(values: Sequence[Any]) -> CompositeKey | None:
    """Dictionary key for an ordered list of key values, or None if any is null."""
    if any(value is None for value in values):
        return None
    return tuple(str(value) for value in values)


def qualify(table: str, columns: Iterable[str]) -> list[str]:
    return [f"{table}.{column}" for column in columns]


def key_condition(columns: Sequence[str], values: Sequence[Any]) -> exp.Expression:
    """``col_1 = v_1 AND col_2 = v_2 ...``"""
    return exp.and_(*[compare(column_ref(c), "=", exp.convert(v)) for c, v in zip(columns, values)])


def eager_condition(columns: Sequence[str], keys: Sequence[Sequence[Any]]) -> exp.Expression:
    """Predicate selecting exactly the rows whose ``columns`` equal one of ``keys``.

    A single key column uses a plain ``IN``; composite keys become an OR chain
    of parenthesised AND groups. No keys yields a predicate matching nothing.
    """
    if not keys:
        return false_condition()
    if len(columns) == 1:
        return exp.In(this=column_ref(columns[0]), expressions=[exp.convert(key[0]) for key in keys])
    groups = [exp.Paren(this=key_condition(columns, key)) for key in keys]
    if len(groups) == 1:
        return groups[0]
    return exp.Paren(this=exp.or_(*groups))


def column_equality(left: Sequence[str], right: Sequence[str]) -> exp.Expression:
    """``left_1 = right_1 AND left_2 = right_2 ...`` between two column lists."""
    return exp.and_(*[compare(column_ref(a), "=", column_ref(b)) for a, b in zip(left, right)])


def distinct_keys(entities: Iterable["Entity"], columns: Sequence[str]) -> list[list[Any]]:
    """Key values of each entity, deduplicated in first-seen order, nulls skipped."""
    seen: dict[CompositeKey, list[Any]] = {}
    for entity in entities:
        values = entity.key_values(list(columns))
        key = composite_key(values)
        if key is not None and key not in seen:
            seen[key] = values
    return list(seen.values())


class Relation:
    """A relationship bound to a query on the related entity type.

    Unknown attributes are forwarded to the related query, so constraint
    callbacks can treat a relation like a query; builder methods that return
    the query return the relation instead.

    Args:
        bridge: Bridge used to run the related query
        parent_type: Entity type the relation is declared on
        relationship: Relationship definition
        related_type: Entity type of the related rows
    """

    def __init__(
        self,
        bridge: "Bridge",
        parent_type: "EntityType",
        relationship: Relationship,
        related_type: "EntityType",
    ):
        self.bridge = bridge
        self.parent_type = parent_type
        self.relationship = relationship
        self.related_type = related_type
        self.query: EntityQuery = related_type.query(bridge)
        self.parent: Entity | None = None

    def __getattr__(self, name: str) -> Any:
        if name == "query":
            raise AttributeError(name)
        attr = getattr(self.query, name)
        if not callable(attr):
            return attr

        @functools.wraps(attr)
        def forward(*args, **kwargs):
            result = attr(*args, **kwargs)
            return self if result is self.query else result

        return forward

    @property
    def related_table(self) -> str:
        return self.related_type.table

    def default_value(self) -> Any:
        """Value of an unmatched to-one relation."""
        default = self.relationship.default
        if default is True:
            return self.related_type.new(self.bridge)
        if isinstance(default, dict):
            return self.related_type.new(self.bridge, default)
        return default

    def empty_value(self) -> Any:
        return [] if self.relationship.is_to_many else self.default_value()

    def add_constraints(self, parent: "Entity") -> None:
        """Constrain the query to one parent."""
        raise NotImplementedError

    def add_eager_constraints(self, parents: list["Entity"]) -> None:
        """Constrain the query to a batch of parents."""
        raise NotImplementedError

    def get_results(self) -> Any:
        """Related value for the parent passed to :meth:`add_constraints`."""
        raise NotImplementedError

    def get_eager(self) -> list["Entity"]:
        return self.query.get()

    def match(self, parents: list["Entity"], results: list["Entity"], name: str) -> list["Entity"]:
        """Assign matched results to each parent under ``name``."""
        raise NotImplementedError

    def existence_query(self, parent_query: "EntityQuery") -> "EntityQuery":
        """Related query correlated to ``parent_query``'s table, for EXISTS and COUNT filters."""
        raise NotImplementedError

    def _dictionary(self, results: list["Entity"], keys_of) -> dict[CompositeKey, list["Entity"]]:
        dictionary: dict[CompositeKey, list[Entity]] = {}
        for result in results:
            key = composite_key(keys_of(result))
            if key is not None:
                dictionary.setdefault(key, []).append(result)
        return dictionary

    def _match(self, parents: list["Entity"], dictionary, parent_columns: list[str], name: str, pick) -> None:
        for parent in parents:
            key = composite_key(parent.key_values(parent_columns))
            matches = dictionary.get(key) if key is not None else None
            if matches:
                parent.set_relation(name, pick(matches))
            else:
                parent.set_relation(name, self.empty_value())
