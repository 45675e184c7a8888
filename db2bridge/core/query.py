"""Entity queries that speak human field names."""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from sqlglot import exp

from db2bridge.core import filtering
from db2bridge.sql.builder import QueryBuilder, column_ref, combine, compare

if TYPE_CHECKING:
    from db2bridge.core.bridge import Bridge
    from db2bridge.core.entity import Entity
    from db2bridge.core.entity_type import EntityType

logger = logging.getLogger(__name__)

AUTO_SELECT_SCOPE = "auto_select_mapped"


def auto_select_mapped_scope(query: "EntityQuery") -> None:
    """Select the mapped columns when the caller selected none."""
    if query.use_select_all or query.columns or not query.mapper.has_maps():
        return
    query.columns = query.mapped_projection()


def _compose(constraint: Callable | None, then: Callable) -> Callable:
    def constrain(relation):
        if constraint is not None:
            constraint(relation)
        then(relation)

    return constrain


def _select_mapped(relation) -> None:
    if relation.query.mapper.has_maps():
        relation.query.select_mapped()


class EntityQuery(QueryBuilder):
    """Query over one entity type.

    Column names passed to any builder method are translated from human names
    to raw columns (qualified names on their last segment only). Global scopes
    (auto-selected mapped columns, active rows, default company) are applied
    when the query is compiled and can be removed per query.

    Args:
        bridge: Bridge used to execute the query
        entity_type: Entity type being queried
    """

    def __init__(self, bridge: "Bridge", entity_type: "EntityType"):
        super().__init__(bridge, entity_type.table)
        self.entity_type = entity_type
        self.mapper = entity_type.mapper
        self.scopes: dict[str, Callable[[EntityQuery], None]] = entity_type.global_scopes()
        self.removed_scopes: set[str] = set()
        self.eager_loads: dict[str, Callable | None] = {}
        self.use_select_all = False
        self.joined_extensions: list[str] = []
        self.after_scopes: list[Callable[[EntityQuery], None]] = []

    def _column_name(self, name: str) -> str:
        return self.mapper.translate_qualified(name)

    def _key_name(self, name: str) -> str:
        return self.mapper.translate(name)

    def new_nested(self) -> "EntityQuery":
        nested = EntityQuery(self.bridge, self.entity_type)
        nested.scopes = {}
        return nested

    def clone(self) -> "EntityQuery":
        clone = super().clone()
        clone.scopes = dict(self.scopes)
        clone.removed_scopes = set(self.removed_scopes)
        clone.eager_loads = dict(self.eager_loads)
        clone.joined_extensions = list(self.joined_extensions)
        clone.after_scopes = list(self.after_scopes)
        return clone

    # ------------------------------------------------------------------
    # Global scopes
    # ------------------------------------------------------------------

    def without_scope(self, name: str) -> "EntityQuery":
        self.removed_scopes.add(name)
        return self

    def without_scopes(self, names: Iterable[str] | None = None) -> "EntityQuery":
        """Remove the named global scopes, or all of them."""
        self.removed_scopes.update(self.scopes if names is None else names)
        return self

    def _prepared(self) -> "EntityQuery":
        query = self.clone()
        before = list(query.wheres)
        for name, scope in self.scopes.items():
            if name not in self.removed_scopes:
                scope(query)

        added = query.wheres[len(before) :]
        # Keep "a OR b" from absorbing the scope conditions
        if added and any(boolean == "or" for boolean, _ in before):
            query.wheres = [("and", exp.Paren(this=combine(before)))] + added

        for hook in query.after_scopes:
            hook(query)
        return query

    def auto_select_enabled(self) -> bool:
        return (
            AUTO_SELECT_SCOPE in self.scopes
            and AUTO_SELECT_SCOPE not in self.removed_scopes
            and not self.use_select_all
        )

    # ------------------------------------------------------------------
    # Column selection scopes
    # ------------------------------------------------------------------

    def mapped_projection(self) -> list[exp.Expression]:
        """Mapped base columns plus mapped columns of joined extensions, qualified."""
        columns = [column_ref(f"{self.table}.{raw}") for raw in self.mapper.maps]
        for name in self.joined_extensions:
            extension = self.entity_type.get_extension(name)
            columns.extend(column_ref(f"{extension.table}.{raw}") for raw in extension.maps)
        return columns

    def select_mapped(self) -> "EntityQuery":
        """Select only mapped columns, here and on every eager loaded relation."""
        columns = self.mapped_projection()
        if columns:
            self.columns = columns
        for name, constraint in list(self.eager_loads.items()):
            self.eager_loads[name] = _compose(constraint, _select_mapped)
        return self

    def select_all(self) -> "EntityQuery":
        """Select every column; propagates to eager and lazy loaded relations."""
        self.columns = []
        self.use_select_all = True
        self.removed_scopes.add(AUTO_SELECT_SCOPE)
        return self

    # ------------------------------------------------------------------
    # Automatic filtering
    # ------------------------------------------------------------------

    def with_inactive(self) -> "EntityQuery":
        return self.without_scope(filtering.ACTIVE_SCOPE)

    def with_all_companies(self) -> "EntityQuery":
        return self.without_scope(filtering.COMPANY_SCOPE)

    def for_company(self, company: Any) -> "EntityQuery":
        return filtering.for_company(self, company)

    def unfiltered(self) -> "EntityQuery":
        return self.without_scopes([filtering.ACTIVE_SCOPE, filtering.COMPANY_SCOPE])

    # ------------------------------------------------------------------
    # Extensions
    # ------------------------------------------------------------------

    def with_extensions(self, only: list[str] | None = None) -> "EntityQuery":
        return self.entity_type.extension_composer.apply(self, only)

    def with_extension(self, name: str) -> "EntityQuery":
        return self.with_extensions([name])

    def where_has_extension(self, name: str, operator: str = ">=", count: int = 1) -> "EntityQuery":
        return self.entity_type.extension_composer.existence_count(self, name, operator, count)

    def where_doesnt_have_extension(self, name: str) -> "EntityQuery":
        return self.where_has_extension(name, "=", 0)

    def with_where_has_extension(self, name: str, operator: str = ">=", count: int = 1) -> "EntityQuery":
        self.where_has_extension(name, operator, count)
        return self.with_extension(name)

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def related_type(self, name: str) -> "EntityType":
        relationship = self.entity_type.relations.get(name)
        return self.bridge.get_entity(relationship.related)

    def with_(self, *relations, **constraints) -> "EntityQuery":
        """Eager load relations.

        Accepts names (``"category"``), dotted paths (``"categories.items"``),
        ``{name: callback}`` mappings and ``name=callback`` keywords. Callbacks
        receive the relation and may constrain its query.
        """
        for relation in relations:
            if isinstance(relation, Mapping):
                for name, constraint in relation.items():
                    self._add_eager_load(name, constraint)
            elif isinstance(relation, (list, tuple)):
                self.with_(*relation)
            else:
                self._add_eager_load(relation, None)
        for name, constraint in constraints.items():
            self._add_eager_load(name, constraint)
        return self

    def _add_eager_load(self, name: str, constraint: Callable | None) -> None:
        parts = name.split(".")
        for i in range(1, len(parts)):
            self.eager_loads.setdefault(".".join(parts[:i]), None)
        self.eager_loads[name] = constraint

    def without(self, *names: str) -> "EntityQuery":
        for name in names:
            self.eager_loads.pop(name, None)
        return self

    def eager_load_relations(self, entities: list["Entity"]) -> list["Entity"]:
        for name, constraint in self.eager_loads.items():
            if "." not in name:
                self._eager_load_relation(entities, name, constraint)
        return entities

    def _eager_load_relation(self, entities: list["Entity"], name: str, constraint: Callable | None) -> None:
        relation = self.entity_type.relation(self.bridge, name)
        relation.add_eager_constraints(entities)
        if self.use_select_all:
            relation.query.select_all()
        if constraint is not None:
            constraint(relation)

        prefix = f"{name}."
        nested = {n[len(prefix) :]: c for n, c in self.eager_loads.items() if n.startswith(prefix)}
        if nested:
            relation.query.with_(nested)

        results = relation.get_eager()
        logger.debug("Eager loaded %d %s row(s) for %d parent(s)", len(results), name, len(entities))
        relation.match(entities, results, name)

    def where_has(
        self,
        relation: str,
        callback: Callable | None = None,
        operator: str = ">=",
        count: int = 1,
        boolean: str = "and",
    ) -> "EntityQuery":
        """Keep rows with related rows, optionally matching ``callback``.

        ``operator``/``count`` compare the number of related rows; the default
        ``>= 1`` compiles to EXISTS, anything else to a COUNT(*) sub-query.
        Dotted paths nest: ``where_has("categories.items")``.
        """
        if "." in relation:
            head, rest = relation.split(".", 1)
            return self.where_has(head, lambda q: q.where_has(rest, callback, operator, count), boolean=boolean)

        subquery = self.entity_type.relation(self.bridge, relation).existence_query(self)
        if callback is not None:
            callback(subquery)

        if operator == ">=" and count == 1:
            return self._push_where(exp.Exists(this=subquery.to_expression()), boolean)
        if operator == "<" and count == 1:
            return self._push_where(exp.Not(this=exp.Exists(this=subquery.to_expression())), boolean)

        subquery.columns = [exp.Count(this=exp.Star())]
        condition = compare(subquery.to_expression().subquery(), operator, exp.convert(count))
        return self._push_where(condition, boolean)

    def or_where_has(self, relation: str, callback: Callable | None = None, operator: str = ">=", count: int = 1):
        return self.where_has(relation, callback, operator, count, boolean="or")

    def where_doesnt_have(self, relation: str, callback: Callable | None = None) -> "EntityQuery":
        return self.where_has(relation, callback, "<", 1)

    def has(self, relation: str, operator: str = ">=", count: int = 1) -> "EntityQuery":
        return self.where_has(relation, None, operator, count)

    def doesnt_have(self, relation: str) -> "EntityQuery":
        return self.where_doesnt_have(relation)

    def with_where_has(self, relation: str, callback: Callable | None = None) -> "EntityQuery":
        """Filter by a relation and eager load it with the same constraint."""
        self.where_has(relation, callback)
        if callback is None:
            return self.with_(relation)
        return self.with_({relation: lambda rel: callback(rel.query)})

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def get(self) -> list["Entity"]:
        """Execute and hydrate entities, then eager load requested relations."""
        prepared = self._prepared()
        rows = prepared._fetch()
        entities = [
            self.entity_type.hydrate(self.bridge, row, select_all=prepared.use_select_all) for row in rows
        ]
        if entities and prepared.eager_loads:
            prepared.eager_load_relations(entities)
        return entities

    def to_dicts(self) -> list[dict[str, Any]]:
        return [entity.to_dict() for entity in self.get()]

    def create(self, attributes: Mapping[str, Any]) -> "Entity":
        """Insert a row from human or raw named attributes."""
        entity = self.entity_type.new(self.bridge, dict(attributes))
        entity.save()
        return entity

    def log_query(self, channels: str | Iterable[str] = "stderr") -> "EntityQuery":
        """Enable the bridge's query log from inside a query chain."""
        message = self.bridge.query_log.enable(channels)
        logger.info(message)
        return self
