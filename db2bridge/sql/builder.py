"""Query builder compiling to SQLGlot expression trees.

The builder owns the state of one query (projections, predicates, joins,
grouping, ordering, paging) and compiles it with SQLGlot builders. Values are
embedded as SQLGlot literals, which quote and escape per dialect.
"""

import copy
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

import sqlglot
from sqlglot import exp

from db2bridge.core.name_map import AliasTable

if TYPE_CHECKING:
    from db2bridge.core.bridge import Bridge

logger = logging.getLogger(__name__)

_MISSING = object()

_COMPARISONS: dict[str, type[exp.Expression]] = {
    "=": exp.EQ,
    "==": exp.EQ,
    "!=": exp.NEQ,
    "<>": exp.NEQ,
    ">": exp.GT,
    ">=": exp.GTE,
    "<": exp.LT,
    "<=": exp.LTE,
    "like": exp.Like,
}


def column_ref(name: str) -> exp.Expression:
    """Build a column reference from a possibly qualified name.

    ``"ICITEM"``, ``"items.ICITEM"``, ``"LIB.ITEMS.ICITEM"`` and ``"items.*"`` are
    all accepted; no SQL parsing is involved.
    """
    parts = name.split(".")
    column = parts[-1]
    table = parts[-2] if len(parts) > 1 else None
    db = parts[-3] if len(parts) > 2 else None

    if column == "*":
        if table is None:
            return exp.Star()
        return exp.Column(this=exp.Star(), table=exp.to_identifier(table), db=exp.to_identifier(db))
    return exp.column(column, table=table, db=db)


def false_condition() -> exp.Expression:
    """``0 = 1``, a predicate that matches nothing."""
    return exp.EQ(this=exp.Literal.number(0), expression=exp.Literal.number(1))


def true_condition() -> exp.Expression:
    """``1 = 1``, a predicate that matches everything."""
    return exp.EQ(this=exp.Literal.number(1), expression=exp.Literal.number(1))


def compare(left: exp.Expression, operator: str, right: exp.Expression) -> exp.Expression:
    """Build ``left <operator> right``.

    Comparing to NULL with ``=`` or ``!=`` produces ``IS NULL`` / ``NOT ... IS NULL``.

    Raises:
        ValueError: If the operator is not supported
    """
    op = operator.strip().lower()
    if isinstance(right, exp.Null):
        if op in ("=", "=="):
            return exp.Is(this=left, expression=exp.Null())
        if op in ("!=", "<>"):
            return exp.Not(this=exp.Is(this=left, expression=exp.Null()))
    if op == "not like":
        return exp.Not(this=exp.Like(this=left, expression=right))
    comparison = _COMPARISONS.get(op)
    if comparison is None:
        raise ValueError(f"Unsupported operator '{operator}'. Must be one of: {', '.join(_COMPARISONS)}, not like")
    return comparison(this=left, expression=right)


def combine(conditions: list[tuple[str, exp.Expression]]) -> exp.Expression | None:
    """Fold ``(boolean, condition)`` pairs the way SQL reads them.

    ``a AND b OR c AND d`` groups as ``(a AND b) OR (c AND d)``: every ``or``
    entry starts a new conjunction.
    """
    groups: list[list[exp.Expression]] = []
    for boolean, condition in conditions:
        if boolean == "or" or not groups:
            groups.append([condition])
        else:
            groups[-1].append(condition)

    conjunctions = [exp.and_(*group) if len(group) > 1 else group[0] for group in groups]
    if not conjunctions:
        return None
    if len(conjunctions) == 1:
        return conjunctions[0]
    return exp.or_(*conjunctions)


def _flatten(items: Iterable[Any]) -> Iterable[Any]:
    for item in items:
        if isinstance(item, (list, tuple)):
            yield from _flatten(item)
        else:
            yield item


def _is_callback(value: Any) -> bool:
    return callable(value) and not isinstance(value, (str, exp.Expression, QueryBuilder))


class JoinClause:
    """Join target with one or more ON conditions."""

    def __init__(self, table: str, join_type: str = "inner"):
        self.table = table
        self.join_type = join_type
        self.conditions: list[tuple[str, exp.Expression]] = []

    def on(self, first, operator: str = "=", second=None, boolean: str = "and") -> "JoinClause":
        """Add a column comparison, or a prebuilt condition expression."""
        if isinstance(first, exp.Expression) and second is None:
            condition = first
        else:
            if second is None:
                operator, second = "=", operator
            left = first if isinstance(first, exp.Expression) else column_ref(first)
            right = second if isinstance(second, exp.Expression) else column_ref(second)
            condition = compare(left, operator, right)
        self.conditions.append((boolean, condition))
        return self

    def or_on(self, first, operator: str = "=", second=None) -> "JoinClause":
        return self.on(first, operator, second, boolean="or")

    def where(self, column: str, operator: Any, value: Any = _MISSING, boolean: str = "and") -> "JoinClause":
        """Compare a joined column to a value."""
        if value is _MISSING:
            operator, value = "=", operator
        value_expr = value if isinstance(value, exp.Expression) else exp.convert(value)
        self.conditions.append((boolean, compare(column_ref(column), operator, value_expr)))
        return self

    def condition(self) -> exp.Expression | None:
        return combine(self.conditions)


class QueryBuilder:
    """Builds and runs a query against one table.

    Every method that takes a column name routes it through :meth:`_column_name`
    (mutations through :meth:`_key_name`), so subclasses can rewrite names in
    one place. SQLGlot expressions and other builders are never rewritten.

    Args:
        bridge: Bridge used to execute compiled SQL
        table: Table name, optionally schema qualified
    """

    def __init__(self, bridge: "Bridge | None", table: str):
        self.bridge = bridge
        self.table = table
        self.columns: list[exp.Expression] = []
        self.wheres: list[tuple[str, exp.Expression]] = []
        self.joins: list[JoinClause] = []
        self.groups: list[exp.Expression] = []
        self.havings: list[tuple[str, exp.Expression]] = []
        self.orders: list[exp.Ordered] = []
        self.limit_value: int | None = None
        self.offset_value: int | None = None
        self.is_distinct = False
        self.is_aggregate = False
        self.aliases = AliasTable()

    # ------------------------------------------------------------------
    # Name and value handling
    # ------------------------------------------------------------------

    def _column_name(self, name: str) -> str:
        return name

    def _key_name(self, name: str) -> str:
        return name

    def _column(self, column: Any) -> exp.Expression:
        if isinstance(column, QueryBuilder):
            return column.to_expression().subquery()
        if isinstance(column, exp.Expression):
            return column
        return column_ref(self._column_name(column))

    def _value(self, value: Any) -> exp.Expression:
        if isinstance(value, QueryBuilder):
            return value.to_expression().subquery()
        if isinstance(value, exp.Expression):
            return value
        return exp.convert(value)

    def new_nested(self) -> "QueryBuilder":
        """Empty builder used to collect a parenthesised group of conditions."""
        return QueryBuilder(self.bridge, self.table)

    @property
    def dialect(self) -> str | None:
        return self.bridge.dialect if self.bridge is not None else None

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def select(self, *columns) -> "QueryBuilder":
        """Replace the projection.

        Accepts column names, lists of names, SQLGlot expressions, sub-query
        builders and ``{alias: column}`` mappings for named projections.
        """
        self.columns = []
        return self.add_select(*columns)

    def add_select(self, *columns) -> "QueryBuilder":
        for column in _flatten(columns):
            if isinstance(column, Mapping):
                for alias, source in column.items():
                    self.columns.append(exp.alias_(self._column(source), alias))
                    self.aliases.record(alias)
            else:
                self.columns.append(self._column(column))
        return self

    def distinct(self) -> "QueryBuilder":
        self.is_distinct = True
        return self

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def _push_where(self, condition: exp.Expression, boolean: str = "and") -> "QueryBuilder":
        self.wheres.append((boolean, condition))
        return self

    def where(self, column, operator: Any = _MISSING, value: Any = _MISSING, boolean: str = "and") -> "QueryBuilder":
        """Add a predicate.

        Forms:
            ``where("col", value)``: equality
            ``where("col", ">=", value)``: comparison
            ``where({"a": 1, "b": 2})``: grouped equalities
            ``where(lambda q: ...)``: parenthesised group
            ``where(expression)``: prebuilt SQLGlot condition

        A ``None`` value compared with ``=`` or ``!=`` becomes an IS NULL test.
        """
        if isinstance(column, Mapping):
            items = list(column.items())
            return self.where_nested(lambda q: [q.where(k, v) for k, v in items], boolean)
        if _is_callback(column):
            return self.where_nested(column, boolean)
        if operator is _MISSING:
            if isinstance(column, exp.Expression):
                return self._push_where(column, boolean)
            raise TypeError("where() requires a value unless the column is a condition expression")
        if value is _MISSING:
            operator, value = "=", operator
        return self._push_where(compare(self._column(column), operator, self._value(value)), boolean)

    def or_where(self, column, operator: Any = _MISSING, value: Any = _MISSING) -> "QueryBuilder":
        return self.where(column, operator, value, boolean="or")

    def where_nested(self, callback: Callable[["QueryBuilder"], Any], boolean: str = "and") -> "QueryBuilder":
        nested = self.new_nested()
        callback(nested)
        condition = combine(nested.wheres)
        if condition is not None:
            self._push_where(exp.Paren(this=condition), boolean)
        return self

    def where_in(self, column, values, boolean: str = "and", negate: bool = False) -> "QueryBuilder":
        """``column IN (...)``; an empty list matches nothing (everything when negated)."""
        target = self._column(column)
        if isinstance(values, QueryBuilder):
            condition = target.isin(query=values.to_expression())
        elif isinstance(values, exp.Query):
            condition = target.isin(query=values)
        else:
            values = list(values)
            if not values:
                return self._push_where(true_condition() if negate else false_condition(), boolean)
            condition = exp.In(this=target, expressions=[self._value(v) for v in values])
        if negate:
            condition = exp.Not(this=condition)
        return self._push_where(condition, boolean)

    def where_not_in(self, column, values, boolean: str = "and") -> "QueryBuilder":
        return self.where_in(column, values, boolean, negate=True)

    def or_where_in(self, column, values) -> "QueryBuilder":
        return self.where_in(column, values, boolean="or")

    def where_null(self, columns, boolean: str = "and", negate: bool = False) -> "QueryBuilder":
        """IS NULL test for one column or each of a list of columns."""
        for column in _flatten([columns]):
            condition = exp.Is(this=self._column(column), expression=exp.Null())
            if negate:
                condition = exp.Not(this=condition)
            self._push_where(condition, boolean)
        return self

    def where_not_null(self, columns, boolean: str = "and") -> "QueryBuilder":
        return self.where_null(columns, boolean, negate=True)

    def where_between(self, column, values, boolean: str = "and", negate: bool = False) -> "QueryBuilder":
        low, high = list(values)[:2]
        condition = exp.Between(this=self._column(column), low=self._value(low), high=self._value(high))
        if negate:
            condition = exp.Not(this=condition)
        return self._push_where(condition, boolean)

    def where_not_between(self, column, values, boolean: str = "and") -> "QueryBuilder":
        return self.where_between(column, values, boolean, negate=True)

    def where_column(self, first, operator: str, second=_MISSING, boolean: str = "and") -> "QueryBuilder":
        """Compare two columns."""
        if second is _MISSING:
            operator, second = "=", operator
        return self._push_where(compare(self._column(first), operator, self._column(second)), boolean)

    def where_exists(self, query: "QueryBuilder | exp.Query", boolean: str = "and", negate: bool = False):
        subquery = query.to_expression() if isinstance(query, QueryBuilder) else query
        condition: exp.Expression = exp.Exists(this=subquery)
        if negate:
            condition = exp.Not(this=condition)
        return self._push_where(condition, boolean)

    def where_not_exists(self, query: "QueryBuilder | exp.Query", boolean: str = "and") -> "QueryBuilder":
        return self.where_exists(query, boolean, negate=True)

    def where_raw(self, sql: str, boolean: str = "and") -> "QueryBuilder":
        """Add a predicate written in SQL, parsed by SQLGlot in the bridge's dialect."""
        return self._push_where(sqlglot.condition(sql, dialect=self.dialect), boolean)

    # ------------------------------------------------------------------
    # Joins, grouping, ordering, paging
    # ------------------------------------------------------------------

    def join(self, table: str, first=None, operator: str = "=", second=None, join_type: str = "inner"):
        """Join a table.

        ``first`` may be a column name (compared with ``second``), a prebuilt
        condition, or a callback receiving a :class:`JoinClause`.
        """
        clause = JoinClause(table, join_type)
        if _is_callback(first):
            first(clause)
        elif first is not None:
            clause.on(first, operator, second)
        self.joins.append(clause)
        return self

    def left_join(self, table: str, first=None, operator: str = "=", second=None) -> "QueryBuilder":
        return self.join(table, first, operator, second, join_type="left")

    def group_by(self, *columns) -> "QueryBuilder":
        self.groups.extend(self._column(c) for c in _flatten(columns))
        return self

    def having(self, column, operator: Any = _MISSING, value: Any = _MISSING, boolean: str = "and"):
        if operator is _MISSING:
            if isinstance(column, exp.Expression):
                self.havings.append((boolean, column))
                return self
            raise TypeError("having() requires a value unless the column is a condition expression")
        if value is _MISSING:
            operator, value = "=", operator
        self.havings.append((boolean, compare(self._column(column), operator, self._value(value))))
        return self

    def order_by(self, column, direction: str = "asc") -> "QueryBuilder":
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"Order direction must be 'asc' or 'desc', got '{direction}'")
        self.orders.append(exp.Ordered(this=self._column(column), desc=direction == "desc"))
        return self

    def order_by_desc(self, column) -> "QueryBuilder":
        return self.order_by(column, "desc")

    def limit(self, value: int | None) -> "QueryBuilder":
        self.limit_value = value
        return self

    def offset(self, value: int | None) -> "QueryBuilder":
        self.offset_value = value
        return self

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def clone(self) -> "QueryBuilder":
        clone = copy.copy(self)
        clone.columns = list(self.columns)
        clone.wheres = list(self.wheres)
        clone.joins = list(self.joins)
        clone.groups = list(self.groups)
        clone.havings = list(self.havings)
        clone.orders = list(self.orders)
        clone.aliases = self.aliases.copy()
        return clone

    def _prepared(self) -> "QueryBuilder":
        """Builder as it will execute; subclasses apply scopes here."""
        return self

    def _compile(self) -> exp.Select:
        columns = [c.copy() for c in self.columns] or [exp.Star()]
        query = exp.select(*columns).from_(exp.to_table(self.table))

        for clause in self.joins:
            on = clause.condition()
            join_type = None if clause.join_type == "inner" else clause.join_type
            query = query.join(
                exp.to_table(clause.table), on=on.copy() if on is not None else None, join_type=join_type
            )

        condition = combine(self.wheres)
        if condition is not None:
            query = query.where(condition.copy())
        if self.groups:
            query = query.group_by(*[g.copy() for g in self.groups])
        having = combine(self.havings)
        if having is not None:
            query = query.having(having.copy())
        if self.orders:
            query = query.order_by(*[o.copy() for o in self.orders])
        if self.limit_value is not None:
            query = query.limit(self.limit_value)
        if self.offset_value is not None:
            query = query.offset(self.offset_value)
        if self.is_distinct:
            query = query.distinct()
        return query

    def to_expression(self) -> exp.Select:
        """Compile to a SQLGlot SELECT expression."""
        return self._prepared()._compile()

    def to_sql(self) -> str:
        return self.to_expression().sql(dialect=self.dialect)

    def __str__(self) -> str:
        return self.to_sql()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _fetch(self) -> list[dict[str, Any]]:
        sql = self._compile().sql(dialect=self.dialect)
        return [self.aliases.normalize(row) for row in self.bridge.select(sql)]

    def get_rows(self) -> list[dict[str, Any]]:
        """Execute and return rows keyed by column name, aliases restored."""
        return self._prepared()._fetch()

    def get(self) -> list:
        return self.get_rows()

    def first(self):
        results = self.clone().limit(1).get()
        return results[0] if results else None

    def count(self, column: str = "*") -> int:
        query = self.clone()
        target = exp.Star() if column == "*" else self._column(column)
        query.columns = [exp.alias_(exp.Count(this=target), "aggregate")]
        query.is_aggregate = True
        query.orders = []
        query.limit_value = None
        query.offset_value = None
        rows = query.get_rows()
        if not rows:
            return 0
        return int(next(iter(rows[0].values())) or 0)

    def exists(self) -> bool:
        query = self.clone()
        query.columns = [exp.alias_(exp.Literal.number(1), "present")]
        query.orders = []
        return bool(query.limit(1).get_rows())

    def doesnt_exist(self) -> bool:
        return not self.exists()

    def pluck(self, column, key=None) -> list | dict:
        """Values of one column, or a ``{key: value}`` dict when ``key`` is given.

        Values are read by position so engine identifier casing does not matter.
        """
        query = self.clone()
        query.columns = [self._column(column)]
        if key is not None:
            query.columns.append(self._column(key))
        rows = [list(row.values()) for row in query.get_rows()]
        if key is None:
            return [row[0] for row in rows]
        return {row[1]: row[0] for row in rows}

    def value(self, column) -> Any:
        values = self.clone().limit(1).pluck(column)
        return values[0] if values else None

    def _row_limit_clause(self, limit: int | None) -> str:
        if limit is None or not self.bridge.adapter.supports_update_row_limit:
            return ""
        return f" FETCH FIRST {limit} {'ROW' if limit == 1 else 'ROWS'} ONLY"

    def update(self, values: Mapping[str, Any]) -> int:
        """Update matching rows; returns the affected row count."""
        if not values:
            return 0
        prepared = self._prepared()
        assignments = [
            exp.EQ(this=exp.column(self._key_name(key)), expression=self._value(value))
            for key, value in values.items()
        ]
        condition = combine(prepared.wheres)
        statement = exp.Update(
            this=exp.to_table(self.table),
            expressions=assignments,
            where=exp.Where(this=condition.copy()) if condition is not None else None,
        )
        sql = statement.sql(dialect=self.dialect) + self._row_limit_clause(prepared.limit_value)
        return self.bridge.statement(sql)

    def insert(self, values: Mapping[str, Any] | list[Mapping[str, Any]]) -> int:
        """Insert one row or a batch of rows; returns the inserted row count."""
        rows = [values] if isinstance(values, Mapping) else list(values)
        if not rows:
            return 0

        # Human and raw spellings of one column collapse to one entry, first wins
        translated: list[dict[str, Any]] = []
        for row in rows:
            columns: dict[str, Any] = {}
            for key, value in row.items():
                columns.setdefault(self._key_name(key), value)
            translated.append(columns)

        keys: list[str] = []
        for row in translated:
            for key in row:
                if key not in keys:
                    keys.append(key)

        tuples = [exp.Tuple(expressions=[self._value(row.get(key)) for key in keys]) for row in translated]
        statement = exp.insert(exp.Values(expressions=tuples), exp.to_table(self.table), columns=keys)
        return self.bridge.statement(statement.sql(dialect=self.dialect))

    def delete(self) -> int:
        """Delete matching rows; returns the affected row count."""
        prepared = self._prepared()
        condition = combine(prepared.wheres)
        statement = exp.Delete(
            this=exp.to_table(self.table),
            where=exp.Where(this=condition.copy()) if condition is not None else None,
        )
        sql = statement.sql(dialect=self.dialect) + self._row_limit_clause(prepared.limit_value)
        return self.bridge.statement(sql)
