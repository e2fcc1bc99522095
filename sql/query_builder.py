"""
============================
Fluent SQL query builder.
============================

QueryBuilder accumulates clause calls for one query, renders them into SQL
with '?' placeholders plus the ordered list of bound values, and executes the
result on a named connection borrowed from a ConnectionRegistry.

A builder is single-use: every terminal operation (get, first, aggregates,
insert, batch_insert, update, delete, to_sql, all) resets the accumulated
state. Builders are not thread-safe; use one per call chain.

Method families:
- Connection: connection, begin_transaction, commit, rollback
- Base: select, table / from_
- WHERE: where, or_where and the _in / _not_in / _between / _not_between /
  _null / _not_null variants with their or_ counterparts
- HAVING: having, or_having and the same variant family
- Clauses: join, left_join, right_join, outer_join, group_by, order_by,
  limit, offset, union, union_all
- Terminals: get, first, all, count, min, max, avg, sum, insert,
  batch_insert, update, delete, raw, to_sql, render

Example:
    >>> from sql.db import DB
    >>>
    >>> db = DB()
    >>> db.connect({'name': 'default', 'driver': 'sqlite', 'database': 'shop.db'})
    >>>
    >>> adults = (
    ...     db.table('users')
    ...     .select('id', 'name')
    ...     .where('age', '>=', 18)
    ...     .where(lambda q: q.where('country', 'NL').or_where('country', 'BE'))
    ...     .order_by('name')
    ...     .limit(20)
    ...     .get()
    ... )
    >>>
    >>> db.table('users').where('id', 7).update({'active': 0})
    1
"""

import logging
from collections import abc
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy.engine import Row

from core.config import DEFAULT_CONNECTION_NAME
from core.exceptions import InvalidArgumentError
from sql import conditions
from sql.clauses import CLOSE_GROUP, OPEN_GROUP, BuilderState, ClauseKind, QueryType
from sql.conditions import MISSING, Condition
from sql.dml import assignments, insert_rows
from sql.renderer import RenderedQuery, render
from utils.connection import Connection, ConnectionRegistry, ExecutionResult

logger = logging.getLogger(__name__)

JOIN_TYPES = ('INNER', 'LEFT', 'RIGHT', 'OUTER')
SORT_DIRECTIONS = ('ASC', 'DESC')

Column = Union[str, Mapping[str, Any], Callable[['QueryBuilder'], Any]]


def _non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except ValueError:
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}") from None
    if number < 0:
        raise InvalidArgumentError(f"{name} must be non-negative, got {value!r}")
    return number


class QueryBuilder:
    """Single-use fluent builder for one SQL statement.

    Attributes:
        registry: Registry the builder borrows its connection from
    """

    def __init__(self, registry: ConnectionRegistry, connection: Optional[str] = None):
        self.registry = registry
        self._connection: Optional[Connection] = None
        self._state = BuilderState()
        if connection is not None:
            self.connection(connection)

    # ------------------------------------------------------------------
    # Connection and transactions
    # ------------------------------------------------------------------

    def connection(self, name: str) -> 'QueryBuilder':
        """Select the named connection for this builder.

        Raises:
            ConnectionNotFoundError: If the name was never registered
        """
        self._connection = self.registry.resolve(name)
        return self

    def _handle(self) -> Connection:
        if self._connection is None:
            self._connection = self.registry.resolve(DEFAULT_CONNECTION_NAME)
        return self._connection

    def begin_transaction(self) -> None:
        self._handle().begin()

    def commit(self) -> None:
        self._handle().commit()

    def rollback(self) -> None:
        self._handle().rollback()

    # ------------------------------------------------------------------
    # Base clause
    # ------------------------------------------------------------------

    def select(self, *columns: Union[str, Iterable[str]]) -> 'QueryBuilder':
        """Set the select list; '*' when called without columns.

        A later call replaces the previous select list.
        """
        if len(columns) == 1 and not isinstance(columns[0], str):
            columns = tuple(columns[0])
        selected = ", ".join(columns) if columns else '*'
        if self._state.columns is not None:
            logger.debug(f"Replacing select list '{self._state.columns}' with '{selected}'")
        self._state.columns = selected
        return self

    def table(self, name: str) -> 'QueryBuilder':
        """Set the table the query runs against; a later call replaces it."""
        if not name:
            raise InvalidArgumentError("table name must not be empty")
        if self._state.table is not None:
            logger.debug(f"Replacing table '{self._state.table}' with '{name}'")
        self._state.table = name
        return self

    def from_(self, name: str) -> 'QueryBuilder':
        return self.table(name)

    # ------------------------------------------------------------------
    # Condition plumbing
    # ------------------------------------------------------------------

    def _add_condition(self, kind: ClauseKind, joiner: str, condition: Condition) -> 'QueryBuilder':
        body, bindings = condition
        conjunction = self._state.conjunction(kind, joiner)
        text = f"{conjunction} {body}" if conjunction else body
        self._state.append(kind, text, bindings)
        return self

    def _add_group(self, kind: ClauseKind, joiner: str, callback: Callable[['QueryBuilder'], Any]) -> None:
        mark = len(self._state.fragments(kind))
        conjunction = self._state.conjunction(kind, joiner)
        if conjunction:
            self._state.append(kind, conjunction)
        self._state.append(kind, OPEN_GROUP)

        try:
            callback(self)
        except BaseException:
            # Leave no unbalanced '(' behind for a caller that recovers
            del self._state.fragments(kind)[mark:]
            raise

        fragments = self._state.fragments(kind)
        if fragments and fragments[-1].is_group_open:
            # Callback added nothing: drop the opened group entirely
            del fragments[mark:]
        else:
            self._state.append(kind, CLOSE_GROUP)

    def _predicate(
        self,
        kind: ClauseKind,
        joiner: str,
        column: Column,
        operator: Any,
        value: Any
    ) -> 'QueryBuilder':
        if callable(column):
            self._add_group(kind, joiner, column)
            return self

        if isinstance(column, abc.Mapping):
            if joiner != 'AND':
                raise InvalidArgumentError("Mapping conditions are only supported by where() and having()")
            for key, mapped in column.items():
                self._add_condition(kind, 'AND', conditions.comparison(key, '=', mapped))
            return self

        if operator is MISSING:
            raise InvalidArgumentError(f"Condition on '{column}' requires a value")

        operator, value = conditions.resolve_comparison(operator, value)
        return self._add_condition(kind, joiner, conditions.comparison(column, operator, value))

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def where(self, column: Column, operator: Any = MISSING, value: Any = MISSING) -> 'QueryBuilder':
        """Add an AND condition.

        Forms:
            where('age', 18)                   age = ?
            where('age', '>', 18)              age > ?
            where({'a': 1, 'b': 2})            a = ? AND b = ?
            where(lambda q: q.where(...))      ( ... )

        With two arguments the second one is always the value. With three,
        the operator must be one of conditions.OPERATORS; anything else,
        e.g. where('id', 'in', [1, 2]), raises InvalidArgumentError. Use
        where_in() and the other variants for those predicates.

        A group callback that raises leaves no trace in the builder; its
        exception propagates unchanged.

        Raises:
            InvalidArgumentError: On an unknown operator or a missing value
        """
        return self._predicate(ClauseKind.WHERE, 'AND', column, operator, value)

    def or_where(self, column: Column, operator: Any = MISSING, value: Any = MISSING) -> 'QueryBuilder':
        return self._predicate(ClauseKind.WHERE, 'OR', column, operator, value)

    def where_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'AND', conditions.in_list(column, values))

    def or_where_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'OR', conditions.in_list(column, values))

    def where_not_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'AND', conditions.in_list(column, values, negate=True))

    def or_where_not_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'OR', conditions.in_list(column, values, negate=True))

    def where_between(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'AND', conditions.between(column, values))

    def or_where_between(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'OR', conditions.between(column, values))

    def where_not_between(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'AND', conditions.between(column, values, negate=True))

    def or_where_not_between(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'OR', conditions.between(column, values, negate=True))

    def where_null(self, column: str) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'AND', conditions.null_check(column))

    def or_where_null(self, column: str) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'OR', conditions.null_check(column))

    def where_not_null(self, column: str) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'AND', conditions.null_check(column, negate=True))

    def or_where_not_null(self, column: str) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.WHERE, 'OR', conditions.null_check(column, negate=True))

    # ------------------------------------------------------------------
    # HAVING
    # ------------------------------------------------------------------

    def having(self, column: Column, operator: Any = MISSING, value: Any = MISSING) -> 'QueryBuilder':
        """Add an AND condition to HAVING; same forms as where()."""
        return self._predicate(ClauseKind.HAVING, 'AND', column, operator, value)

    def or_having(self, column: Column, operator: Any = MISSING, value: Any = MISSING) -> 'QueryBuilder':
        return self._predicate(ClauseKind.HAVING, 'OR', column, operator, value)

    def having_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'AND', conditions.in_list(column, values))

    def or_having_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'OR', conditions.in_list(column, values))

    def having_not_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'AND', conditions.in_list(column, values, negate=True))

    def or_having_not_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'OR', conditions.in_list(column, values, negate=True))

    def having_between(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'AND', conditions.between(column, values))

    def or_having_between(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'OR', conditions.between(column, values))

    def having_not_between(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'AND', conditions.between(column, values, negate=True))

    def or_having_not_between(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'OR', conditions.between(column, values, negate=True))

    def having_null(self, column: str) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'AND', conditions.null_check(column))

    def or_having_null(self, column: str) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'OR', conditions.null_check(column))

    def having_not_null(self, column: str) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'AND', conditions.null_check(column, negate=True))

    def or_having_not_null(self, column: str) -> 'QueryBuilder':
        return self._add_condition(ClauseKind.HAVING, 'OR', conditions.null_check(column, negate=True))

    # ------------------------------------------------------------------
    # Other clauses
    # ------------------------------------------------------------------

    def join(self, table: str, first: str, operator: str, second: str, join_type: str = 'INNER') -> 'QueryBuilder':
        """Add '<TYPE> JOIN table ON first operator second'."""
        join_type = join_type.upper()
        if join_type not in JOIN_TYPES:
            raise InvalidArgumentError(f"Unsupported join type: {join_type!r}")
        self._state.append(ClauseKind.JOIN, f"{join_type} JOIN {table} ON {first} {operator} {second}")
        return self

    def left_join(self, table: str, first: str, operator: str, second: str) -> 'QueryBuilder':
        return self.join(table, first, operator, second, 'LEFT')

    def right_join(self, table: str, first: str, operator: str, second: str) -> 'QueryBuilder':
        return self.join(table, first, operator, second, 'RIGHT')

    def outer_join(self, table: str, first: str, operator: str, second: str) -> 'QueryBuilder':
        return self.join(table, first, operator, second, 'OUTER')

    def group_by(self, *columns: str) -> 'QueryBuilder':
        if not columns:
            raise InvalidArgumentError("group_by() requires at least one column")
        listed = ", ".join(columns)
        prefix = ", " if self._state.groups else " GROUP BY "
        self._state.append(ClauseKind.GROUP_BY, f"{prefix}{listed}")
        return self

    def order_by(self, column: str, direction: str = 'ASC') -> 'QueryBuilder':
        direction = direction.upper()
        if direction not in SORT_DIRECTIONS:
            raise InvalidArgumentError(f"Sort direction must be ASC or DESC, got {direction!r}")
        prefix = ", " if self._state.orders else " ORDER BY "
        self._state.append(ClauseKind.ORDER_BY, f"{prefix}{column} {direction}")
        return self

    def limit(self, value: int) -> 'QueryBuilder':
        self._state.limit = _non_negative_int(value, 'limit')
        return self

    def offset(self, value: int) -> 'QueryBuilder':
        """Skip rows; only rendered together with limit(), in either call order."""
        self._state.offset = _non_negative_int(value, 'offset')
        return self

    def union(self, other: 'QueryBuilder') -> 'QueryBuilder':
        """Append ' UNION <other>'; other is rendered and reset."""
        return self._add_union(other, 'UNION')

    def union_all(self, other: 'QueryBuilder') -> 'QueryBuilder':
        return self._add_union(other, 'UNION ALL')

    def _add_union(self, other: 'QueryBuilder', keyword: str) -> 'QueryBuilder':
        if not isinstance(other, QueryBuilder):
            raise InvalidArgumentError(f"{keyword} expects a QueryBuilder, got {type(other).__name__}")
        subquery = other.render()
        self._state.append(ClauseKind.UNION, f"{keyword} {subquery.sql}", subquery.bindings)
        return self

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @property
    def bindings(self) -> List[Any]:
        """Values bound so far, in clause order."""
        return self._state.bindings()

    def render(self) -> RenderedQuery:
        """Render SQL and bindings, then reset the builder.

        Raises:
            MissingTableError: If no table has been set
        """
        return render(self._state)

    def to_sql(self) -> str:
        """Render the SQL string, then reset the builder.

        Raises:
            MissingTableError: If no table has been set
        """
        return self.render().sql

    def _execute(self, query: RenderedQuery) -> ExecutionResult:
        handle = self._handle()
        logger.debug(f"[{handle.name}] {query.sql} | {len(query.bindings)} binding(s)")
        return handle.execute(query.sql, query.bindings)

    # ------------------------------------------------------------------
    # Terminals
    # ------------------------------------------------------------------

    def get(self) -> List[Row]:
        """Execute the SELECT and return every row."""
        self._state.query_type = QueryType.SELECT
        return self._execute(self.render()).rows or []

    def first(self) -> Optional[Row]:
        """Execute the SELECT with LIMIT 1 and return the row, or None."""
        self._state.limit = 1
        rows = self.get()
        return rows[0] if rows else None

    def all(self, table: str) -> List[Row]:
        """Return every row of a table, ignoring anything accumulated."""
        self._state.reset()
        return self._execute(RenderedQuery(f"SELECT * FROM {table}")).rows or []

    def count(self, column: str = '*') -> Any:
        return self._aggregate(f"COUNT({column})")

    def min(self, column: str) -> Any:
        return self._aggregate(f"MIN({column})")

    def max(self, column: str) -> Any:
        return self._aggregate(f"MAX({column})")

    def avg(self, column: str) -> Any:
        return self._aggregate(f"AVG({column})")

    def sum(self, column: str) -> Any:
        return self._aggregate(f"SUM({column})")

    def _aggregate(self, expression: str) -> Any:
        # The aggregate replaces the select list, so SELECT COUNT(*) FROM ...
        self._state.query_type = QueryType.SELECT
        self._state.columns = expression
        rows = self._execute(self.render()).rows
        if not rows:
            return None
        row = rows[0]
        mapping = row._mapping
        return mapping[expression] if expression in mapping else row[0]

    def insert(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Insert one row.

        Returns:
            Copy of record with 'id' set to the generated identifier when
            the driver reports one
        """
        if not isinstance(record, abc.Mapping):
            raise InvalidArgumentError(f"insert() expects a mapping, got {type(record).__name__}")
        self._prepare_insert([record])
        result = self._execute(self.render())

        inserted = dict(record)
        if result.lastrowid is not None:
            inserted['id'] = result.lastrowid
        return inserted

    def batch_insert(self, records: Iterable[Mapping[str, Any]]) -> bool:
        """Insert many rows with one statement; every record needs the same keys."""
        self._prepare_insert(records)
        self._execute(self.render())
        return True

    def _prepare_insert(self, records: Iterable[Mapping[str, Any]]) -> None:
        columns, rows = insert_rows(records)
        self._state.query_type = QueryType.INSERT
        self._state.insert_columns = columns
        self._state.insert_rows = rows

    def update(self, record: Mapping[str, Any]) -> int:
        """Update matching rows and return the affected-row count."""
        self._state.query_type = QueryType.UPDATE
        self._state.assignments = assignments(record)
        return self._execute(self.render()).rowcount

    def delete(self) -> int:
        """Delete matching rows and return the affected-row count."""
        self._state.query_type = QueryType.DELETE
        return self._execute(self.render()).rowcount

    def raw(self, sql: str, values: Optional[Iterable[Any]] = None) -> Union[List[Row], int]:
        """
        Execute arbitrary SQL.

        Prepared with values when given, executed directly otherwise. Returns
        rows when the statement starts with SELECT, the affected-row count
        otherwise.
        """
        bindings = tuple(values) if values is not None else ()
        result = self._execute(RenderedQuery(sql, bindings))
        if sql.lstrip()[:6].lower() == 'select':
            return result.rows or []
        return result.rowcount
