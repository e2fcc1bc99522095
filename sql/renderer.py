"""
==============================
Query renderer for the builder.
==============================

Assembles accumulated BuilderState into one SQL string and the list of values
bound to its placeholders, in a fixed clause order:

1. Base clause: SELECT cols FROM t | UPDATE t SET ... | DELETE FROM t | INSERT INTO t ...
2. JOIN fragments (SELECT only)
3. WHERE fragments (SELECT, UPDATE, DELETE)
4. GROUP BY (SELECT only), then HAVING when a GROUP BY is present
5. ORDER BY (SELECT, UPDATE, DELETE)
6. LIMIT / OFFSET (SELECT, UPDATE, DELETE)
7. UNION fragments

Bindings are collected from exactly the fragments that were rendered, in the
same order, so placeholder N always receives binding N-1. Rendering resets
the state it consumed.

Usage:
    from sql.renderer import render

    query = render(state)
    query.sql       # 'SELECT * FROM users WHERE age > ?'
    query.bindings  # (18,)
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Tuple

from core.exceptions import MissingTableError, QueryBuilderError
from sql.clauses import BuilderState, Fragment, QueryType
from sql.dml import values_clause

logger = logging.getLogger(__name__)

FILTERABLE = (QueryType.SELECT, QueryType.UPDATE, QueryType.DELETE)


@dataclass(frozen=True)
class RenderedQuery:
    """Final SQL and its bound values.

    Attributes:
        sql: Statement with '?' placeholders
        bindings: Values in placeholder order
    """

    sql: str
    bindings: Tuple[Any, ...] = ()

    @property
    def placeholder_count(self) -> int:
        return self.sql.count('?')


class _Assembler:
    """Accumulates SQL text and bindings side by side."""

    def __init__(self):
        self.parts: List[str] = []
        self.bindings: List[Any] = []

    def add(self, text: str, bindings: Tuple[Any, ...] = ()) -> None:
        self.parts.append(text)
        self.bindings.extend(bindings)

    def add_fragments(self, fragments: List[Fragment], separator: str = ' ') -> None:
        for fragment in fragments:
            self.add(separator + fragment.text.rstrip(), fragment.bindings)

    def result(self) -> RenderedQuery:
        return RenderedQuery(''.join(self.parts), tuple(self.bindings))


def _base_clause(state: BuilderState, assembler: _Assembler) -> None:
    if state.query_type is QueryType.SELECT:
        assembler.add(f"SELECT {state.columns or '*'} FROM {state.table}")

    elif state.query_type is QueryType.UPDATE:
        if state.assignments is None:
            raise QueryBuilderError("UPDATE rendered without assignments")
        assembler.add(f"UPDATE {state.table} SET {state.assignments.text}", state.assignments.bindings)

    elif state.query_type is QueryType.DELETE:
        assembler.add(f"DELETE FROM {state.table}")

    elif state.query_type is QueryType.INSERT:
        if not state.insert_rows:
            raise QueryBuilderError("INSERT rendered without rows")
        columns = ", ".join(state.insert_columns)
        values = values_clause(len(state.insert_rows), len(state.insert_columns))
        bindings = tuple(value for row in state.insert_rows for value in row)
        assembler.add(f"INSERT INTO {state.table} ({columns}) {values}", bindings)


def _skipped(state: BuilderState, clause: str) -> None:
    logger.warning(f"⚠️  {clause} ignored for {state.query_type.name} on {state.table}")


def render(state: BuilderState) -> RenderedQuery:
    """
    Render accumulated state into SQL and bindings, then reset the state.

    Args:
        state: Builder state to consume

    Returns:
        RenderedQuery

    Raises:
        MissingTableError: If no table has been set
    """
    if not state.table:
        raise MissingTableError()

    query_type = state.query_type
    assembler = _Assembler()

    _base_clause(state, assembler)

    if state.joins:
        if query_type is QueryType.SELECT:
            assembler.add_fragments(state.joins)
        else:
            _skipped(state, "JOIN")

    if state.wheres:
        if query_type in FILTERABLE:
            assembler.add_fragments(state.wheres)
        else:
            _skipped(state, "WHERE")

    if state.groups or state.havings:
        if query_type is not QueryType.SELECT:
            _skipped(state, "GROUP BY/HAVING")
        elif not state.groups:
            _skipped(state, "HAVING without GROUP BY")
        else:
            assembler.add_fragments(state.groups, separator='')
            assembler.add_fragments(state.havings)

    if state.orders:
        if query_type in FILTERABLE:
            assembler.add_fragments(state.orders, separator='')
        else:
            _skipped(state, "ORDER BY")

    if state.limit is not None:
        if query_type in FILTERABLE:
            assembler.add(f" LIMIT {state.limit}")
            if state.offset:
                assembler.add(f" OFFSET {state.offset}")
        else:
            _skipped(state, "LIMIT")
    elif state.offset:
        _skipped(state, "OFFSET without LIMIT")

    assembler.add_fragments(state.unions)

    query = assembler.result()
    state.reset()
    return query
