"""
==========================================
Fluent SQL query construction and execution.
==========================================

This package turns chained builder calls into parameterized SQL and runs it
on named connections.

The package follows a clear organization:
    - conditions.py: WHERE/HAVING predicate fragments and the operator set
    - clauses.py: Typed per-query clause state (BuilderState)
    - dml.py: INSERT rows and UPDATE assignments
    - renderer.py: Fixed-order assembly of SQL and bindings
    - query_builder.py: QueryBuilder, the fluent surface and execution facade
    - db.py: DB, which hands out a fresh QueryBuilder per call chain

Architecture:
    - Every value becomes a '?' placeholder; values travel with their fragment
    - query_builder.py imports renderer.py (not vice versa)
    - Rendering resets the builder: one builder, one statement

Example:
    >>> from sql import DB
    >>>
    >>> db = DB()
    >>> db.connect({'name': 'default', 'driver': 'sqlite', 'database': ':memory:'})
    >>> db.table('users').where('age', '>', 18).to_sql()
    'SELECT * FROM users WHERE age > ?'
"""

__version__ = "0.1.0"
__all__ = [
    'DB', 'QueryBuilder', 'RenderedQuery', 'BuilderState', 'ClauseKind',
    'QueryType', 'Fragment', 'OPERATORS', 'render',
]

from .clauses import BuilderState, ClauseKind, Fragment, QueryType
from .conditions import OPERATORS
from .db import DB
from .query_builder import QueryBuilder
from .renderer import RenderedQuery, render
