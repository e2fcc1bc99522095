"""
Shared fixtures and fakes for the sql package tests.

Key fixtures:
- builder: QueryBuilder on an empty registry, for rendering-only tests.
- fake_connection / fake_builder: QueryBuilder wired to a FakeConnection that
  records every statement instead of running it.
- db: DB on a real in-memory SQLite database seeded with users and orders.
"""

import pytest

from core.exceptions import ConnectionNotFoundError
from sql.db import DB
from sql.query_builder import QueryBuilder
from utils.connection import ConnectionRegistry, ExecutionResult


class FakeRow(tuple):
    """Tuple with a _mapping attribute, like sqlalchemy.engine.Row."""

    def __new__(cls, mapping):
        row = super().__new__(cls, tuple(mapping.values()))
        row._mapping = dict(mapping)
        return row


class FakeConnection:
    """Connection double recording executed statements."""

    def __init__(self, result=None, name='default'):
        self.name = name
        self.result = result or ExecutionResult(rows=[], rowcount=0)
        self.executed = []
        self.transaction_calls = []

    def execute(self, sql, bindings=None):
        self.executed.append((sql, tuple(bindings or ())))
        return self.result

    def begin(self):
        self.transaction_calls.append('begin')

    def commit(self):
        self.transaction_calls.append('commit')

    def rollback(self):
        self.transaction_calls.append('rollback')

    @property
    def last_sql(self):
        return self.executed[-1][0]

    @property
    def last_bindings(self):
        return self.executed[-1][1]


class FakeRegistry:
    """Registry double resolving names from a plain dict."""

    def __init__(self, connections):
        self.connections = connections

    def resolve(self, name='default'):
        try:
            return self.connections[name]
        except KeyError:
            raise ConnectionNotFoundError(name) from None


USERS = [
    {'name': 'Ada', 'age': 36, 'country': 'UK', 'email': 'ada@example.com'},
    {'name': 'Bob', 'age': 17, 'country': 'NL', 'email': None},
    {'name': 'Cleo', 'age': 25, 'country': 'BE', 'email': 'cleo@example.com'},
    {'name': 'Dan', 'age': 52, 'country': 'NL', 'email': 'dan@example.com'},
]

ORDERS = [
    {'user_id': 1, 'total': 10.0},
    {'user_id': 1, 'total': 20.0},
    {'user_id': 3, 'total': 5.5},
    {'user_id': 4, 'total': 100.0},
]


@pytest.fixture
def builder():
    """QueryBuilder that never needs a connection (rendering only)."""
    return QueryBuilder(ConnectionRegistry())


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def fake_connection_factory():
    """FakeConnection class, for tests that need several connections."""
    return FakeConnection


@pytest.fixture
def fake_registry_factory():
    return FakeRegistry


@pytest.fixture
def fake_row():
    """Factory building a Row-like tuple from a column mapping."""
    return FakeRow


@pytest.fixture
def fake_builder(fake_connection):
    """Factory of builders bound to the shared FakeConnection."""
    registry = FakeRegistry({'default': fake_connection})

    def factory():
        return QueryBuilder(registry)

    return factory


@pytest.fixture
def db(sqlite_settings):
    """DB bound to a seeded in-memory SQLite database."""
    database = DB(ConnectionRegistry(echo=False))
    database.connect(sqlite_settings)

    database.raw(
        "CREATE TABLE users ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "name TEXT NOT NULL, age INTEGER, country TEXT, email TEXT)"
    )
    database.raw(
        "CREATE TABLE orders ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "user_id INTEGER NOT NULL, total REAL NOT NULL)"
    )
    database.table('users').batch_insert(USERS)
    database.table('orders').batch_insert(ORDERS)

    yield database

    database.close()
