"""
===========================================
Exception hierarchy for the query builder.
===========================================

Every error raised by the builder, the renderer, or the connection layer
derives from QueryBuilderError so callers can catch the whole family at once.

Classes:
    QueryBuilderError: Base class
    ConfigurationError: Connection configuration is incomplete
    DatabaseConnectionError: The driver could not open the connection
    ConnectionNotFoundError: A named connection was never registered
    MissingTableError: Rendering attempted with no table set
    InvalidArgumentError: A builder call received unusable arguments
    QueryExecutionError: The driver rejected a statement
    TransactionStateError: Commit/rollback/begin in the wrong state
"""

from typing import Optional


class QueryBuilderError(Exception):
    """Base exception for all query builder errors."""
    pass


class ConfigurationError(QueryBuilderError):
    """Raised when a connection configuration is missing required keys."""
    pass


class DatabaseConnectionError(QueryBuilderError):
    """Raised when a database connection cannot be established."""
    pass


class ConnectionNotFoundError(QueryBuilderError):
    """Raised when resolving a connection name that was never registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Database connection '{name}' not found")


class MissingTableError(QueryBuilderError):
    """Raised when a query is rendered before a table was set."""

    def __init__(self, message: str = "Table not found: call table() or from_() first"):
        super().__init__(message)


class InvalidArgumentError(QueryBuilderError, ValueError):
    """Raised when a builder method receives arguments it cannot render."""
    pass


class QueryExecutionError(QueryBuilderError):
    """Raised when the database driver rejects a statement.

    Attributes:
        sql: The statement that failed, as sent to the driver
    """

    def __init__(self, message: str, sql: Optional[str] = None):
        self.sql = sql
        super().__init__(message)


class TransactionStateError(QueryBuilderError):
    """Raised on commit/rollback without an active transaction, or nested begin."""
    pass
