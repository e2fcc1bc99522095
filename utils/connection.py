"""
==============================================
Named database connections and their registry.
==============================================

A Connection wraps one open SQLAlchemy connection and is the only object the
query builder talks to when it executes SQL. Connections are created once per
name by a ConnectionRegistry, which builders receive explicitly instead of
reaching for global state.

Statements are written with '?' placeholders; the connection converts them
to the paramstyle of the underlying DBAPI driver before execution. Outside an
explicit transaction every statement is committed as soon as it succeeds.

Classes:
    ExecutionResult: Materialized outcome of one statement
    Connection: Open session with prepared/direct execution and transactions
    ConnectionRegistry: Thread-safe, initialize-once map of named connections

Example:
    >>> from utils.connection import ConnectionRegistry
    >>>
    >>> registry = ConnectionRegistry()
    >>> registry.register({'name': 'default', 'driver': 'sqlite', 'database': ':memory:'})
    >>> handle = registry.resolve('default')
    >>> handle.execute("SELECT ? + ?", [1, 2]).rows
    [(3,)]
"""

import itertools
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from core.config import DEFAULT_CONNECTION_NAME, ConnectionConfig, config
from core.exceptions import (
    ConnectionNotFoundError,
    DatabaseConnectionError,
    QueryExecutionError,
    TransactionStateError,
)
from utils.database_utils import build_connection_url, create_sqlalchemy_engine, get_connection_string

logger = logging.getLogger(__name__)

# Quoted literals are matched first so placeholders inside them are left alone
_TOKEN_PATTERN = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\?|%")

# MySQL also escapes quotes inside literals with a backslash: 'it\'s'
_BACKSLASH_TOKEN_PATTERN = re.compile(
    r"'(?:[^'\\]|\\.|'')*'|\"(?:[^\"\\]|\\.|\"\")*\"|\?|%",
    re.DOTALL,
)

_FORMAT_STYLES = ('format', 'pyformat')

# Dialects whose default SQL mode treats backslash as an escape in literals
_BACKSLASH_ESCAPE_DIALECTS = ('mysql', 'mariadb')


def convert_placeholders(
    sql: str,
    bindings: Sequence[Any],
    paramstyle: str,
    backslash_escapes: bool = False
) -> Tuple[str, Union[Tuple[Any, ...], Dict[str, Any]]]:
    """
    Rewrite '?' placeholders for a DBAPI paramstyle.

    Only standard '' doubling is recognized inside quoted literals unless
    backslash_escapes is set. PostgreSQL (standard_conforming_strings on)
    and SQLite treat a backslash as an ordinary character; MySQL does not.

    Args:
        sql: Statement using '?' placeholders
        bindings: Values in placeholder order
        paramstyle: DBAPI paramstyle of the target driver
        backslash_escapes: Treat \\' and \\" inside literals as escaped quotes

    Returns:
        Tuple of (statement, parameters) ready for exec_driver_sql()

    Example:
        >>> convert_placeholders("SELECT * FROM t WHERE a = ? AND b LIKE '%x'", [1], 'format')
        ("SELECT * FROM t WHERE a = %s AND b LIKE '%%x'", (1,))
    """
    values = tuple(bindings)
    if paramstyle == 'qmark':
        return sql, values

    counter = itertools.count(1)

    def substitute(match: 're.Match[str]') -> str:
        token = match.group(0)
        if token == '?':
            index = next(counter)
            if paramstyle in _FORMAT_STYLES:
                return '%s'
            if paramstyle == 'numeric':
                return f':{index}'
            return f':p{index}'
        # Format-style drivers interpret '%' everywhere, literals included
        if paramstyle in _FORMAT_STYLES:
            return token.replace('%', '%%')
        return token

    pattern = _BACKSLASH_TOKEN_PATTERN if backslash_escapes else _TOKEN_PATTERN
    statement = pattern.sub(substitute, sql)

    if paramstyle == 'named':
        return statement, {f'p{index}': value for index, value in enumerate(values, start=1)}
    return statement, values


@dataclass
class ExecutionResult:
    """Outcome of one executed statement.

    Attributes:
        rows: Fetched rows for row-returning statements, otherwise None
        rowcount: Rows affected as reported by the driver (-1 when unknown)
        lastrowid: Generated identifier of the last inserted row, if reported
    """

    rows: Optional[List[Row]]
    rowcount: int
    lastrowid: Optional[Any] = None


class Connection:
    """Open database session borrowed by query builders.

    Attributes:
        name: Registry name of the connection
        engine: SQLAlchemy engine the session was opened from

    Example:
        >>> handle = Connection('default', engine)
        >>> handle.begin()
        >>> handle.execute("UPDATE users SET active = ?", [0])
        >>> handle.rollback()
    """

    def __init__(self, name: str, engine: Engine):
        self.name = name
        self.engine = engine
        try:
            self._connection = engine.connect()
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(f"Could not connect '{name}': {e}") from e
        self._transaction = None

    @property
    def paramstyle(self) -> str:
        return self.engine.dialect.paramstyle

    @property
    def backslash_escapes(self) -> bool:
        return self.engine.dialect.name in _BACKSLASH_ESCAPE_DIALECTS

    @property
    def in_transaction(self) -> bool:
        """True while an explicit transaction started by begin() is open."""
        return self._transaction is not None and self._transaction.is_active

    def execute(self, sql: str, bindings: Optional[Sequence[Any]] = None) -> ExecutionResult:
        """
        Execute a statement, prepared when bindings are given, direct otherwise.

        Args:
            sql: Statement using '?' placeholders
            bindings: Values in placeholder order

        Returns:
            ExecutionResult with fetched rows or the affected-row count

        Raises:
            QueryExecutionError: If the driver rejects the statement
        """
        try:
            if bindings:
                statement, params = convert_placeholders(
                    sql, bindings, self.paramstyle, self.backslash_escapes
                )
                result = self._connection.exec_driver_sql(statement, params)
            else:
                result = self._connection.exec_driver_sql(
                    sql, execution_options={'no_parameters': True}
                )
            outcome = self._materialize(result)
            if not self.in_transaction:
                self._connection.commit()
            return outcome

        except SQLAlchemyError as e:
            if not self.in_transaction:
                self._connection.rollback()
            message = str(getattr(e, 'orig', None) or e)
            logger.error(f"❌ Query failed on '{self.name}': {message}")
            raise QueryExecutionError(message, sql=sql) from e

    def _materialize(self, result) -> ExecutionResult:
        rowcount = result.rowcount
        if result.returns_rows:
            return ExecutionResult(rows=result.all(), rowcount=rowcount)
        return ExecutionResult(rows=None, rowcount=rowcount, lastrowid=self._lastrowid(result))

    @staticmethod
    def _lastrowid(result) -> Optional[Any]:
        try:
            lastrowid = result.lastrowid
        except (SQLAlchemyError, AttributeError, NotImplementedError):
            return None
        # Drivers without generated keys report 0 or None
        return lastrowid or None

    def begin(self) -> None:
        """Start an explicit transaction.

        Raises:
            TransactionStateError: If a transaction is already active
        """
        if self.in_transaction:
            raise TransactionStateError(f"Connection '{self.name}' already has an active transaction")
        self._transaction = self._connection.begin()
        logger.debug(f"Transaction started on '{self.name}'")

    def commit(self) -> None:
        """Commit the explicit transaction.

        Raises:
            TransactionStateError: If no transaction is active
            QueryExecutionError: If the driver rejects the commit
        """
        transaction = self._active_transaction('commit')
        try:
            transaction.commit()
        except SQLAlchemyError as e:
            raise QueryExecutionError(str(getattr(e, 'orig', None) or e), sql='COMMIT') from e
        finally:
            self._transaction = None
        logger.debug(f"Transaction committed on '{self.name}'")

    def rollback(self) -> None:
        """Roll back the explicit transaction.

        Raises:
            TransactionStateError: If no transaction is active
        """
        transaction = self._active_transaction('roll back')
        try:
            transaction.rollback()
        finally:
            self._transaction = None
        logger.debug(f"Transaction rolled back on '{self.name}'")

    def _active_transaction(self, action: str):
        if not self.in_transaction:
            raise TransactionStateError(f"Cannot {action}: no active transaction on '{self.name}'")
        return self._transaction

    def close(self) -> None:
        """Close the session and dispose of the engine's pool."""
        if self.in_transaction:
            self._transaction.rollback()
        self._transaction = None
        self._connection.close()
        self.engine.dispose()


class ConnectionRegistry:
    """Process-local map of named connections.

    Registration is initialize-once per name: the first configuration
    registered under a name wins and later registrations return the existing
    connection. The check-and-create step runs under a lock.

    Attributes:
        echo: Echo flag passed to created engines

    Example:
        >>> registry = ConnectionRegistry()
        >>> registry.register({'name': 'default', 'driver': 'sqlite', 'database': 'app.db'})
        >>> registry.resolve('default').name
        'default'
    """

    def __init__(
        self,
        echo: Optional[bool] = None,
        engine_factory: Callable[..., Engine] = create_sqlalchemy_engine
    ):
        self.echo = config.echo_sql if echo is None else echo
        self._engine_factory = engine_factory
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    def register(self, connection: Union[Mapping[str, Any], ConnectionConfig]) -> Connection:
        """
        Establish a named connection unless one already exists under that name.

        Args:
            connection: Connection configuration mapping or ConnectionConfig

        Returns:
            The connection registered under the configuration's name

        Raises:
            ConfigurationError: If required configuration keys are missing
            DatabaseConnectionError: If the database cannot be reached
        """
        settings = connection if isinstance(connection, ConnectionConfig) \
            else ConnectionConfig.from_mapping(connection)

        with self._lock:
            existing = self._connections.get(settings.name)
            if existing is not None:
                logger.debug(f"Connection '{settings.name}' already registered, keeping the first one")
                return existing

            try:
                engine = self._engine_factory(build_connection_url(settings), echo=self.echo)
            except (SQLAlchemyError, ImportError) as e:
                raise DatabaseConnectionError(
                    f"Could not create engine for '{settings.name}': {e}"
                ) from e

            handle = Connection(settings.name, engine)
            self._connections[settings.name] = handle

        logger.info(f"✅ Registered connection '{settings.name}' ({get_connection_string(settings)})")
        return handle

    def resolve(self, name: str = DEFAULT_CONNECTION_NAME) -> Connection:
        """
        Get a registered connection.

        Raises:
            ConnectionNotFoundError: If nothing was registered under the name
        """
        try:
            return self._connections[name]
        except KeyError:
            raise ConnectionNotFoundError(name) from None

    def __contains__(self, name: str) -> bool:
        return name in self._connections

    def names(self) -> List[str]:
        return list(self._connections)

    def close_all(self) -> None:
        """Close every registered connection and forget them."""
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for handle in connections:
            handle.close()
