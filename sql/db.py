"""
==========================================
Entry point handing out fresh query builders.
==========================================

DB owns (or is given) a ConnectionRegistry and starts every call chain on a
new QueryBuilder bound to that registry, so no builder state is ever shared
between unrelated queries.

Example:
    >>> from sql.db import DB
    >>>
    >>> db = DB()
    >>> db.connect({'name': 'default', 'driver': 'sqlite', 'database': 'shop.db'})
    >>> db.connect({'name': 'reports', 'driver': 'pgsql', 'database': 'reports',
    ...             'host': 'localhost', 'username': 'postgres', 'password': 'pwd'})
    >>>
    >>> db.table('orders').where('status', 'open').count()
    12
    >>> db.connection('reports').table('daily').first()
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from sqlalchemy.engine import Row

from core.config import ConnectionConfig, config
from sql.query_builder import QueryBuilder
from utils.connection import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class DB:
    """Factory of single-use QueryBuilder instances sharing one registry.

    Attributes:
        registry: Named connections used by every builder created here
    """

    def __init__(self, registry: Optional[ConnectionRegistry] = None):
        self.registry = registry if registry is not None else ConnectionRegistry()

    def connect(self, connection: Union[Mapping[str, Any], ConnectionConfig, None] = None) -> Connection:
        """
        Register a named connection.

        Args:
            connection: Connection configuration; the environment connection
                from core.config when omitted

        Returns:
            The registered connection (the existing one if the name is taken)
        """
        return self.registry.register(connection if connection is not None else config.db)

    def query(self, connection: Optional[str] = None) -> QueryBuilder:
        return QueryBuilder(self.registry, connection)

    def connection(self, name: str) -> QueryBuilder:
        return self.query(name)

    def table(self, name: str) -> QueryBuilder:
        return self.query().table(name)

    def from_(self, name: str) -> QueryBuilder:
        return self.table(name)

    def select(self, *columns: str) -> QueryBuilder:
        return self.query().select(*columns)

    def raw(self, sql: str, values: Optional[Iterable[Any]] = None,
            connection: Optional[str] = None) -> Union[List[Row], int]:
        return self.query(connection).raw(sql, values)

    def all(self, table: str, connection: Optional[str] = None) -> List[Row]:
        return self.query(connection).all(table)

    def begin_transaction(self, connection: Optional[str] = None) -> None:
        self.query(connection).begin_transaction()

    def commit(self, connection: Optional[str] = None) -> None:
        self.query(connection).commit()

    def rollback(self, connection: Optional[str] = None) -> None:
        self.query(connection).rollback()

    def close(self) -> None:
        """Close every connection in the registry."""
        logger.debug(f"Closing connections: {', '.join(self.registry.names()) or 'none'}")
        self.registry.close_all()
