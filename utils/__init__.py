"""
==========================
Utility Functions Package.
==========================

Database connectivity for the query builder.

Modules:
    database_utils: SQLAlchemy URL and engine construction
    connection: Connection handles and the named ConnectionRegistry
"""

__version__ = "1.0.0"
__all__ = [
    'Connection',
    'ConnectionRegistry',
    'ExecutionResult',
    'convert_placeholders',
    'build_connection_url',
    'create_sqlalchemy_engine',
    'get_connection_string',
    'resolve_drivername',
]

from .connection import Connection, ConnectionRegistry, ExecutionResult, convert_placeholders
from .database_utils import (
    build_connection_url,
    create_sqlalchemy_engine,
    get_connection_string,
    resolve_drivername,
)
