"""
=============================================
Configuration management for the query builder.
=============================================

Loads the default connection settings from environment variables (.env file)
and provides a centralized Config singleton for application-wide access.

A connection configuration is the mapping consumed once by the connection
registry to establish a named connection:

    {
        'name': 'default',
        'driver': 'pgsql',
        'database': 'shop',
        'host': 'localhost',
        'username': 'postgres',
        'password': 'secret',
    }

Example:
    >>> from core.config import config
    >>>
    >>> # Mapping for the connection described by the environment
    >>> settings = config.db.as_mapping()
    >>>
    >>> # Build settings from an explicit mapping
    >>> from core.config import ConnectionConfig
    >>> pg = ConnectionConfig.from_mapping({'name': 'reports', 'driver': 'pgsql', 'database': 'reports'})
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

DEFAULT_CONNECTION_NAME = 'default'

REQUIRED_KEYS = ('name', 'driver', 'database')


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_port(value: Any, source: str) -> Optional[int]:
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{source} has an invalid port: {value!r}") from e


@dataclass
class ConnectionConfig:
    """Settings for one named database connection.

    Attributes:
        name: Registry name of the connection
        driver: Driver alias (pgsql, mysql, sqlite) or SQLAlchemy drivername
        database: Database name (file path for sqlite)
        host: Server hostname, ignored for sqlite
        port: Server port, None for the driver default
        username: Database username
        password: Database password
    """

    name: str
    driver: str
    database: str
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_mapping(cls, connection: Mapping[str, Any]) -> 'ConnectionConfig':
        """Build settings from a connection configuration mapping.

        Args:
            connection: Mapping with name, driver, database and optionally
                host, port, username, password

        Returns:
            ConnectionConfig instance

        Raises:
            ConfigurationError: If a required key is missing or empty or the
                port is not an integer
        """
        missing = [key for key in REQUIRED_KEYS if not connection.get(key)]
        if missing:
            raise ConfigurationError(
                f"Connection configuration is missing required keys: {', '.join(missing)}"
            )

        port = connection.get('port')
        return cls(
            name=str(connection['name']),
            driver=str(connection['driver']),
            database=str(connection['database']),
            host=connection.get('host') or None,
            port=_parse_port(port, f"Connection '{connection['name']}'"),
            username=connection.get('username') or None,
            password=connection.get('password') or None,
        )

    def as_mapping(self) -> Dict[str, Any]:
        """Get settings as a connection configuration mapping."""
        return {
            'name': self.name,
            'driver': self.driver,
            'database': self.database,
            'host': self.host,
            'port': self.port,
            'username': self.username,
            'password': self.password,
        }


class Config:
    """Centralized configuration manager.

    Attributes:
        db: ConnectionConfig for the connection described by the environment
        log_level: Level passed to setup_logging()
        echo_sql: Whether SQLAlchemy engines echo statements

    Example:
        >>> config = Config()
        >>> print(f"Default connection uses {config.db.driver}")
    """

    def __init__(self):
        """Initialize configuration from environment variables."""
        port = os.getenv('DB_PORT')
        self.db = ConnectionConfig(
            name=os.getenv('DB_CONNECTION', DEFAULT_CONNECTION_NAME),
            driver=os.getenv('DB_DRIVER', 'sqlite'),
            database=os.getenv('DB_DATABASE', ':memory:'),
            host=os.getenv('DB_HOST') or None,
            port=_parse_port(port, 'DB_PORT'),
            username=os.getenv('DB_USERNAME') or None,
            password=os.getenv('DB_PASSWORD') or None,
        )
        self.log_level = os.getenv('QB_LOG_LEVEL', 'WARNING')
        self.echo_sql = _env_flag('QB_ECHO_SQL')

    @property
    def default_connection(self) -> str:
        """Get the registry name of the environment connection."""
        return self.db.name


# Global configuration instance
config = Config()
