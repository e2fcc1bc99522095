"""
=============================================
Core infrastructure package for the builder.
=============================================

Configuration, logging and the exception hierarchy shared by the sql and
utils packages.

Modules:
    config: Connection settings from environment variables
    logger: Centralized logging configuration and utilities
    exceptions: QueryBuilderError and its subclasses

Example:
    >>> from core.config import config
    >>> from core.logger import get_logger
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info(f"Default connection driver: {config.db.driver}")
"""

__version__ = "0.1.0"
__all__ = [
    'get_logger', 'setup_logging', 'config', 'Config', 'ConnectionConfig',
    'QueryBuilderError', 'ConfigurationError', 'DatabaseConnectionError',
    'ConnectionNotFoundError', 'MissingTableError', 'InvalidArgumentError',
    'QueryExecutionError', 'TransactionStateError',
]

from core.config import Config, ConnectionConfig, config
from core.exceptions import (
    ConfigurationError,
    ConnectionNotFoundError,
    DatabaseConnectionError,
    InvalidArgumentError,
    MissingTableError,
    QueryBuilderError,
    QueryExecutionError,
    TransactionStateError,
)
from core.logger import get_logger, setup_logging
