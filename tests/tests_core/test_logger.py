"""
========================================================
Pytest suite for core/logger.py
========================================================

Test Coverage:
--------------
- ColoredFormatter: Level coloring without side effects on the record
- get_logger: Named loggers with optional level override
- setup_logging: Console and file handlers on the root logger
"""

import logging

import pytest

from core.logger import ColoredFormatter, get_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
def test_colored_formatter_restores_levelname():
    """
    Test ColoredFormatter output.

    Verifies the colored level appears in the output while the record keeps
    its plain level name for other handlers.
    """
    record = logging.LogRecord('sql', logging.WARNING, __file__, 1, 'slow query', None, None)

    output = ColoredFormatter('%(levelname)s %(message)s').format(record)

    assert output == '\033[33mWARNING\033[0m slow query'
    assert record.levelname == 'WARNING'


@pytest.mark.unit
def test_get_logger_level_override():
    logger = get_logger('tests.core.logger_override', level='debug')

    assert logger.name == 'tests.core.logger_override'
    assert logger.level == logging.DEBUG


@pytest.mark.unit
def test_setup_logging_console_only(restore_root_logger):
    setup_logging(log_level='ERROR', use_colors=False)

    assert restore_root_logger.level == logging.ERROR
    assert len(restore_root_logger.handlers) == 1
    assert not isinstance(restore_root_logger.handlers[0].formatter, ColoredFormatter)


@pytest.mark.integration
def test_setup_logging_writes_file(restore_root_logger, tmp_path):
    setup_logging(log_level='INFO', log_file='queries.log', log_dir=str(tmp_path / 'logs'), console_output=False)

    logging.getLogger('sql.query_builder').info('SELECT * FROM users')
    for handler in restore_root_logger.handlers:
        handler.flush()

    content = (tmp_path / 'logs' / 'queries.log').read_text(encoding='utf-8')
    assert 'sql.query_builder - INFO - SELECT * FROM users' in content
