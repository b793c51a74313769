"""Unit tests for database logging helpers."""

import logging

import pytest

from fluentdb.logging_config import DatabaseLoggerAdapter, SafeFormatter, log_connection_event, setup_db_logging


@pytest.fixture
def restore_fluentdb_logger():
    """Restore the package logger after setup_db_logging replaced its handlers."""
    logger = logging.getLogger('fluentdb')
    handlers, level, propagate = logger.handlers[:], logger.level, logger.propagate
    yield logger
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


class TestSetupDbLogging:
    """Test logger configuration."""

    def test_level_and_handlers(self, restore_fluentdb_logger):
        logger = setup_db_logging({'logging': {'level': 'debug'}})

        assert logger.name == 'fluentdb'
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_repeated_setup_does_not_duplicate(self, restore_fluentdb_logger):
        setup_db_logging()
        logger = setup_db_logging()
        assert len(logger.handlers) == 1

    def test_file_handler(self, restore_fluentdb_logger, tmp_path):
        log_file = tmp_path / 'logs' / 'db.log'
        logger = setup_db_logging({'logging': {'level': 'INFO', 'file': str(log_file)}})

        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert log_file.exists()
        assert 'hello' in log_file.read_text()


class TestFormatting:
    """Test record formatting and adapters."""

    def test_safe_formatter_defaults(self):
        formatter = SafeFormatter('[%(database_context)s]%(query)s %(message)s')
        record = logging.LogRecord('fluentdb', logging.INFO, __file__, 1, 'ready', None, None)
        assert formatter.format(record) == '[db] ready'

    def test_adapter_context(self):
        adapter = DatabaseLoggerAdapter(logging.getLogger('fluentdb.test'),
                                        {'driver': 'sqlite', 'database': 'data/app.sqlite'})
        _, kwargs = adapter.process('msg', {})
        assert kwargs['extra']['database_context'] == 'sqlite:app'

    def test_connection_error_event(self, caplog):
        logger = logging.getLogger('fluentdb.test')
        with caplog.at_level(logging.INFO, logger='fluentdb.test'):
            log_connection_event(logger, 'opened', 'sqlite')
            log_connection_event(logger, 'error', 'refused')

        levels = [(record.levelno, record.getMessage()) for record in caplog.records]
        assert (logging.INFO, 'Connection opened: sqlite') in levels
        assert (logging.ERROR, 'Connection error: refused') in levels
