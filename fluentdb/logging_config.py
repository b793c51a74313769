"""
Database logging configuration.

This module sets up the ``fluentdb`` logger hierarchy and provides helpers for
logging executed queries and connection lifecycle events.
"""

import logging
import sys
from typing import Dict, Any, Optional
from pathlib import Path


class SafeFormatter(logging.Formatter):
    """Custom formatter that provides default values for missing fields."""

    def format(self, record):
        if not hasattr(record, 'database_context'):
            record.database_context = 'db'
        if not hasattr(record, 'query'):
            record.query = ''
        if not hasattr(record, 'params'):
            record.params = ''
        if not hasattr(record, 'duration'):
            record.duration = ''

        return super().format(record)


def setup_db_logging(main_config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Setup database logging based on configuration.

    Args:
        main_config: Configuration dictionary with an optional ``logging``
            section holding ``level`` and ``file`` keys

    Returns:
        Configured ``fluentdb`` logger
    """
    logging_config = (main_config or {}).get('logging', {})
    log_level = logging_config.get('level', 'INFO').upper()

    logger = logging.getLogger('fluentdb')
    logger.setLevel(getattr(logging, log_level))

    # Remove any existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if log_level == 'DEBUG':
        console_formatter = SafeFormatter(
            '%(asctime)s - [%(database_context)s] - %(levelname)s - %(funcName)s:%(lineno)d - '
            '%(message)s%(query)s%(params)s%(duration)s',
            datefmt='%H:%M:%S'
        )
    else:
        console_formatter = SafeFormatter(
            '%(asctime)s - [%(database_context)s] - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    log_file = logging_config.get('file')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(SafeFormatter(
            '%(asctime)s.%(msecs)03d - [%(database_context)s] - %(levelname)s - '
            '%(message)s%(query)s%(params)s%(duration)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

    # Prevent propagation to root logger to avoid duplicate messages
    logger.propagate = False

    return logger


def log_query(logger: logging.Logger, query: str, params: Any = None,
              duration: float = None, level: str = 'DEBUG') -> None:
    """
    Log database query with appropriate detail level.

    Args:
        logger: Database logger instance
        query: SQL query string
        params: Bound parameters
        duration: Query execution time in seconds
        level: Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR')
    """
    log_level = getattr(logging, level.upper())

    if logger.isEnabledFor(logging.DEBUG):
        extra = {
            'query': f' | Query: {query}',
            'params': f' | Params: {params}' if params else '',
            'duration': f' | Duration: {duration:.3f}s' if duration else '',
        }
        logger.log(log_level, "Statement executed", extra=extra)
    elif logger.isEnabledFor(log_level) and level.upper() in ('INFO', 'WARNING', 'ERROR'):
        if duration:
            logger.log(log_level, f"Query executed in {duration:.3f}s")
        else:
            logger.log(log_level, "Database operation completed")


def log_connection_event(logger: logging.Logger, event: str, details: str = None) -> None:
    """
    Log connection lifecycle events.

    Args:
        logger: Database logger instance
        event: Event type ('opened', 'closed', 'replaced', 'error')
        details: Additional event details
    """
    if event == 'error':
        logger.error(f"Connection error: {details}")
        return

    message = f"Connection {event}"
    if details:
        message += f": {details}"
    logger.info(message)


class DatabaseLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds database-specific context to log messages.
    """

    def __init__(self, logger: logging.Logger, extra: Dict[str, Any] = None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        """Add database context to log records."""
        database = self.extra.get('database') or 'unknown'
        if database not in ('unknown', ':memory:'):
            # data/app.sqlite -> app
            database = Path(database).stem

        if 'extra' not in kwargs:
            kwargs['extra'] = {}
        kwargs['extra']['database_context'] = f"{self.extra.get('driver', 'db')}:{database}"

        return msg, kwargs

    def query(self, query: str, params: Any = None, duration: float = None) -> None:
        """Log a database query."""
        log_query(self, query, params, duration)

    def connection_event(self, event: str, details: str = None) -> None:
        """Log a connection lifecycle event."""
        log_connection_event(self, event, details)
