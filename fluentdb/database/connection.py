"""
Connection context owning the single live database connection.

A ConnectionContext opens one SQLAlchemy connection, runs every statement on
it synchronously and commits each statement straight away. The query log is
attached to the context and cleared when the connection is closed.

Module-level functions (connect, disconnect, get_connection, ...) operate on a
process-default context used by builders created without an explicit one.
Contexts do no internal locking: use one context per thread or worker.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import ConnectionConfig, DatabaseConfig
from .dialect import Dialect, get_dialect
from .exceptions import ConnectionError, StatementExecutionError
from .query_log import QueryLogEntry, QueryLogger, Statement
from .records import Record, ResultMapper
from ..logging_config import DatabaseLoggerAdapter

logger = logging.getLogger(__name__)

ConfigLike = Union[ConnectionConfig, Dict[str, Any]]


class ConnectionContext:
    """Explicit owner of one database connection and its query log"""

    def __init__(self, config: Optional[ConfigLike] = None):
        """
        Args:
            config: Optional config opened lazily on the first statement
        """
        self._config: Optional[ConnectionConfig] = None
        self._pending_config: Optional[ConnectionConfig] = None
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None
        # set_debug() override of ConnectionConfig.debug, kept across reopens
        self._debug: Optional[bool] = None
        self.logger = DatabaseLoggerAdapter(logger, {})
        self.query_logger = QueryLogger(log=self.logger)

        if config is not None:
            self.configure(config)

    def configure(self, config: ConfigLike) -> None:
        """Store a config to be opened on first use"""
        self._pending_config = ConnectionConfig.from_value(config)

    def open(self, config: Optional[ConfigLike] = None) -> Connection:
        """
        Open a connection, replacing any existing one

        Args:
            config: Connection config (defaults to the configured one)

        Returns:
            The live SQLAlchemy connection

        Raises:
            ConnectionError: If no config is available, it is invalid, or the
                connection cannot be opened
        """
        if config is not None:
            config = ConnectionConfig.from_value(config)
        else:
            config = self._pending_config
        if config is None:
            raise ConnectionError("No connection config supplied")

        if self._connection is not None:
            self.logger.connection_event('replaced', self._config.driver)
            self.close()

        engine = DatabaseConfig.get_engine(config)
        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            engine.dispose()
            self.logger.connection_event('error', str(e))
            raise ConnectionError(f"Could not connect to {config.driver} database: {e}") from e

        self._engine = engine
        self._connection = connection
        self._config = config
        self._pending_config = config
        self.logger = DatabaseLoggerAdapter(logger, {'driver': config.driver, 'database': config.database})
        self.query_logger = QueryLogger(enabled=config.debug if self._debug is None else self._debug,
                                        slow_query_threshold=config.slow_query_threshold,
                                        log=self.logger)
        self.logger.connection_event('opened', config.driver)
        return connection

    connect = open

    def close(self) -> None:
        """Release the connection and engine and clear the query log (no-op when closed)"""
        if self._connection is not None:
            try:
                self._connection.close()
            finally:
                self._engine.dispose()
            self.logger.connection_event('closed', self._config.driver)

        self._connection = None
        self._engine = None
        self._config = None
        self._pending_config = None
        self.query_logger.clear()

    disconnect = close

    def get_connection(self) -> Optional[Connection]:
        """Current live connection, or None (never connects implicitly)"""
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def config(self) -> Optional[ConnectionConfig]:
        return self._config

    @property
    def dialect(self) -> Dialect:
        """Rendering rules of the open (or configured) driver"""
        config = self._config or self._pending_config
        if config is None:
            raise ConnectionError("Not connected and no connection config supplied")
        return get_dialect(config.driver)

    def set_debug(self, enabled: bool) -> None:
        """Turn the query log on or off, overriding the config's debug flag"""
        self._debug = enabled
        self.query_logger.enabled = enabled

    def ensure_open(self) -> Connection:
        """Return the live connection, opening the configured one if needed"""
        if self._connection is None:
            if self._pending_config is None:
                raise ConnectionError("Not connected: call connect() or configure() first")
            self.open()
        return self._connection

    def _run(self, sql: str, params: Any,
             execute_fn: Callable[[Connection], Any]) -> Tuple[Statement, List[str], List[tuple]]:
        connection = self.ensure_open()
        start_time = time.time()
        try:
            result = execute_fn(connection)
            if result.returns_rows:
                columns = list(result.keys())
                rows = [tuple(row) for row in result.fetchall()]
            else:
                columns, rows = [], []
            lastrowid = None
            if not self.dialect.supports_returning and sql.lstrip().upper().startswith('INSERT'):
                lastrowid = result.lastrowid
            rowcount = result.rowcount
            connection.commit()
        except SQLAlchemyError as e:
            if connection.in_transaction():
                connection.rollback()
            self.logger.error(f"Statement failed: {sql}")
            original = getattr(e, 'orig', None) or e
            raise StatementExecutionError(str(original), sql=sql, params=params, original=e) from e

        statement = Statement(sql, params, rowcount=rowcount, lastrowid=lastrowid,
                              duration=time.time() - start_time)
        self.query_logger.record(statement)
        return statement, columns, rows

    def run(self, sql: str, params: Sequence[Any] = ()) -> Tuple[Statement, List[str], List[tuple]]:
        """
        Execute builder-rendered SQL with positional dialect placeholders

        Returns:
            (statement handle, column names, row tuples)
        """
        params = list(params)
        return self._run(sql, params, lambda conn: conn.exec_driver_sql(sql, tuple(params)))

    def run_text(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Tuple[Statement, List[str], List[tuple]]:
        """Execute raw SQL with named ``:name`` parameters"""
        params = dict(params or {})
        return self._run(sql, params, lambda conn: conn.execute(text(sql), params))

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
        """
        Execute a raw statement

        Returns:
            Number of affected rows (0 when the driver does not report it)
        """
        statement, _, _ = self.run_text(sql, params)
        return statement.rowcount if statement.rowcount and statement.rowcount > 0 else 0

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Record]:
        """Execute a raw query and map its rows to records"""
        _, columns, rows = self.run_text(sql, params)
        return ResultMapper(self).map_rows(columns, rows)

    def last_query(self) -> Optional[str]:
        return self.query_logger.last_query()

    def last_statement(self) -> Optional[Statement]:
        return self.query_logger.last_statement()

    def query_log(self) -> List[QueryLogEntry]:
        return self.query_logger.entries()

    def __enter__(self):
        self.ensure_open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


_default_context = ConnectionContext()


def default_context() -> ConnectionContext:
    """The process-default context used by builders without an explicit one"""
    return _default_context


def connect(config: ConfigLike) -> Connection:
    return _default_context.open(config)


def disconnect() -> None:
    _default_context.close()


def configure(config: ConfigLike) -> None:
    _default_context.configure(config)


def get_connection() -> Optional[Connection]:
    return _default_context.get_connection()


def execute(sql: str, params: Optional[Dict[str, Any]] = None) -> int:
    return _default_context.execute(sql, params)


def query(sql: str, params: Optional[Dict[str, Any]] = None) -> List[Record]:
    return _default_context.query(sql, params)


def last_query() -> Optional[str]:
    return _default_context.last_query()


def last_statement() -> Optional[Statement]:
    return _default_context.last_statement()


def query_log() -> List[QueryLogEntry]:
    return _default_context.query_log()
