"""
Database abstraction layer: fluent query builder and lightweight ORM core.

Key components:
- ConnectionContext: owns the live connection and the query log
- QueryBuilder: criteria, joins, grouping, ordering and pagination
- Model / ModelFactory: declared relation descriptors for join resolution
- Record: mapped rows with save() and delete()
"""

from .config import ConnectionConfig, DatabaseConfig, load_database_config, redact_config
from .connection import (
    ConnectionContext, default_context, connect, disconnect, configure, get_connection,
    execute, query, last_query, last_statement, query_log
)
from .criteria import Criterion, CriteriaGroup, Raw, raw
from .dialect import Dialect, get_dialect
from .exceptions import (
    DatabaseError, ConnectionError, QueryBuildError, RelationNotFoundError, StatementExecutionError
)
from .models import Model, ModelFactory
from .query_builder import QueryBuilder, QueryState
from .query_log import QueryLogEntry, QueryLogger, Statement
from .records import Record, ResultMapper
from .relations import JoinSpec, ModelDescriptor, RelationResolver

__all__ = [
    # Connection
    "ConnectionConfig",
    "DatabaseConfig",
    "load_database_config",
    "redact_config",
    "ConnectionContext",
    "default_context",
    "connect",
    "disconnect",
    "configure",
    "get_connection",
    "execute",
    "query",

    # Diagnostics
    "last_query",
    "last_statement",
    "query_log",
    "QueryLogEntry",
    "QueryLogger",
    "Statement",

    # Query building
    "Criterion",
    "CriteriaGroup",
    "Raw",
    "raw",
    "Dialect",
    "get_dialect",
    "QueryBuilder",
    "QueryState",
    "JoinSpec",
    "ModelDescriptor",
    "RelationResolver",
    "Model",
    "ModelFactory",
    "Record",
    "ResultMapper",

    # Errors
    "DatabaseError",
    "ConnectionError",
    "QueryBuildError",
    "RelationNotFoundError",
    "StatementExecutionError",
]
