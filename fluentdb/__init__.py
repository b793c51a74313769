"""
fluentdb - fluent query builder and lightweight ORM over SQLAlchemy connections

Usage:
    from fluentdb.database import ConnectionContext, QueryBuilder

    with ConnectionContext({'driver': 'sqlite', 'database': ':memory:'}) as ctx:
        users = QueryBuilder('users', ctx).criteria('age', '>=', 18).get()
"""

__version__ = "1.0.0"

from .database import (
    ConnectionContext, QueryBuilder, Model, ModelFactory, Raw, raw,
    connect, disconnect, get_connection
)
from .logging_config import setup_db_logging

__all__ = [
    "ConnectionContext",
    "QueryBuilder",
    "Model",
    "ModelFactory",
    "Raw",
    "raw",
    "connect",
    "disconnect",
    "get_connection",
    "setup_db_logging",
]
