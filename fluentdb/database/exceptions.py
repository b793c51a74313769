"""
Exception hierarchy for the database layer.

Builder-time errors (QueryBuildError, RelationNotFoundError) are raised before
any statement reaches the connection. Execution-time errors are wrapped in
StatementExecutionError with the rendered SQL attached.
"""

from typing import Any, Optional


class DatabaseError(Exception):
    """Base exception for database layer errors."""
    pass


class ConnectionError(DatabaseError):
    """Raised when a connection config is invalid or the connection cannot be opened."""
    pass


class QueryBuildError(DatabaseError):
    """Raised for unsupported operators or malformed criteria, joins and ordering."""
    pass


class RelationNotFoundError(QueryBuildError):
    """Raised when no declared relation connects two models."""
    pass


class StatementExecutionError(DatabaseError):
    """Raised when the database engine rejects a statement."""

    def __init__(self, message: str, sql: Optional[str] = None,
                 params: Any = None, original: Optional[BaseException] = None):
        super().__init__(message)
        self.sql = sql
        self.params = params
        self.original = original

    def __str__(self) -> str:
        message = super().__str__()
        if self.sql:
            message += f"\nSQL: {self.sql}"
        return message
