"""
Query log kept while diagnostics are enabled.

Each executed statement is recorded as a (display SQL, Statement) pair, where
the display SQL has bound values inlined as literals. The inlined text is for
reading only and is never sent to the database.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Union

from ..logging_config import DatabaseLoggerAdapter

logger = logging.getLogger(__name__)

Params = Union[Sequence[Any], Dict[str, Any], None]

_NAMED_PARAM = re.compile(r'(?<![:\w]):([A-Za-z_]\w*)')


@dataclass
class Statement:
    """Handle of an executed statement"""

    query_string: str
    params: Params = None
    rowcount: Optional[int] = None
    lastrowid: Optional[int] = None
    duration: float = 0.0
    executed_at: datetime = field(default_factory=datetime.now)


class QueryLogEntry(NamedTuple):
    sql: str
    statement: Statement


def format_literal(value: Any) -> str:
    """Render a bound value as an SQL literal for display"""
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        value = value.isoformat(sep=' ') if isinstance(value, datetime) else value.isoformat()
    if isinstance(value, bytes):
        return "X'" + value.hex() + "'"
    return "'" + str(value).replace("'", "''") + "'"


def _split_quoted(sql: str) -> List[str]:
    """Split SQL into alternating unquoted / single-quoted segments"""
    segments = []
    current = []
    in_string = False
    i = 0
    while i < len(sql):
        char = sql[i]
        if char == "'":
            if in_string and i + 1 < len(sql) and sql[i + 1] == "'":
                current.append("''")
                i += 2
                continue
            if in_string:
                current.append(char)
                segments.append(''.join(current))
                current = []
            else:
                segments.append(''.join(current))
                current = [char]
            in_string = not in_string
        else:
            current.append(char)
        i += 1
    segments.append(''.join(current))
    return segments


def inline_params(sql: str, params: Params) -> str:
    """
    Substitute bound parameters into SQL text for display

    Positional placeholders (``?`` or ``%s``) are filled in order; named
    ``:name`` placeholders are filled from a mapping. Placeholders inside
    quoted string literals are left alone.
    """
    if not params:
        return sql

    segments = _split_quoted(sql)

    if isinstance(params, dict):
        for index in range(0, len(segments), 2):
            segments[index] = _NAMED_PARAM.sub(
                lambda m: format_literal(params[m.group(1)]) if m.group(1) in params else m.group(0),
                segments[index],
            )
        return ''.join(segments)

    values = iter(params)
    token = '%s' if any('%s' in segment for segment in segments[::2]) else '?'
    unescape = (lambda text: text.replace('%%', '%')) if token == '%s' else (lambda text: text)
    for index, segment in enumerate(segments):
        if index % 2:
            # quoted literal
            segments[index] = unescape(segment)
            continue
        pieces = [unescape(piece) for piece in segment.split(token)]
        rendered = [pieces[0]]
        for piece in pieces[1:]:
            rendered.append(format_literal(next(values, None)))
            rendered.append(piece)
        segments[index] = ''.join(rendered)
    return ''.join(segments)


class QueryLogger:
    """Ordered record of executed statements"""

    def __init__(self, enabled: bool = False, slow_query_threshold: float = 1.0,
                 log: Optional[DatabaseLoggerAdapter] = None):
        """
        Args:
            enabled: Whether entries are kept
            slow_query_threshold: Seconds above which a statement is logged as slow
            log: Adapter carrying the connection context onto statement log records
        """
        self.enabled = enabled
        self.slow_query_threshold = slow_query_threshold
        self.log = log or DatabaseLoggerAdapter(logger)
        self._entries: List[QueryLogEntry] = []

    def record(self, statement: Statement) -> Optional[QueryLogEntry]:
        """
        Log a statement through the adapter and, when enabled, append it

        Returns:
            The appended entry, or None while the log is disabled
        """
        self.log.query(statement.query_string, statement.params, statement.duration)
        if statement.duration > self.slow_query_threshold:
            self.log.warning(f"Slow query ({statement.duration:.3f}s): {statement.query_string}")

        if not self.enabled:
            return None

        entry = QueryLogEntry(inline_params(statement.query_string, statement.params), statement)
        self._entries.append(entry)
        return entry

    def last_query(self) -> Optional[str]:
        return self._entries[-1].sql if self._entries else None

    def last_statement(self) -> Optional[Statement]:
        return self._entries[-1].statement if self._entries else None

    def entries(self) -> List[QueryLogEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
