"""
Driver-specific SQL rendering rules
"""

from dataclasses import dataclass
from typing import Optional

from .exceptions import QueryBuildError


@dataclass(frozen=True)
class Dialect:
    """How identifiers, placeholders and pagination are written for one driver"""

    name: str
    quote_char: str
    placeholder: str
    supports_returning: bool = False
    # LIMIT value standing in for "no limit" when only an offset is given
    unbounded_limit: Optional[str] = None

    def quote_identifier(self, identifier: str) -> str:
        """Quote a single identifier part"""
        if identifier == '*':
            return identifier
        if not identifier:
            raise QueryBuildError("Empty identifier")
        q = self.quote_char
        return f"{q}{identifier.replace(q, q + q)}{q}"

    def quote_column(self, column: str) -> str:
        """Quote a plain or qualified (table.column) column reference"""
        if not isinstance(column, str):
            raise QueryBuildError(f"Column reference must be a string, got {type(column).__name__}")
        return '.'.join(self.quote_identifier(part.strip()) for part in column.split('.'))

    def limit_offset(self, limit: Optional[int], offset: Optional[int]) -> str:
        """Render the trailing LIMIT/OFFSET clause (empty when neither is set)"""
        parts = []
        if limit is not None:
            parts.append(f"LIMIT {int(limit)}")
        elif offset is not None and self.unbounded_limit is not None:
            parts.append(f"LIMIT {self.unbounded_limit}")
        if offset is not None:
            parts.append(f"OFFSET {int(offset)}")
        return ' '.join(parts)

    def escape_raw(self, fragment: str) -> str:
        """Prepare a verbatim SQL fragment for the driver's paramstyle"""
        if self.placeholder == '%s':
            return fragment.replace('%', '%%')
        return fragment


DIALECTS = {
    'sqlite': Dialect('sqlite', '`', '?', supports_returning=False, unbounded_limit='-1'),
    'mysql': Dialect('mysql', '`', '%s', supports_returning=False,
                     unbounded_limit='18446744073709551615'),
    'postgresql': Dialect('postgresql', '"', '%s', supports_returning=True),
    'duckdb': Dialect('duckdb', '"', '?', supports_returning=True),
}


def get_dialect(driver: str) -> Dialect:
    """
    Get rendering rules for a driver

    Raises:
        QueryBuildError: If the driver has no dialect
    """
    try:
        return DIALECTS[driver]
    except KeyError:
        raise QueryBuildError(f"No SQL dialect for driver: {driver}") from None
