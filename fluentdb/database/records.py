"""
Mapping of result rows to Record objects
"""

import logging
from collections.abc import MutableMapping
from typing import Any, Dict, Iterable, List, Optional, Sequence, TYPE_CHECKING

import pandas as pd

from .criteria import Raw
from .exceptions import QueryBuildError, StatementExecutionError
from .relations import ModelDescriptor

if TYPE_CHECKING:
    from .connection import ConnectionContext

logger = logging.getLogger(__name__)

_UNSET = object()


class Record(MutableMapping):
    """
    A materialized row

    Fields are readable as items (``record['title']``) or attributes
    (``record.title``). Assigning a field marks it dirty; ``save()`` writes
    dirty fields back as an INSERT (new records) or an UPDATE by primary key.
    Columns whose names clash with Record methods are only reachable as items.

    The identity is the primary key of the base table row. For rows read
    through joins it can differ from a same-named field of a joined table.
    """

    def __init__(self, fields: Optional[Dict[str, Any]] = None, *,
                 context: Optional['ConnectionContext'] = None,
                 descriptor: Optional[ModelDescriptor] = None,
                 new: bool = False,
                 identity: Any = _UNSET):
        object.__setattr__(self, '_fields', dict(fields or {}))
        object.__setattr__(self, '_context', context)
        object.__setattr__(self, '_descriptor', descriptor)
        object.__setattr__(self, '_new', new)
        object.__setattr__(self, '_dirty', set(self._fields) if new else set())
        if new or descriptor is None:
            identity = None
        elif identity is _UNSET:
            identity = self._fields.get(descriptor.primary_key)
        object.__setattr__(self, '_identity', identity)

    # Mapping protocol

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._fields[key] = value
        self._dirty.add(key)

    def __delitem__(self, key: str) -> None:
        del self._fields[key]
        self._dirty.discard(key)

    def __iter__(self):
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    # Attribute access

    def __getattr__(self, name: str) -> Any:
        fields = self.__dict__.get('_fields')
        if fields is not None and name in fields:
            return fields[name]
        raise AttributeError(f"Record has no field '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith('_'):
            object.__setattr__(self, name, value)
        else:
            self[name] = value

    def __repr__(self) -> str:
        table = self.table or '?'
        return f"Record({table}, {self._fields!r})"

    @property
    def table(self) -> Optional[str]:
        return self._descriptor.table if self._descriptor is not None else None

    @property
    def identity(self) -> Any:
        """Primary key value of the persisted row (None for new records)"""
        return self._identity

    @property
    def is_new(self) -> bool:
        return self._new

    @property
    def dirty_fields(self) -> List[str]:
        return [name for name in self._fields if name in self._dirty]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._fields)

    def _bound(self) -> 'ConnectionContext':
        if self._descriptor is None or self._context is None:
            raise QueryBuildError("Record is not bound to a table")
        return self._context

    def save(self) -> 'Record':
        """
        Persist dirty fields

        New records are inserted; persisted records are updated by primary
        key. Both re-read the affected row afterwards. Saving a record with
        no dirty fields does nothing.
        """
        context = self._bound()
        if not self._dirty:
            logger.debug(f"Nothing to save for {self.table}")
            return self

        if self._new:
            identity = self._insert(context)
        else:
            identity = self._update(context)

        object.__setattr__(self, '_identity', identity)
        object.__setattr__(self, '_new', False)
        self._dirty.clear()
        self.refresh()
        return self

    def _insert(self, context: 'ConnectionContext') -> Any:
        dialect = context.dialect
        pk = self._descriptor.primary_key
        columns = self.dirty_fields
        values = []
        params = []
        for column in columns:
            value = self._fields[column]
            if isinstance(value, Raw):
                values.append(dialect.escape_raw(value.expression))
            else:
                values.append(dialect.placeholder)
                params.append(value)

        sql = (f"INSERT INTO {dialect.quote_identifier(self.table)} "
               f"({', '.join(dialect.quote_column(c) for c in columns)}) "
               f"VALUES ({', '.join(values)})")
        if dialect.supports_returning:
            sql += f" RETURNING {dialect.quote_identifier(pk)}"

        statement, _, rows = context.run(sql, params)
        if rows:
            return rows[0][0]
        if self._fields.get(pk) is not None and not isinstance(self._fields[pk], Raw):
            return self._fields[pk]
        return statement.lastrowid

    def _update(self, context: 'ConnectionContext') -> Any:
        if self._identity is None:
            raise QueryBuildError(f"Cannot update {self.table} record without a primary key value")

        dialect = context.dialect
        pk = self._descriptor.primary_key
        assignments = []
        params = []
        for column in self.dirty_fields:
            value = self._fields[column]
            if isinstance(value, Raw):
                assignments.append(f"{dialect.quote_column(column)} = {dialect.escape_raw(value.expression)}")
            else:
                assignments.append(f"{dialect.quote_column(column)} = {dialect.placeholder}")
                params.append(value)
        params.append(self._identity)

        sql = (f"UPDATE {dialect.quote_identifier(self.table)} SET {', '.join(assignments)} "
               f"WHERE {dialect.quote_identifier(pk)} = {dialect.placeholder}")
        statement, _, _ = context.run(sql, params)
        if statement.rowcount == 0:
            raise StatementExecutionError(
                f"No {self.table} row with {pk} = {self._identity!r} to update", sql=sql, params=params
            )
        if pk in self._dirty and not isinstance(self._fields[pk], Raw):
            return self._fields[pk]
        return self._identity

    def refresh(self) -> 'Record':
        """Reload fields of the persisted row by primary key"""
        context = self._bound()
        if self._identity is None:
            return self

        dialect = context.dialect
        sql = (f"SELECT * FROM {dialect.quote_identifier(self.table)} "
               f"WHERE {dialect.quote_identifier(self._descriptor.primary_key)} = {dialect.placeholder} "
               f"{dialect.limit_offset(1, None)}")
        _, columns, rows = context.run(sql, [self._identity])
        if rows:
            self._fields.update(zip(columns, rows[0]))
        return self

    def delete(self) -> bool:
        """
        Delete the persisted row by primary key

        Returns:
            True if a row was deleted; False for records never saved
        """
        context = self._bound()
        if self._new or self._identity is None:
            return False

        dialect = context.dialect
        sql = (f"DELETE FROM {dialect.quote_identifier(self.table)} "
               f"WHERE {dialect.quote_identifier(self._descriptor.primary_key)} = {dialect.placeholder}")
        statement, _, _ = context.run(sql, [self._identity])

        object.__setattr__(self, '_identity', None)
        object.__setattr__(self, '_new', True)
        self._dirty.update(self._fields)
        return statement.rowcount != 0


class ResultMapper:
    """Converts raw result rows into Records bound to a table"""

    def __init__(self, context: 'ConnectionContext', descriptor: Optional[ModelDescriptor] = None):
        self.context = context
        self.descriptor = descriptor

    def map_row(self, columns: Sequence[str], row: Sequence[Any],
                identity_index: Optional[int] = None) -> Record:
        """
        Args:
            columns: Result column names
            row: Result values
            identity_index: Position of the base table's primary key column,
                or None when the row carries no usable identity
        """
        # Later columns win when joined tables repeat a column name
        identity = row[identity_index] if identity_index is not None else None
        return Record(dict(zip(columns, row)), context=self.context, descriptor=self.descriptor,
                      identity=identity)

    def map_rows(self, columns: Sequence[str], rows: Iterable[Sequence[Any]],
                 identity_index: Optional[int] = None) -> List[Record]:
        return [self.map_row(columns, row, identity_index) for row in rows]

    def new_record(self) -> Record:
        return Record(context=self.context, descriptor=self.descriptor, new=True)

    @staticmethod
    def to_dataframe(columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> pd.DataFrame:
        """
        Build a DataFrame straight from result rows

        Columns are kept even when there are no rows; repeated column names
        from joins are kept as separate DataFrame columns.
        """
        return pd.DataFrame.from_records(list(rows), columns=list(columns))
