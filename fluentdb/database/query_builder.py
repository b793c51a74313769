"""
Fluent query builder bound to one table.

Builder methods change the builder's QueryState in place and return the
builder, so chained and statement-by-statement styles are equivalent.
Terminal operations render from a copy of the state and never change it;
start a new logical query with a new builder.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .connection import ConnectionContext, default_context
from .criteria import CriteriaEngine, Raw
from .dialect import Dialect
from .exceptions import QueryBuildError
from .records import Record, ResultMapper
from .relations import JoinSpec, ModelDescriptor, RelationResolver, describe

logger = logging.getLogger(__name__)

Column = Union[str, Raw]
Projection = Union[Column, Dict[Column, str]]

ORDER_DIRECTIONS = ('ASC', 'DESC')


@dataclass
class QueryState:
    """Mutable per-builder query shape"""

    projection: List[Tuple[Column, Optional[str]]] = field(default_factory=list)
    criteria: CriteriaEngine = field(default_factory=CriteriaEngine)
    joins: List[JoinSpec] = field(default_factory=list)
    group_by: List[str] = field(default_factory=list)
    order_by: List[Tuple[str, str]] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None

    def copy(self) -> 'QueryState':
        return QueryState(
            projection=list(self.projection),
            criteria=self.criteria.copy(),
            joins=list(self.joins),
            group_by=list(self.group_by),
            order_by=list(self.order_by),
            limit=self.limit,
            offset=self.offset,
        )


def _validate_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryBuildError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def _parse_projection(column: Projection) -> Tuple[Column, Optional[str]]:
    if isinstance(column, dict):
        if len(column) != 1:
            raise QueryBuildError(f"Aliased column must be a single {{column: alias}} entry, got {column!r}")
        (name, alias), = column.items()
        if not isinstance(alias, str) or not alias:
            raise QueryBuildError(f"Column alias must be a non-empty string, got {alias!r}")
        _parse_projection(name)
        return name, alias
    if isinstance(column, Raw):
        return column, None
    if not isinstance(column, str) or not column.strip():
        raise QueryBuildError(f"Column must be a non-empty string, got {column!r}")
    return column.strip(), None


class QueryBuilder:
    """Criteria-accumulating query builder for one table"""

    def __init__(self, model: Union[str, ModelDescriptor, Any],
                 context: Optional[ConnectionContext] = None):
        """
        Args:
            model: Table name, ModelDescriptor, or Model class
            context: Connection context (defaults to the process-default one)
        """
        if isinstance(model, str):
            self.descriptor = ModelDescriptor(model)
        else:
            self.descriptor = describe(model)
        self.context = context or default_context()
        self.state = QueryState()
        self.relations = RelationResolver(self.descriptor)
        self.mapper = ResultMapper(self.context, self.descriptor)

    def __repr__(self) -> str:
        return f"QueryBuilder({self.descriptor.table!r})"

    def get_table(self) -> str:
        return self.descriptor.table

    # Projection

    def select(self, *columns: Projection) -> 'QueryBuilder':
        """
        Add columns to the projection

        Each column is a name (``'age'``, ``'users.id'``), a single-entry
        ``{column: alias}`` mapping, or a Raw expression.
        """
        parsed = [_parse_projection(column) for column in columns]
        self.state.projection.extend(parsed)
        return self

    # Criteria

    def criteria(self, field: str, operator: str, value: Any = None) -> 'QueryBuilder':
        """Add one AND-combined filter condition"""
        self.state.criteria.add(field, operator, value)
        return self

    def criterias(self, *criterias: Sequence[Any]) -> 'QueryBuilder':
        """
        Add several conditions

        Flat ``[field, operator, value]`` triples are AND-combined; a sequence
        of triples is OR-combined into one group::

            builder.criterias(['title', '=', 'Music'], ['country', '=', 'Island'])
            builder.criterias([['title', '=', 'Music'], ['title', '=', 'Art']])
        """
        self.state.criteria.add_many(*criterias)
        return self

    # Joins

    def _add_join(self, kind: str, table: Union[str, Any], on: Sequence[str],
                  include_in_select: bool = True) -> 'QueryBuilder':
        descriptor = None
        if not isinstance(table, str):
            descriptor = describe(table)
            table = descriptor.table
        self.state.joins.append(JoinSpec.build(table, on, kind, descriptor, include_in_select))
        return self

    def join(self, table: Union[str, Any], on: Sequence[str]) -> 'QueryBuilder':
        """Join a table on a ``[left, operator, right]`` column predicate"""
        return self._add_join('JOIN', table, on)

    def inner_join(self, table: Union[str, Any], on: Sequence[str]) -> 'QueryBuilder':
        return self._add_join('INNER', table, on)

    def left_join(self, table: Union[str, Any], on: Sequence[str]) -> 'QueryBuilder':
        return self._add_join('LEFT', table, on)

    def right_join(self, table: Union[str, Any], on: Sequence[str]) -> 'QueryBuilder':
        return self._add_join('RIGHT', table, on)

    def join_to(self, model: Any, include_in_select: bool = True) -> 'QueryBuilder':
        """
        Join a related model through its declared foreign keys

        Args:
            model: Model class, descriptor or builder of the related model
            include_in_select: Whether the joined columns appear in the
                default projection (the join still filters rows either way)

        Raises:
            RelationNotFoundError: If no relation connects the two tables
        """
        self.state.joins.append(self.relations.join_to(model, include_in_select))
        return self

    def join_through(self, model: Any, include_in_select: bool = True) -> 'QueryBuilder':
        """
        Join a model related directly or through an already-joined table

        Raises:
            RelationNotFoundError: If no direct relation or joined bridge exists
        """
        self.state.joins.append(self.relations.join_through(model, self.state.joins, include_in_select))
        return self

    # Grouping, ordering, pagination

    def group_by(self, *columns: str) -> 'QueryBuilder':
        for column in columns:
            if not isinstance(column, str) or not column.strip():
                raise QueryBuildError(f"Group-by column must be a non-empty string, got {column!r}")
            self.state.group_by.append(column.strip())
        return self

    def order_by(self, column: str, direction: str = 'asc') -> 'QueryBuilder':
        if not isinstance(column, str) or not column.strip():
            raise QueryBuildError(f"Order-by column must be a non-empty string, got {column!r}")
        direction = str(direction).upper()
        if direction not in ORDER_DIRECTIONS:
            raise QueryBuildError(f"Order direction must be 'asc' or 'desc', got {direction!r}")
        self.state.order_by.append((column.strip(), direction))
        return self

    def limit(self, limit: int) -> 'QueryBuilder':
        self.state.limit = _validate_count('limit', limit)
        return self

    def offset(self, offset: int) -> 'QueryBuilder':
        self.state.offset = _validate_count('offset', offset)
        return self

    # Rendering

    def _render_column(self, column: Column, dialect: Dialect) -> str:
        if isinstance(column, Raw):
            return dialect.escape_raw(column.expression)
        return dialect.quote_column(column)

    def _render_projection(self, state: QueryState, dialect: Dialect) -> str:
        if state.projection:
            columns = []
            for column, alias in state.projection:
                rendered = self._render_column(column, dialect)
                if alias:
                    rendered += f" AS {dialect.quote_identifier(alias)}"
                columns.append(rendered)
            return ', '.join(columns)

        if all(join.include_in_select for join in state.joins):
            return '*'

        tables = [self.descriptor.table] + [j.table for j in state.joins if j.include_in_select]
        return ', '.join(f"{dialect.quote_identifier(table)}.*" for table in tables)

    def _render_from(self, state: QueryState, dialect: Dialect) -> Tuple[str, List[Any]]:
        """FROM, JOIN and WHERE clauses"""
        sql = f"FROM {dialect.quote_identifier(self.descriptor.table)}"
        for join in state.joins:
            sql += ' ' + join.render(dialect)
        where, params = state.criteria.render(dialect)
        if where:
            sql += f" WHERE {where}"
        return sql, params

    def _render_select(self, state: QueryState, dialect: Dialect) -> Tuple[str, List[Any]]:
        from_sql, params = self._render_from(state, dialect)
        sql = f"SELECT {self._render_projection(state, dialect)} {from_sql}"
        if state.group_by:
            sql += ' GROUP BY ' + ', '.join(dialect.quote_column(c) for c in state.group_by)
        if state.order_by:
            sql += ' ORDER BY ' + ', '.join(
                f"{dialect.quote_column(column)} {direction}" for column, direction in state.order_by
            )
        pagination = dialect.limit_offset(state.limit, state.offset)
        if pagination:
            sql += ' ' + pagination
        return sql, params

    def _render_count(self, state: QueryState, dialect: Dialect) -> Tuple[str, List[Any]]:
        count_alias = dialect.quote_identifier('count')
        if state.group_by or state.limit is not None or state.offset is not None:
            # Count what get() would return, not the underlying rows
            inner, params = self._render_select(state, dialect)
            return f"SELECT COUNT(*) AS {count_alias} FROM ({inner}) AS {dialect.quote_identifier('counted')}", params
        from_sql, params = self._render_from(state, dialect)
        return f"SELECT COUNT(*) AS {count_alias} {from_sql}", params

    def to_sql(self) -> Tuple[str, List[Any]]:
        """The (sql, params) that get() would execute"""
        return self._render_select(self.state, self.context.dialect)

    # Terminal operations

    def _fetch(self, state: QueryState) -> Tuple[List[str], List[tuple]]:
        self.context.ensure_open()
        sql, params = self._render_select(state, self.context.dialect)
        _, columns, rows = self.context.run(sql, params)
        return columns, rows

    def _identity_index(self, state: QueryState, columns: Sequence[str]) -> Optional[int]:
        """
        Position of the base table's primary key in a result row

        The default projection expands the base table first, so its key is
        the first column of that name. Explicit projections over joins carry
        no identity: the key column could belong to any joined table.
        """
        pk = self.descriptor.primary_key
        if state.joins and state.projection:
            return None
        try:
            return list(columns).index(pk)
        except ValueError:
            return None

    def _fetch_records(self, state: QueryState) -> List[Record]:
        columns, rows = self._fetch(state)
        return self.mapper.map_rows(columns, rows, self._identity_index(state, columns))

    def get(self, limit: Optional[int] = None) -> List[Record]:
        """
        Run the query

        Args:
            limit: Optional LIMIT overriding the builder's for this call only

        Returns:
            Matching records
        """
        state = self.state.copy()
        if limit is not None:
            state.limit = _validate_count('limit', limit)
        return self._fetch_records(state)

    def get_df(self, limit: Optional[int] = None) -> pd.DataFrame:
        """Run the query and return the rows as a DataFrame"""
        state = self.state.copy()
        if limit is not None:
            state.limit = _validate_count('limit', limit)
        columns, rows = self._fetch(state)
        return ResultMapper.to_dataframe(columns, rows)

    def first(self) -> Optional[Record]:
        """First matching record, or None"""
        state = self.state.copy()
        state.limit = 1
        records = self._fetch_records(state)
        return records[0] if records else None

    def find_one(self, id_value: Any) -> Optional[Record]:
        """Record with the given primary key value, or None"""
        pk = self.descriptor.primary_key
        if self.state.joins:
            pk = f"{self.descriptor.table}.{pk}"
        return self.find_one_by(pk, id_value)

    def find_one_by(self, field: str, value: Any) -> Optional[Record]:
        """First record whose field equals value, or None"""
        lookup = QueryBuilder(self.descriptor, self.context)
        lookup.state = self.state.copy()
        lookup.criteria(field, '=', value)
        return lookup.first()

    def count(self) -> int:
        """Number of rows get() would return"""
        self.context.ensure_open()
        sql, params = self._render_count(self.state, self.context.dialect)
        _, _, rows = self.context.run(sql, params)
        return int(rows[0][0]) if rows else 0

    def create(self) -> Record:
        """New record bound to this table, inserted on save()"""
        return self.mapper.new_record()

    def delete_all(self) -> int:
        """
        Delete every row matching the criteria

        Returns:
            Number of deleted rows (0 when the driver does not report it)
        """
        if self.state.joins:
            raise QueryBuildError("delete_all() cannot be combined with joins")
        self.context.ensure_open()
        dialect = self.context.dialect
        from_sql, params = self._render_from(self.state, dialect)
        statement, _, _ = self.context.run(f"DELETE {from_sql}", params)
        deleted = statement.rowcount if statement.rowcount and statement.rowcount > 0 else 0
        logger.info(f"Deleted {deleted} rows from {self.descriptor.table}")
        return deleted

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
        """Execute raw SQL with named parameters; returns affected rows"""
        return self.context.execute(sql, params)

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Record]:
        """Execute a raw query with named parameters; returns records"""
        return self.context.query(sql, params)
