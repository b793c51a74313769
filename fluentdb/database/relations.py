"""
Relation descriptors and join resolution through declared foreign keys.

A ModelDescriptor declares a table, its primary key and a mapping from
related table name to the key column that links the two tables. Resolution
only reads these declarations; callers never name join columns.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from .dialect import Dialect
from .exceptions import QueryBuildError, RelationNotFoundError

logger = logging.getLogger(__name__)


JOIN_KINDS = {
    'JOIN': 'JOIN',
    'INNER': 'INNER JOIN',
    'LEFT': 'LEFT OUTER JOIN',
    'RIGHT': 'RIGHT OUTER JOIN',
}

JOIN_OPERATORS = ('=', '!=', '<>', '>', '>=', '<', '<=')


@dataclass(frozen=True)
class ModelDescriptor:
    """Table name, primary key and declared foreign keys of a model"""

    table: str
    foreign_keys: Mapping[str, str] = field(default_factory=dict)
    primary_key: str = 'id'

    def __post_init__(self):
        if not isinstance(self.table, str) or not self.table:
            raise QueryBuildError(f"Model table must be a non-empty string, got {self.table!r}")
        object.__setattr__(self, 'foreign_keys', MappingProxyType(dict(self.foreign_keys or {})))

    def key_for(self, table: str) -> Optional[str]:
        """Key column declared for a related table, if any"""
        return self.foreign_keys.get(table)


def describe(model: Any) -> ModelDescriptor:
    """
    Get the descriptor of a model class, builder or descriptor

    Raises:
        QueryBuildError: If the value carries no descriptor
    """
    if isinstance(model, ModelDescriptor):
        return model
    descriptor = getattr(model, 'descriptor', None)
    if isinstance(descriptor, ModelDescriptor):
        return descriptor
    raise QueryBuildError(f"{model!r} does not declare a model descriptor")


@dataclass(frozen=True)
class JoinSpec:
    """One join: target table, kind and column predicate"""

    table: str
    kind: str
    left: str
    operator: str
    right: str
    descriptor: ModelDescriptor
    include_in_select: bool = True

    @classmethod
    def build(cls, table: str, on: Sequence[str], kind: str = 'JOIN',
              descriptor: Optional[ModelDescriptor] = None,
              include_in_select: bool = True) -> 'JoinSpec':
        """
        Validate and build a join from a ``[left, operator, right]`` predicate

        Raises:
            QueryBuildError: If the table, kind or predicate is malformed
        """
        kind = kind.upper()
        if kind not in JOIN_KINDS:
            raise QueryBuildError(f"Unsupported join kind: {kind}")
        if not isinstance(table, str) or not table:
            raise QueryBuildError(f"Join table must be a non-empty string, got {table!r}")
        if not isinstance(on, (list, tuple)) or len(on) != 3:
            raise QueryBuildError(f"Join predicate must be [left, operator, right], got {on!r}")
        left, operator, right = on
        if operator not in JOIN_OPERATORS:
            raise QueryBuildError(f"Unsupported join operator: {operator!r}")
        if not all(isinstance(column, str) and column for column in (left, right)):
            raise QueryBuildError(f"Join predicate columns must be strings, got {on!r}")
        return cls(table, kind, left, operator, right,
                   descriptor or ModelDescriptor(table), include_in_select)

    def render(self, dialect: Dialect) -> str:
        return (f"{JOIN_KINDS[self.kind]} {dialect.quote_identifier(self.table)} "
                f"ON {dialect.quote_column(self.left)} {self.operator} {dialect.quote_column(self.right)}")


class RelationResolver:
    """Synthesizes joins from declared relations, starting at a base model"""

    def __init__(self, base: ModelDescriptor):
        self.base = base

    @staticmethod
    def _declared_by_other(source: ModelDescriptor, other: ModelDescriptor,
                           include_in_select: bool, kind: str) -> Optional[JoinSpec]:
        # other.fk = source.pk
        fk = other.key_for(source.table)
        if not fk:
            return None
        return JoinSpec(other.table, kind, f"{other.table}.{fk}", '=',
                        f"{source.table}.{source.primary_key}", other, include_in_select)

    @staticmethod
    def _declared_by_source(source: ModelDescriptor, other: ModelDescriptor,
                            include_in_select: bool, kind: str) -> Optional[JoinSpec]:
        # other.pk = source.fk
        fk = source.key_for(other.table)
        if not fk:
            return None
        return JoinSpec(other.table, kind, f"{other.table}.{other.primary_key}", '=',
                        f"{source.table}.{fk}", other, include_in_select)

    @classmethod
    def direct(cls, source: ModelDescriptor, other: ModelDescriptor,
               include_in_select: bool = True, kind: str = 'JOIN') -> Optional[JoinSpec]:
        """
        Join from source to other through a key declared on either side

        The other model's declaration is preferred (other.fk = source.pk),
        then the source's (other.pk = source.fk).
        """
        return (cls._declared_by_other(source, other, include_in_select, kind)
                or cls._declared_by_source(source, other, include_in_select, kind))

    @classmethod
    def bridge(cls, intermediate: ModelDescriptor, target: ModelDescriptor,
               include_in_select: bool = True, kind: str = 'JOIN') -> Optional[JoinSpec]:
        """
        Join target onto an intermediate table

        The intermediate's declaration is preferred (target.pk = intermediate.fk),
        then the target's (target.fk = intermediate.pk).
        """
        return (cls._declared_by_source(intermediate, target, include_in_select, kind)
                or cls._declared_by_other(intermediate, target, include_in_select, kind))

    def join_to(self, other: Any, include_in_select: bool = True) -> JoinSpec:
        """
        Resolve a direct join from the base model to other

        Raises:
            RelationNotFoundError: If neither model declares a key for the other
        """
        other = describe(other)
        spec = self.direct(self.base, other, include_in_select)
        if spec is None:
            raise RelationNotFoundError(
                f"No relation declared between '{self.base.table}' and '{other.table}'"
            )
        logger.debug(f"Resolved {self.base.table} -> {other.table}: {spec.left} = {spec.right}")
        return spec

    def join_through(self, target: Any, joined: Sequence[JoinSpec],
                     include_in_select: bool = True) -> JoinSpec:
        """
        Resolve a join to target, directly or through an already-joined table

        A direct relation with the base model wins. Otherwise joined tables
        are tried in declaration order; the first one relating to target
        becomes the bridge.

        Raises:
            RelationNotFoundError: If no direct relation or bridge exists
        """
        target = describe(target)
        spec = self.direct(self.base, target, include_in_select)
        if spec is not None:
            return spec

        for join in joined:
            spec = self.bridge(join.descriptor, target, include_in_select)
            if spec is not None:
                logger.debug(f"Resolved {target.table} through {join.table}: {spec.left} = {spec.right}")
                return spec

        raise RelationNotFoundError(
            f"No relation path from '{self.base.table}' to '{target.table}' "
            f"through joined tables: {', '.join(j.table for j in joined) or 'none'}"
        )
