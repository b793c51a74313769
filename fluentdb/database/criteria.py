"""
Filter criteria accumulated by query builders.

Criteria are kept in the order they were added and AND-combined when
rendered. A CriteriaGroup holds criteria that are OR-combined inside one
parenthesized predicate.

Raw operands are a trust boundary: their expression is written into the SQL
verbatim, never bound as a parameter and never escaped. Only pass Raw values
built from trusted, constant SQL (e.g. ``Raw('CURRENT_TIMESTAMP')``).
"""

from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple, Union

from .dialect import Dialect
from .exceptions import QueryBuildError


COMPARISON_OPERATORS = ('=', '!=', '>', '>=', '<', '<=', 'LIKE', 'NOT LIKE')
LIST_OPERATORS = ('IN', 'NOT IN')
NULL_OPERATORS = {'NULL': 'IS NULL', 'NOT NULL': 'IS NOT NULL'}
COLUMN_EQUALS = '#=#'

SUPPORTED_OPERATORS = COMPARISON_OPERATORS + LIST_OPERATORS + tuple(NULL_OPERATORS) + (COLUMN_EQUALS,)


@dataclass(frozen=True)
class Raw:
    """A literal SQL expression rendered verbatim"""

    expression: str

    def __post_init__(self):
        if not isinstance(self.expression, str) or not self.expression.strip():
            raise QueryBuildError("Raw expression must be a non-empty string")

    def __str__(self) -> str:
        return self.expression


def raw(expression: str) -> Raw:
    """Shorthand for Raw(expression)"""
    return Raw(expression)


def normalize_operator(operator: Any) -> str:
    """
    Upper-case and validate an operator

    Raises:
        QueryBuildError: If the operator is not supported
    """
    if not isinstance(operator, str):
        raise QueryBuildError(f"Operator must be a string, got {type(operator).__name__}")
    normalized = ' '.join(operator.upper().split())
    if normalized not in SUPPORTED_OPERATORS:
        raise QueryBuildError(f"Unsupported operator: {operator!r}")
    return normalized


@dataclass(frozen=True)
class Criterion:
    """One filter condition: field, operator, operand"""

    field: str
    operator: str
    value: Any = None

    @classmethod
    def build(cls, field: str, operator: str, value: Any = None) -> 'Criterion':
        """Validate the parts of a condition and build it"""
        if not isinstance(field, str) or not field.strip():
            raise QueryBuildError(f"Criterion field must be a non-empty string, got {field!r}")

        operator = normalize_operator(operator)

        if operator in LIST_OPERATORS:
            if isinstance(value, (list, tuple, set, frozenset)):
                value = tuple(value)
            elif not isinstance(value, Raw):
                raise QueryBuildError(f"Operator {operator} requires a list operand, got {value!r}")
        elif operator == COLUMN_EQUALS:
            if not isinstance(value, str) or not value.strip():
                raise QueryBuildError(f"Operator {COLUMN_EQUALS} requires a column name operand")
        elif operator in NULL_OPERATORS:
            value = None
        elif isinstance(value, (list, tuple, set, dict)):
            raise QueryBuildError(f"Operator {operator} requires a scalar operand, got {value!r}")

        return cls(field.strip(), operator, value)

    def render(self, dialect: Dialect) -> Tuple[str, List[Any]]:
        """Render to an SQL predicate plus its bound parameters"""
        column = dialect.quote_column(self.field)

        if self.operator in NULL_OPERATORS:
            return f"{column} {NULL_OPERATORS[self.operator]}", []

        if self.operator == COLUMN_EQUALS:
            return f"{column} = {dialect.quote_column(self.value)}", []

        if isinstance(self.value, Raw):
            expression = dialect.escape_raw(self.value.expression)
            if self.operator in LIST_OPERATORS:
                return f"{column} {self.operator} ({expression})", []
            return f"{column} {self.operator} {expression}", []

        if self.operator in LIST_OPERATORS:
            if not self.value:
                # Empty sets: nothing is IN, everything is NOT IN
                return ("1 = 0" if self.operator == 'IN' else "1 = 1"), []
            placeholders = ', '.join(dialect.placeholder for _ in self.value)
            return f"{column} {self.operator} ({placeholders})", list(self.value)

        return f"{column} {self.operator} {dialect.placeholder}", [self.value]


@dataclass(frozen=True)
class CriteriaGroup:
    """Criteria combined with OR inside one parenthesized predicate"""

    criteria: Tuple[Criterion, ...]

    def render(self, dialect: Dialect) -> Tuple[str, List[Any]]:
        parts = []
        params: List[Any] = []
        for criterion in self.criteria:
            sql, criterion_params = criterion.render(dialect)
            parts.append(sql)
            params.extend(criterion_params)
        return '(' + ' OR '.join(parts) + ')', params


CriteriaItem = Union[Criterion, CriteriaGroup]


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def criterion_from_sequence(item: Sequence[Any]) -> Criterion:
    """Build a Criterion from a ``[field, operator, value]`` sequence"""
    if not _is_sequence(item) or len(item) not in (2, 3):
        raise QueryBuildError(f"Criterion must be a [field, operator, value] sequence, got {item!r}")
    return Criterion.build(*item)


class CriteriaEngine:
    """Ordered, AND-combined accumulation of criteria"""

    def __init__(self):
        self._items: List[CriteriaItem] = []

    def add(self, field: str, operator: str, value: Any = None) -> Criterion:
        criterion = Criterion.build(field, operator, value)
        self._items.append(criterion)
        return criterion

    def add_many(self, *items: Sequence[Any]) -> None:
        """
        Add several criteria at once

        Each item is either a ``[field, operator, value]`` triple, AND-combined
        with the rest, or a sequence of triples, OR-combined into one group.
        The whole call is validated before anything is added.
        """
        built: List[CriteriaItem] = []
        for item in items:
            if not _is_sequence(item) or not item:
                raise QueryBuildError(f"Malformed criteria: {item!r}")
            if _is_sequence(item[0]):
                built.append(CriteriaGroup(tuple(criterion_from_sequence(sub) for sub in item)))
            else:
                built.append(criterion_from_sequence(item))
        self._items.extend(built)

    def render(self, dialect: Dialect) -> Tuple[str, List[Any]]:
        """Render the AND-combined predicate (empty string when there are no criteria)"""
        parts = []
        params: List[Any] = []
        for item in self._items:
            sql, item_params = item.render(dialect)
            parts.append(sql)
            params.extend(item_params)
        return ' AND '.join(parts), params

    def copy(self) -> 'CriteriaEngine':
        clone = CriteriaEngine()
        clone._items = list(self._items)
        return clone

    @property
    def items(self) -> Tuple[CriteriaItem, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)
