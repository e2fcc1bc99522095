"""
===================================
Condition fragments for WHERE/HAVING.
===================================

Pure functions that turn one predicate call into SQL text with '?'
placeholders and the values bound to them. Deciding the leading conjunction
and appending to a clause list is left to the caller (QueryBuilder).

Functions:
- is_operator: Check a string against the recognized operator set
- resolve_comparison: Split (operator, value) arguments into a pair
- comparison: column <op> ?
- in_list: column [NOT] IN (?, ?, ...)
- between: column [NOT] BETWEEN ? AND ?
- null_check: column IS [NOT] NULL
- placeholders: '?, ?, ?' for n values

Usage:
    from sql.conditions import comparison, in_list

    text, bindings = comparison('age', '>', 18)        # ('age > ?', (18,))
    text, bindings = in_list('id', [1, 2, 3])          # ('id IN (?, ?, ?)', (1, 2, 3))
"""

from collections import abc
from typing import Any, Iterable, Tuple

from core.exceptions import InvalidArgumentError

OPERATORS = frozenset([
    '=', '<', '>', '<=', '>=', '<>', '!=', '<=>',
    'like', 'like binary', 'not like', 'ilike',
    '&', '|', '^', '<<', '>>', '&~',
    'rlike', 'not rlike', 'regexp', 'not regexp',
    '~', '~*', '!~', '!~*', 'similar to',
    'not similar to', 'not ilike', '~~*', '!~~*',
])


class _Missing:
    """Marker for an argument the caller did not pass."""

    def __repr__(self):
        return '<missing>'


MISSING = _Missing()

Condition = Tuple[str, Tuple[Any, ...]]


def is_operator(candidate: Any) -> bool:
    """Check whether candidate is a recognized operator (case-insensitive)."""
    return isinstance(candidate, str) and candidate.strip().lower() in OPERATORS


def resolve_comparison(operator: Any, value: Any = MISSING) -> Tuple[str, Any]:
    """
    Split the arguments of a where()/having() call into (operator, value).

    With two arguments the second one is always the value and the operator is
    '='. With three arguments the second one must be a recognized operator.

    Args:
        operator: Operator, or the value when value is MISSING
        value: Value compared against

    Returns:
        Tuple of (operator, value)

    Raises:
        InvalidArgumentError: If an explicit operator is not recognized
    """
    if value is MISSING:
        return '=', operator

    if not is_operator(operator):
        raise InvalidArgumentError(f"Unsupported operator: {operator!r}")

    return operator.strip(), value


def placeholders(count: int) -> str:
    return ', '.join('?' for _ in range(count))


def comparison(column: str, operator: str, value: Any) -> Condition:
    return f"{column} {operator} ?", (value,)


def _as_values(values: Iterable[Any], what: str) -> Tuple[Any, ...]:
    if isinstance(values, (str, bytes)) or not isinstance(values, abc.Iterable):
        raise InvalidArgumentError(f"{what} expects a list of values, got {type(values).__name__}")
    return tuple(values)


def in_list(column: str, values: Iterable[Any], negate: bool = False) -> Condition:
    """
    Build an IN / NOT IN predicate with one placeholder per value.

    Raises:
        InvalidArgumentError: If values is empty, since 'IN ()' is not valid SQL
    """
    operator = 'NOT IN' if negate else 'IN'
    bound = _as_values(values, operator)
    if not bound:
        raise InvalidArgumentError(f"{operator} requires at least one value for column '{column}'")
    return f"{column} {operator} ({placeholders(len(bound))})", bound


def between(column: str, values: Iterable[Any], negate: bool = False) -> Condition:
    """
    Build a BETWEEN / NOT BETWEEN predicate.

    The two bounds are bound in the order given; low <= high is not checked.

    Raises:
        InvalidArgumentError: If values does not hold exactly two bounds
    """
    operator = 'NOT BETWEEN' if negate else 'BETWEEN'
    bound = _as_values(values, operator)
    if len(bound) != 2:
        raise InvalidArgumentError(
            f"{operator} requires exactly two values for column '{column}', got {len(bound)}"
        )
    return f"{column} {operator} ? AND ?", bound


def null_check(column: str, negate: bool = False) -> Condition:
    operator = 'IS NOT NULL' if negate else 'IS NULL'
    return f"{column} {operator}", ()
