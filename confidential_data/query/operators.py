"""
Operator interpreter for in-process condition evaluation.

Evaluates one condition against a decrypted field value, reproducing the
comparison semantics the database would apply if it could see plaintext.

| operator      | meaning                                                  |
|---------------|----------------------------------------------------------|
| =             | loose equality, strings compared case-insensitively      |
| <> / !=       | negation of =                                            |
| > >= < <=     | ordering of raw (not lowercased) values                  |
| CONTAINS      | expected is a substring of actual (case-insensitive)     |
| STARTS_WITH   | actual begins with expected (case-insensitive)           |
| ENDS_WITH     | actual ends with expected (case-insensitive)             |
| IN / NOT IN   | membership in a collection (case-insensitive for str)    |
| IS NULL       | actual is empty or absent                                |
| IS NOT NULL   | actual is present and non-empty                          |

With case_sensitive=True, =, <>, IN and NOT IN compare strings exactly.
An empty actual value only satisfies IS NULL and <> / !=.
Unknown operators evaluate to False (fail closed) and log a warning.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

EQ = "="
NE = "<>"
GT = ">"
GE = ">="
LT = "<"
LE = "<="
CONTAINS = "CONTAINS"
STARTS_WITH = "STARTS_WITH"
ENDS_WITH = "ENDS_WITH"
IN = "IN"
NOT_IN = "NOT IN"
IS_NULL = "IS NULL"
IS_NOT_NULL = "IS NOT NULL"

SUPPORTED_OPERATORS = frozenset(
    {EQ, NE, GT, GE, LT, LE, CONTAINS, STARTS_WITH, ENDS_WITH, IN, NOT_IN, IS_NULL, IS_NOT_NULL}
)

_ALIASES = {"!=": NE}


def normalize_operator(operator: str | None) -> str:
    """Canonical operator spelling: upper case, single spaces, aliases resolved."""
    if operator is None:
        return EQ
    op = " ".join(str(operator).split()).upper()
    return _ALIASES.get(op, op)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, set, dict)):
        return len(value) == 0
    return False


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _loose_equals(actual: Any, expected: Any, case_sensitive: bool = False) -> bool:
    if isinstance(actual, str) and isinstance(expected, str):
        if case_sensitive:
            return actual == expected
        return actual.casefold() == expected.casefold()
    if isinstance(actual, str) != isinstance(expected, str):
        a, b = _as_number(actual), _as_number(expected)
        if a is not None and b is not None:
            return a == b
    return actual == expected


def _compare(actual: Any, expected: Any, op: str) -> bool:
    try:
        if op == GT:
            return actual > expected
        if op == GE:
            return actual >= expected
        if op == LT:
            return actual < expected
        return actual <= expected
    except TypeError:
        a, b = _as_number(actual), _as_number(expected)
        if a is None or b is None:
            return False
        return _compare(a, b, op)


def _members(expected: Any) -> list[Any] | None:
    if isinstance(expected, (str, bytes)) or not isinstance(expected, Iterable):
        return None
    return list(expected)


def evaluate(
    actual: Any,
    expected: Any,
    operator: str | None = EQ,
    case_sensitive: bool = False,
) -> bool:
    """
    Evaluate "actual <operator> expected".

    Args:
        actual: Decrypted field value
        expected: Value from the query condition
        operator: One of SUPPORTED_OPERATORS (case-insensitive, "!=" accepted)
        case_sensitive: Compare strings exactly for =, <>, IN and NOT IN

    Returns:
        True if the condition holds. Never raises.
    """
    op = normalize_operator(operator)

    if op not in SUPPORTED_OPERATORS:
        logger.warning("unsupported_query_operator", operator=str(operator))
        return False

    if is_empty(actual):
        return op in (IS_NULL, NE)

    if op == IS_NULL:
        return False
    if op == IS_NOT_NULL:
        return True

    if op == EQ:
        return _loose_equals(actual, expected, case_sensitive)
    if op == NE:
        return not _loose_equals(actual, expected, case_sensitive)
    if op in (GT, GE, LT, LE):
        return _compare(actual, expected, op)

    if op in (CONTAINS, STARTS_WITH, ENDS_WITH):
        if not isinstance(actual, str) or not isinstance(expected, str):
            return False
        haystack, needle = actual.casefold(), expected.casefold()
        if op == CONTAINS:
            return needle in haystack
        if op == STARTS_WITH:
            return haystack.startswith(needle)
        return haystack.endswith(needle)

    members = _members(expected)
    if members is None:
        return False
    found = any(_loose_equals(actual, member, case_sensitive) for member in members)
    return found if op == IN else not found


__all__ = [
    "CONTAINS",
    "ENDS_WITH",
    "EQ",
    "GE",
    "GT",
    "IN",
    "IS_NOT_NULL",
    "IS_NULL",
    "LE",
    "LT",
    "NE",
    "NOT_IN",
    "STARTS_WITH",
    "SUPPORTED_OPERATORS",
    "evaluate",
    "is_empty",
    "normalize_operator",
]
