"""
Condition trees for record queries.

A ConditionGroup is an ordered list of leaves (Condition) and nested
groups, joined by AND or OR. Trees are built by the caller, consumed once
by a query's execute(), and never persisted.

Usage:
    group = ConditionGroup("OR")
    group.condition("email", "@example.com", "ENDS_WITH")
    group.condition("name", "Bob")
    query.condition(group)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Union

from confidential_data.lib.exceptions import InvalidConditionError
from confidential_data.query.operators import EQ, IN, IS_NOT_NULL, IS_NULL, normalize_operator

AND = "AND"
OR = "OR"


@dataclass(frozen=True)
class Condition:
    """Leaf condition {field, operator, value}."""

    field: str
    value: Any
    operator: str = EQ


ConditionItem = Union[Condition, "ConditionGroup"]


class ConditionGroup:
    """Ordered conditions joined by a conjunction."""

    def __init__(self, conjunction: str = AND) -> None:
        conjunction = conjunction.upper()
        if conjunction not in (AND, OR):
            raise InvalidConditionError(f"Unknown conjunction '{conjunction}'")
        self.conjunction = conjunction
        self._items: list[ConditionItem] = []

    def __iter__(self) -> Iterator[ConditionItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"<ConditionGroup({self.conjunction}, {self._items!r})>"

    @property
    def items(self) -> list[ConditionItem]:
        return list(self._items)

    def condition(
        self,
        field: str | ConditionGroup,
        value: Any = None,
        operator: str | None = None,
    ) -> ConditionGroup:
        """
        Add a condition, or a nested group when `field` is a ConditionGroup.

        The operator defaults to "=" for scalar values and "IN" for lists,
        tuples and sets.
        """
        if isinstance(field, ConditionGroup):
            self._items.append(field)
            return self
        if not field:
            raise InvalidConditionError("Condition field must not be empty")
        if operator is None:
            operator = IN if isinstance(value, (list, tuple, set, frozenset)) else EQ
        self._items.append(Condition(field, value, normalize_operator(operator)))
        return self

    def exists(self, field: str) -> ConditionGroup:
        return self.condition(field, None, IS_NOT_NULL)

    def not_exists(self, field: str) -> ConditionGroup:
        return self.condition(field, None, IS_NULL)

    def add(self, item: ConditionItem) -> None:
        self._items.append(item)

    def leaves(self) -> Iterator[Condition]:
        """All leaf conditions, depth first."""
        for item in self._items:
            if isinstance(item, ConditionGroup):
                yield from item.leaves()
            else:
                yield item

    def any_leaf(self, predicate: Callable[[Condition], bool]) -> bool:
        return any(predicate(leaf) for leaf in self.leaves())

    def copy(self) -> ConditionGroup:
        clone = ConditionGroup(self.conjunction)
        for item in self._items:
            clone.add(item.copy() if isinstance(item, ConditionGroup) else item)
        return clone


__all__ = ["AND", "OR", "Condition", "ConditionGroup", "ConditionItem"]
