"""
Native record query.

Translates a condition tree into a SQLAlchemy SELECT over the
user_confidential_data table and returns matching record ids. Every
predicate is pushed down to the database, which only sees stored values:
for encrypted columns that is ciphertext, so callers filter encrypted
fields through EncryptedAwareQuery instead.

Usage:
    query = SqlRecordQuery(session)
    ids = (
        query.condition("status", 1)
        .condition("bundle", ["login", "card"])
        .sort("created", "DESC")
        .range(0, 50)
        .access_check(False)
        .execute()
    )
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, and_, false, func, or_, select, true
from sqlalchemy.orm import Session as DbSession
from sqlalchemy.sql.elements import ColumnElement

from confidential_data.lib.access import AccountContext, Permission
from confidential_data.lib.exceptions import InvalidConditionError
from confidential_data.models.confidential_data import ConfidentialDataRow, column_for_field
from confidential_data.query import operators as ops
from confidential_data.query.conditions import AND, Condition, ConditionGroup


class SqlRecordQuery:
    """
    Condition-tree query executed entirely in the database.

    Args:
        session: SQLAlchemy session
        account: Account used when access checking is on
        conjunction: Conjunction of the root condition group
    """

    def __init__(
        self,
        session: DbSession,
        account: AccountContext | None = None,
        conjunction: str = AND,
    ) -> None:
        self._session = session
        self.account = account
        self.condition_group = ConditionGroup(conjunction)
        self._access_check = True
        self._sorts: list[tuple[str, str]] = []
        self._range: tuple[int, int | None] | None = None

    # -------------------------------------------------------------------------
    # Builder surface
    # -------------------------------------------------------------------------

    def condition(
        self,
        field: str | ConditionGroup,
        value: Any = None,
        operator: str | None = None,
    ) -> SqlRecordQuery:
        self.condition_group.condition(field, value, operator)
        return self

    def exists(self, field: str) -> SqlRecordQuery:
        self.condition_group.exists(field)
        return self

    def not_exists(self, field: str) -> SqlRecordQuery:
        self.condition_group.not_exists(field)
        return self

    def and_condition_group(self) -> ConditionGroup:
        return ConditionGroup(AND)

    def or_condition_group(self) -> ConditionGroup:
        return ConditionGroup("OR")

    def access_check(self, access_check: bool = True) -> SqlRecordQuery:
        self._access_check = bool(access_check)
        return self

    @property
    def is_access_checked(self) -> bool:
        return self._access_check

    def sort(self, field: str, direction: str = "ASC") -> SqlRecordQuery:
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise InvalidConditionError(f"Unknown sort direction '{direction}'")
        column_for_field(field)
        self._sorts.append((field, direction))
        return self

    def range(self, start: int | None = None, length: int | None = None) -> SqlRecordQuery:
        """Limit the result to `length` ids starting at `start`; no args clears it."""
        if start is None and length is None:
            self._range = None
        else:
            self._range = (start or 0, length)
        return self

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(self) -> list[int]:
        """Return the ids of matching records."""
        stmt = self._select(self.condition_group, apply_range=True)
        return list(self._session.scalars(stmt).all())

    def count(self) -> int:
        """Return the number of matching records (range is ignored)."""
        subquery = self._select(self.condition_group, apply_range=False).subquery()
        stmt = select(func.count()).select_from(subquery)
        return int(self._session.scalar(stmt) or 0)

    def _select(self, group: ConditionGroup, apply_range: bool) -> Select:
        stmt = select(ConfidentialDataRow.id).where(self._group_clause(group))

        access_clause = self._access_clause()
        if access_clause is not None:
            stmt = stmt.where(access_clause)

        for field, direction in self._sorts:
            column = column_for_field(field)
            stmt = stmt.order_by(column.desc() if direction == "DESC" else column.asc())
        stmt = stmt.order_by(ConfidentialDataRow.id.asc())

        if apply_range and self._range is not None:
            start, length = self._range
            stmt = stmt.offset(start)
            if length is not None:
                stmt = stmt.limit(length)
        return stmt

    def _access_clause(self) -> ColumnElement[bool] | None:
        if not self._access_check or self.account is None:
            return None
        if self.account.bypasses_owner_checks():
            return None
        if not self.account.has_permission(Permission.VIEW_OWN):
            return false()
        return ConfidentialDataRow.user_id == self.account.id

    def _group_clause(self, group: ConditionGroup) -> ColumnElement[bool]:
        clauses = [
            self._group_clause(item) if isinstance(item, ConditionGroup) else self._leaf_clause(item)
            for item in group
        ]
        if not clauses:
            return true()
        return and_(*clauses) if group.conjunction == AND else or_(*clauses)

    @staticmethod
    def _leaf_clause(condition: Condition) -> ColumnElement[bool]:
        column = column_for_field(condition.field)
        op = ops.normalize_operator(condition.operator)
        value = condition.value

        if op == ops.EQ:
            return column == value
        if op == ops.NE:
            return or_(column != value, column.is_(None))
        if op == ops.GT:
            return column > value
        if op == ops.GE:
            return column >= value
        if op == ops.LT:
            return column < value
        if op == ops.LE:
            return column <= value
        if op == ops.CONTAINS:
            return column.contains(value, autoescape=True)
        if op == ops.STARTS_WITH:
            return column.startswith(value, autoescape=True)
        if op == ops.ENDS_WITH:
            return column.endswith(value, autoescape=True)
        if op == ops.IN:
            return column.in_(list(value))
        if op == ops.NOT_IN:
            return column.not_in(list(value))
        if op == ops.IS_NULL:
            return column.is_(None)
        if op == ops.IS_NOT_NULL:
            return column.is_not(None)
        raise InvalidConditionError(f"Unsupported operator '{condition.operator}'")


__all__ = ["SqlRecordQuery"]
