"""
Encrypted-aware record query.

Drop-in replacement for SqlRecordQuery that can filter on encrypted
fields. The database only holds ciphertext for those fields, so they are
evaluated in-process on decrypted records:

1. Partition the condition tree. Conditions on non-encrypted fields form
   the clean tree, which is pushed down to the database. Conditions on
   encrypted fields form the residual tree.
2. If there is no residual tree, execute the query natively.
3. Otherwise execute the clean tree, load the candidate records (which
   storage decrypts), and keep the candidates matching the residual tree.

Partition rules:
- In an AND context, plain leaves go to the clean tree and encrypted leaves
  to the residual tree.
- A group without encrypted leaves is pushed down intact.
- An OR group containing encrypted leaves cannot be split without changing
  its meaning, so it is left out of the clean tree (widening the candidate
  set) and evaluated whole, in its original shape, in-process.

Cost: queries whose only selective predicates are on encrypted fields
decrypt every record visible to the clean query. The candidate cap
(max_candidates) turns an unbounded scan into CandidateLimitExceeded.
Sorting by an encrypted field is not supported and is ignored.

In-process evaluation fails closed on fields that could not be decrypted.
Plain fields evaluated in-process (inside a mixed OR group) compare
timestamps in UTC and test equality case-sensitively, like the SQL path.
Substring operators stay case-insensitive in-process.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.orm import Session as DbSession

from confidential_data.lib.access import AccountContext
from confidential_data.lib.config import DEFAULT_MAX_CANDIDATES
from confidential_data.lib.exceptions import CandidateLimitExceeded
from confidential_data.lib.field_registry import EncryptedFieldRegistry
from confidential_data.models.record import LinkValue, Record
from confidential_data.query import operators as ops
from confidential_data.query.conditions import AND, Condition, ConditionGroup
from confidential_data.query.sql import SqlRecordQuery

if TYPE_CHECKING:
    from confidential_data.storage.record_storage import RecordStorage

logger = structlog.get_logger(__name__)


class EncryptedAwareQuery(SqlRecordQuery):
    """
    Record query supporting conditions on encrypted fields.

    Args:
        session: SQLAlchemy session
        storage: Storage used to load (and decrypt) candidate records
        registry: Encrypted Field Set
        account: Account used when access checking is on
        max_candidates: Cap on the candidate set decrypted in-process
        conjunction: Conjunction of the root condition group
    """

    def __init__(
        self,
        session: DbSession,
        storage: RecordStorage,
        registry: EncryptedFieldRegistry | None = None,
        account: AccountContext | None = None,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
        conjunction: str = AND,
    ) -> None:
        super().__init__(session, account=account, conjunction=conjunction)
        self._storage = storage
        self.registry = registry or EncryptedFieldRegistry()
        self._max_candidates = max_candidates

    def candidate_limit(self, limit: int) -> EncryptedAwareQuery:
        """Override the candidate cap for this query."""
        if limit < 1:
            raise ValueError("candidate limit must be positive")
        self._max_candidates = limit
        return self

    def sort(self, field: str, direction: str = "ASC") -> EncryptedAwareQuery:
        if self.registry.is_encrypted_field(field):
            logger.warning("encrypted_field_sort_ignored", field=field)
            return self
        super().sort(field, direction)
        return self

    # -------------------------------------------------------------------------
    # Partition
    # -------------------------------------------------------------------------

    def _is_encrypted(self, condition: Condition) -> bool:
        return self.registry.is_encrypted_field(condition.field)

    def encrypted_conditions(self) -> list[Condition]:
        """Flat list of all conditions on encrypted fields."""
        return [leaf for leaf in self.condition_group.leaves() if self._is_encrypted(leaf)]

    def partition(self) -> tuple[ConditionGroup, ConditionGroup]:
        """
        Split the condition tree.

        Returns:
            (clean, residual): clean holds what the database can evaluate,
            residual what must be evaluated in-process. Both are AND groups.
        """
        clean = ConditionGroup(AND)
        residual = ConditionGroup(AND)
        self._partition_group(self.condition_group, clean, residual)
        return clean, residual

    def _partition_group(
        self,
        group: ConditionGroup,
        clean: ConditionGroup,
        residual: ConditionGroup,
    ) -> None:
        if group.conjunction != AND:
            if group.any_leaf(self._is_encrypted):
                residual.add(group.copy())
            else:
                clean.add(group.copy())
            return

        for item in group:
            if isinstance(item, ConditionGroup):
                self._partition_group(item, clean, residual)
            elif self._is_encrypted(item):
                residual.add(item)
            else:
                clean.add(item)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(self) -> list[int]:
        """Return the ids of matching records, in clean-query order."""
        if not self.condition_group.any_leaf(self._is_encrypted):
            return super().execute()
        return self._execute_filtered()

    def count(self) -> int:
        if not self.condition_group.any_leaf(self._is_encrypted):
            return super().count()
        saved_range = self._range
        self._range = None
        try:
            return len(self._execute_filtered())
        finally:
            self._range = saved_range

    def _clean_query(self, clean: ConditionGroup) -> SqlRecordQuery:
        query = SqlRecordQuery(self._session, account=self.account)
        query.access_check(self.is_access_checked)
        query.condition_group = clean
        for field, direction in self._sorts:
            query.sort(field, direction)
        return query

    def _execute_filtered(self) -> list[int]:
        clean, residual = self.partition()

        candidate_ids = self._clean_query(clean).execute()
        if not candidate_ids:
            return []

        if len(candidate_ids) > self._max_candidates:
            logger.warning(
                "encrypted_query_candidate_limit",
                candidates=len(candidate_ids),
                limit=self._max_candidates,
            )
            raise CandidateLimitExceeded(len(candidate_ids), self._max_candidates)

        matched = self._filter_candidates(candidate_ids, residual)
        logger.debug(
            "encrypted_query_filtered",
            candidates=len(candidate_ids),
            matched=len(matched),
            encrypted_conditions=len(self.encrypted_conditions()),
        )

        if self._range is not None:
            start, length = self._range
            end = None if length is None else start + length
            matched = matched[start:end]
        return matched

    def _filter_candidates(self, candidate_ids: list[int], residual: ConditionGroup) -> list[int]:
        records = self._storage.load_multiple(candidate_ids)
        return [
            record_id
            for record_id in candidate_ids
            if record_id in records and matches_group(records[record_id], residual, self.registry)
        ]


# =============================================================================
# In-process evaluation
# =============================================================================


def _as_utc(value: Any) -> Any:
    # SQLite hands back naive datetimes for timezone-aware columns
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return value


def field_value(record: Record, field: str) -> Any:
    """Value a condition on `field` compares against; bare "link" means its uri."""
    value = record.get(field)
    if isinstance(value, LinkValue):
        return value.uri
    return _as_utc(value)


def matches_condition(
    record: Record,
    condition: Condition,
    registry: EncryptedFieldRegistry | None = None,
) -> bool:
    """
    Evaluate one condition against a loaded record.

    A field that failed to decrypt never matches, whatever the operator.
    With a registry, conditions on plain fields compare equality
    case-sensitively, as the database does.
    """
    if not record.has_field(condition.field):
        return False
    if record.is_undecrypted(condition.field):
        return False
    plain = registry is not None and not registry.is_encrypted_field(condition.field)
    return ops.evaluate(
        field_value(record, condition.field),
        _as_utc(condition.value),
        condition.operator,
        case_sensitive=plain,
    )


def matches_group(
    record: Record,
    group: ConditionGroup,
    registry: EncryptedFieldRegistry | None = None,
) -> bool:
    """Evaluate a condition tree against a decrypted record."""
    results = (
        matches_group(record, item, registry)
        if isinstance(item, ConditionGroup)
        else matches_condition(record, item, registry)
        for item in group
    )
    if group.conjunction == AND:
        return all(results)
    return any(results)


__all__ = ["EncryptedAwareQuery", "field_value", "matches_condition", "matches_group"]
