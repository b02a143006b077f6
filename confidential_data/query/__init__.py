"""
Query package for Confidential Data.

- conditions.py: Condition trees (AND/OR groups of field conditions)
- operators.py: Operator set and in-process evaluation
- sql.py: Native query, every predicate pushed to the database
- encrypted.py: Query that filters encrypted fields on decrypted records
"""

from confidential_data.query.conditions import AND, OR, Condition, ConditionGroup
from confidential_data.query.encrypted import EncryptedAwareQuery
from confidential_data.query.sql import SqlRecordQuery

__all__ = [
    "AND",
    "OR",
    "Condition",
    "ConditionGroup",
    "EncryptedAwareQuery",
    "SqlRecordQuery",
]
