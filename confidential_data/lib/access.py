"""
Owner-based access control for Confidential Data.

Records are private to their owner. Accounts see, edit and delete their
own records through the "own" permissions; administrators (account id 1,
or the administer permission) bypass owner checks.

Used by RecordStorage for create/update/delete checks and by the query
engine when access checking is enabled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from confidential_data.lib.exceptions import AccessDeniedError
from confidential_data.models.record import Record

logger = structlog.get_logger(__name__)

SUPERUSER_ID = 1


class Permission(Enum):
    """Permissions that can be granted to an account."""

    ADMINISTER = "administer user confidential data"
    CREATE = "create user confidential data"
    VIEW_OWN = "view own user confidential data"
    EDIT_OWN = "edit own user confidential data"
    DELETE_OWN = "delete own user confidential data"

    def __str__(self) -> str:
        return self.value


class Operation(Enum):
    """Record operations subject to access checks."""

    VIEW = "view"
    UPDATE = "update"
    DELETE = "delete"


_OWN_PERMISSION: dict[Operation, Permission] = {
    Operation.VIEW: Permission.VIEW_OWN,
    Operation.UPDATE: Permission.EDIT_OWN,
    Operation.DELETE: Permission.DELETE_OWN,
}

# Regular owners get these by default
OWNER_PERMISSIONS = frozenset(
    {
        Permission.CREATE,
        Permission.VIEW_OWN,
        Permission.EDIT_OWN,
        Permission.DELETE_OWN,
    }
)


@dataclass(frozen=True)
class AccountContext:
    """The account a request runs as."""

    id: int
    permissions: frozenset[Permission] = field(default=OWNER_PERMISSIONS)

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.permissions

    def bypasses_owner_checks(self) -> bool:
        return self.id == SUPERUSER_ID or self.has_permission(Permission.ADMINISTER)


def check_access(
    record: Record,
    operation: Operation | str,
    account: AccountContext,
) -> bool:
    """
    Check whether an account may perform an operation on a record.

    Args:
        record: The record
        operation: view, update or delete
        account: The acting account

    Returns:
        True if allowed
    """
    operation = Operation(operation)
    if account.bypasses_owner_checks():
        return True

    if not account.has_permission(_OWN_PERMISSION[operation]):
        return False
    return record.user_id is not None and record.user_id == account.id


def check_create_access(account: AccountContext) -> bool:
    """Check whether an account may create records."""
    return account.bypasses_owner_checks() or account.has_permission(Permission.CREATE)


def require_access(
    record: Record,
    operation: Operation | str,
    account: AccountContext,
) -> None:
    """
    Raise if the account may not perform the operation.

    Raises:
        AccessDeniedError: If access is denied
    """
    if not check_access(record, operation, account):
        logger.warning(
            "record_access_denied",
            operation=Operation(operation).value,
            record_id=record.id,
            account_id=account.id,
        )
        raise AccessDeniedError(
            f"Account {account.id} may not {Operation(operation).value} record {record.id}"
        )


__all__ = [
    "AccountContext",
    "OWNER_PERMISSIONS",
    "Operation",
    "Permission",
    "SUPERUSER_ID",
    "check_access",
    "check_create_access",
    "require_access",
]
