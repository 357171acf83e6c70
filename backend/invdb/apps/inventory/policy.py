"""
Role to operation mapping for the inventory.

Routers ask `is_allowed(role, operation)` instead of comparing secrets, so the
ledger and allocator code never sees how a caller was authenticated.
"""

from __future__ import annotations

import enum
from typing import Dict, FrozenSet

from .schemas import ItemType


class Role(str, enum.Enum):
    ADMIN = "admin"
    PRODUCT_ONLY = "product_only"


class Operation(str, enum.Enum):
    VIEW_PARTS = "view_parts"
    VIEW_PRODUCTS = "view_products"
    CREATE_ITEM = "create_item"
    EDIT_ITEM = "edit_item"
    DELETE_ITEM = "delete_item"
    ADD_TRANSACTION = "add_transaction"
    EDIT_TRANSACTION = "edit_transaction"
    DELETE_TRANSACTION = "delete_transaction"
    EXPORT = "export"
    IMPORT_BACKUP = "import_backup"
    SYNC = "sync"


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Operation]] = {
    Role.ADMIN: frozenset(Operation),
    Role.PRODUCT_ONLY: frozenset(Operation) - {Operation.VIEW_PARTS, Operation.DELETE_TRANSACTION},
}

ITEM_TYPE_ACCESS: Dict[ItemType, Operation] = {
    ItemType.PART: Operation.VIEW_PARTS,
    ItemType.PRODUCT: Operation.VIEW_PRODUCTS,
}


def is_allowed(role: Role, operation: Operation) -> bool:
    return operation in ROLE_PERMISSIONS.get(role, frozenset())


def can_access_item_type(role: Role, item_type: ItemType) -> bool:
    return is_allowed(role, ITEM_TYPE_ACCESS[item_type])


def permissions_for(role: Role) -> list[str]:
    return sorted(op.value for op in ROLE_PERMISSIONS.get(role, frozenset()))
