from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import InventoryError
from .ledger import item_stock
from .schemas import (
    InventoryStats,
    Item,
    ItemCreate,
    ItemType,
    ItemUpdate,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)
from .serials import expand_serial_range, find_duplicate_serials, is_range_expression
from .store import InventoryStore, generate_id

logger = logging.getLogger(__name__)

INITIAL_QUANTITY_REMARK = "Initial quantity"
DUPLICATE_PREVIEW = 5


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


# ---------------------------------------------------------------------------
# QUERIES
# ---------------------------------------------------------------------------


def get_item(store: InventoryStore, item_id: str) -> Item:
    item = store.get(item_id)
    if item is None:
        raise InventoryError(code="item_not_found", detail=f"Item {item_id} not found.")
    return item


def _get_transaction(item: Item, transaction_id: str) -> Transaction:
    for transaction in item.transactions:
        if transaction.id == transaction_id:
            return transaction
    raise InventoryError(
        code="transaction_not_found",
        detail=f"Transaction {transaction_id} not found on item {item.id}.",
    )


def used_serials(store: InventoryStore) -> List[str]:
    """Every serial recorded anywhere in the store, upper-cased, first-seen order."""
    seen: Dict[str, None] = {}
    for item in store.items:
        for transaction in item.transactions:
            if transaction.serialNumber:
                seen.setdefault(transaction.serialNumber.upper(), None)
    return list(seen)


def is_code_taken(store: InventoryStore, code: str, *, exclude_item_id: Optional[str] = None) -> bool:
    wanted = _normalize_code(code)
    if not wanted:
        return False
    return any(
        item.code.upper() == wanted
        for item in store.items
        if item.id != exclude_item_id
    )


def filter_items(store: InventoryStore, item_type: ItemType, term: str = "") -> List[Item]:
    term = (term or "").strip().lower()
    matches = []
    for item in store.items:
        if item.type != item_type:
            continue
        if term in item.name.lower() or term in item.code.lower():
            matches.append(item)
            continue
        if item_type == ItemType.PRODUCT and any(
            term in (t.serialNumber or "").lower() for t in item.transactions if t.serialNumber
        ):
            matches.append(item)
    return matches


def filter_history(item: Item, term: str = "") -> List[Transaction]:
    """Newest first, optionally narrowed by serial, customer or remarks."""
    history = list(reversed(item.transactions))
    term = (term or "").strip().lower()
    if not term:
        return history
    return [
        t
        for t in history
        if term in (t.serialNumber or "").lower()
        or term in (t.customerName or "").lower()
        or term in (t.remarks or "").lower()
    ]


def stats(store: InventoryStore) -> InventoryStats:
    return InventoryStats(
        partCount=sum(1 for item in store.items if item.type == ItemType.PART),
        productCount=sum(1 for item in store.items if item.type == ItemType.PRODUCT),
    )


# ---------------------------------------------------------------------------
# ITEM MUTATIONS
# ---------------------------------------------------------------------------


def _validate_item_fields(store: InventoryStore, *, code: str, name: str, exclude_item_id: Optional[str]) -> None:
    if not code or not name:
        raise InventoryError(code="missing_field", detail="Name and code are required.")
    if is_code_taken(store, code, exclude_item_id=exclude_item_id):
        raise InventoryError(code="duplicate_code", detail=f"Code {code} is already in use.")


def add_item(store: InventoryStore, payload: ItemCreate) -> Tuple[InventoryStore, Item]:
    code = _normalize_code(payload.code)
    name = (payload.name or "").strip()
    _validate_item_fields(store, code=code, name=name, exclude_item_id=None)

    transactions: Tuple[Transaction, ...] = ()
    if payload.initialQuantity > 0:
        transactions = (
            Transaction(
                id=generate_id("t", store.transaction_ids()),
                type=TransactionType.PURCHASE,
                quantity=payload.initialQuantity,
                date=_now_iso(),
                remarks=INITIAL_QUANTITY_REMARK,
            ),
        )

    item = Item(
        id=generate_id("item", store.item_ids()),
        type=payload.type,
        registrationDate=payload.registrationDate or date.today().isoformat(),
        code=code,
        name=name,
        spec=payload.spec,
        modelName=payload.modelName,
        drawingNumber=payload.drawingNumber,
        application=payload.application,
        remarks=payload.remarks,
        transactions=transactions,
    )
    return store.replace_items((item, *store.items)), item


def update_item(store: InventoryStore, item_id: str, changes: ItemUpdate) -> Tuple[InventoryStore, Item]:
    item = get_item(store, item_id)
    update = changes.model_dump(exclude_unset=True)
    if "code" in update:
        update["code"] = _normalize_code(update["code"])
    if "name" in update:
        update["name"] = (update["name"] or "").strip()
    # Explicit nulls on plain text fields clear them.
    update = {key: ("" if value is None else value) for key, value in update.items()}

    merged = item.model_copy(update=update)
    _validate_item_fields(store, code=merged.code, name=merged.name, exclude_item_id=item.id)

    items = tuple(merged if existing.id == item.id else existing for existing in store.items)
    return store.replace_items(items), merged


def delete_item(store: InventoryStore, item_id: str) -> InventoryStore:
    item = get_item(store, item_id)
    return store.replace_items(existing for existing in store.items if existing.id != item.id)


def replace_all(store: InventoryStore, items: Iterable[Item]) -> InventoryStore:
    """Swap the whole collection, as a backup restore or a remote load does."""
    new_store = store.replace_items(items)
    logger.info("inventory collection replaced", extra={"item_count": len(new_store.items), "version": new_store.version})
    return new_store


# ---------------------------------------------------------------------------
# TRANSACTION MUTATIONS
# ---------------------------------------------------------------------------


def _with_transactions(store: InventoryStore, item: Item, transactions: Iterable[Transaction]) -> Tuple[InventoryStore, Item]:
    updated = item.model_copy(update={"transactions": tuple(transactions)})
    items = tuple(updated if existing.id == item.id else existing for existing in store.items)
    return store.replace_items(items), updated


def resolve_target_serials(item: Item, serial_input: str) -> Tuple[List[str], bool]:
    """Serials a new transaction would record, and whether they came from a range."""
    serial_input = (serial_input or "").strip().upper()
    if item.type == ItemType.PRODUCT and is_range_expression(serial_input):
        return expand_serial_range(serial_input), True
    return [serial_input], False


def add_transaction(
    store: InventoryStore,
    item_id: str,
    payload: TransactionCreate,
) -> Tuple[InventoryStore, List[Transaction]]:
    """
    Record a purchase or release against an item.

    A serial range on a product item records one transaction of quantity 1
    per serial. All checks run before anything is recorded.
    """
    item = get_item(store, item_id)
    is_product = item.type == ItemType.PRODUCT
    targets, is_range = resolve_target_serials(item, payload.serialNumber)

    if is_product:
        duplicates = find_duplicate_serials(targets, used_serials(store))
        if duplicates:
            preview = ", ".join(duplicates[:DUPLICATE_PREVIEW])
            raise InventoryError(code="duplicate_serial", detail=f"Serial numbers already in use: {preview}")

    count = len(targets) if is_range else (payload.quantity or 0)
    if count <= 0:
        raise InventoryError(code="invalid_quantity", detail="Quantity must be a positive number.")

    current_stock = item_stock(item)
    if payload.type == TransactionType.RELEASE and count > current_stock:
        raise InventoryError(
            code="insufficient_stock",
            detail=f"Cannot release {count}; only {current_stock} in stock.",
        )

    occurred_at = payload.date or _now_iso()
    taken = store.transaction_ids()
    created: List[Transaction] = []

    if is_range:
        for serial in targets:
            transaction_id = generate_id("t", taken)
            taken.add(transaction_id)
            created.append(
                Transaction(
                    id=transaction_id,
                    type=payload.type,
                    quantity=1,
                    date=occurred_at,
                    remarks=payload.remarks,
                    modelName=payload.modelName,
                    userId=payload.userId,
                    serialNumber=serial,
                    customerName=payload.customerName,
                    address=payload.address,
                    phoneNumber=payload.phoneNumber,
                )
            )
    else:
        created.append(
            Transaction(
                id=generate_id("t", taken),
                type=payload.type,
                quantity=count,
                date=occurred_at,
                remarks=payload.remarks,
                modelName=payload.modelName,
                userId=payload.userId,
                serialNumber=targets[0] if is_product else "",
                customerName=payload.customerName if is_product else "",
                address=payload.address if is_product else "",
                phoneNumber=payload.phoneNumber if is_product else "",
            )
        )

    new_store, _ = _with_transactions(store, item, (*item.transactions, *created))
    logger.info(
        "transactions recorded",
        extra={"item_id": item.id, "transaction_type": payload.type.value, "count": len(created)},
    )
    return new_store, created


def update_transaction(
    store: InventoryStore,
    item_id: str,
    transaction_id: str,
    changes: TransactionUpdate,
) -> Tuple[InventoryStore, Transaction]:
    item = get_item(store, item_id)
    transaction = _get_transaction(item, transaction_id)
    update = changes.model_dump(exclude_unset=True)
    if "quantity" in update and (update["quantity"] is None or update["quantity"] <= 0):
        raise InventoryError(code="invalid_quantity", detail="Quantity must be a positive number.")
    if "type" in update and update["type"] is None:
        update.pop("type")

    merged = transaction.model_copy(update=update)
    new_store, _ = _with_transactions(
        store,
        item,
        (merged if t.id == transaction.id else t for t in item.transactions),
    )
    return new_store, merged


def delete_transaction(store: InventoryStore, item_id: str, transaction_id: str) -> InventoryStore:
    item = get_item(store, item_id)
    transaction = _get_transaction(item, transaction_id)
    new_store, _ = _with_transactions(
        store,
        item,
        (t for t in item.transactions if t.id != transaction.id),
    )
    return new_store
