from __future__ import annotations

import csv
import io
import json
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote

from fastapi.responses import Response
from pydantic import ValidationError

from .errors import InventoryError
from .ledger import item_stock
from .schemas import Item, ItemType, Transaction, TransactionType

BACKUP_VERSION = "2.0"
CSV_BOM = "\ufeff"
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"

ITEM_LIST_HEADERS = {
    ItemType.PART: ["Code", "Name", "Drawing No.", "Stock"],
    ItemType.PRODUCT: ["Code", "Name", "Stock"],
}

HISTORY_HEADERS = {
    ItemType.PART: ["Date", "Time", "Type", "Quantity", "Model", "Remarks"],
    ItemType.PRODUCT: [
        "Date",
        "Time",
        "Type",
        "Quantity",
        "User ID",
        "Serial No.",
        "Customer",
        "Phone",
        "Address",
        "Remarks",
    ],
}

TRANSACTION_LABELS = {
    TransactionType.PURCHASE: "Purchase",
    TransactionType.RELEASE: "Release",
}


def _today(today: Optional[date] = None) -> str:
    return (today or datetime.now(timezone.utc).date()).isoformat()


def _render_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    buffer.write(CSV_BOM)
    buffer.write(",".join(headers) + "\r\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    for row in rows:
        writer.writerow(["" if value is None else str(value) for value in row])
    return buffer.getvalue()


def _split_timestamp(value: str) -> Tuple[str, str]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return value or "", ""
    return parsed.date().isoformat(), parsed.strftime("%H:%M:%S")


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def item_list_csv(items: Iterable[Item], item_type: ItemType) -> str:
    if item_type == ItemType.PART:
        rows = ([item.code, item.name, item.drawingNumber, item_stock(item)] for item in items)
    else:
        rows = ([item.code, item.name, item_stock(item)] for item in items)
    return _render_csv(ITEM_LIST_HEADERS[item_type], rows)


def _history_row(item_type: ItemType, transaction: Transaction) -> List[Any]:
    day, clock = _split_timestamp(transaction.date)
    row: List[Any] = [day, clock, TRANSACTION_LABELS[transaction.type], transaction.quantity]
    if item_type == ItemType.PART:
        row.extend([transaction.modelName or "", transaction.remarks or ""])
    else:
        row.extend(
            [
                transaction.userId or "",
                transaction.serialNumber or "",
                transaction.customerName or "",
                transaction.phoneNumber or "",
                transaction.address or "",
                transaction.remarks or "",
            ]
        )
    return row


def history_csv(item: Item, history: Sequence[Transaction]) -> str:
    """History rows in the order given; callers pass the filtered, newest-first view."""
    if not item.transactions:
        raise InventoryError(code="empty_history", detail="This item has no transactions to export.")
    return _render_csv(HISTORY_HEADERS[item.type], (_history_row(item.type, t) for t in history))


def item_list_filename(item_type: ItemType, today: Optional[date] = None) -> str:
    label = "parts" if item_type == ItemType.PART else "products"
    return f"{label}_stock_{_today(today)}.csv"


def history_filename(item: Item, today: Optional[date] = None) -> str:
    return f"{item.name}_history_{_today(today)}.csv"


def csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": _attachment(filename)},
    )


def _attachment(filename: str) -> str:
    ascii_name = filename.encode("ascii", "ignore").decode("ascii") or "export"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


# ---------------------------------------------------------------------------
# JSON BACKUP
# ---------------------------------------------------------------------------


def build_backup(items: Iterable[Item], *, exported_at: Optional[datetime] = None) -> dict:
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "items": [item.model_dump(mode="json", exclude_none=True) for item in items],
        "exportDate": exported_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "version": BACKUP_VERSION,
    }


def backup_filename(today: Optional[date] = None) -> str:
    return f"INVENTORY_BACKUP_{_today(today)}.json"


def backup_response(document: dict, filename: str) -> Response:
    return Response(
        content=json.dumps(document, ensure_ascii=False, indent=2).encode("utf-8"),
        media_type="application/json",
        headers={"Content-Disposition": _attachment(filename)},
    )


def parse_backup(raw: bytes) -> Tuple[List[Item], Optional[str]]:
    """Items and version of a backup file. Raises `invalid_backup` on any malformed input."""
    try:
        document = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise InventoryError(code="invalid_backup", detail="The file could not be read as JSON.") from exc

    if not isinstance(document, dict) or not isinstance(document.get("items"), list):
        raise InventoryError(code="invalid_backup", detail="Not a valid backup file.")

    try:
        items = [Item.model_validate(raw_item) for raw_item in document["items"]]
    except ValidationError as exc:
        raise InventoryError(code="invalid_backup", detail="Backup contains malformed items.") from exc

    version = document.get("version")
    return items, str(version) if version is not None else None
