from __future__ import annotations

from dataclasses import dataclass


@dataclass
class InventoryError(Exception):
    code: str
    detail: str

    def __str__(self) -> str:
        return self.detail


class SerialRangeError(InventoryError):
    def __init__(self, detail: str) -> None:
        super().__init__(code="range_too_large", detail=detail)


NOT_FOUND_CODES = {"item_not_found", "transaction_not_found"}
CONFLICT_CODES = {"duplicate_code", "duplicate_serial", "insufficient_stock"}
