from __future__ import annotations

import enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ItemType(str, enum.Enum):
    PART = "part"
    PRODUCT = "product"


class TransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    RELEASE = "release"


def _upper(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip().upper()


# ---------------------------------------------------------------------------
# STORED RECORDS
# ---------------------------------------------------------------------------
# Field names follow the JSON documents written by the browser client so that
# remote records and backup files load unchanged.


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    type: TransactionType
    quantity: int
    date: str
    remarks: str = ""
    modelName: Optional[str] = None
    serialNumber: Optional[str] = None
    customerName: Optional[str] = None
    address: Optional[str] = None
    phoneNumber: Optional[str] = None
    userId: Optional[str] = None


class Item(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    type: ItemType
    registrationDate: str = ""
    code: str
    name: str
    spec: str = ""
    modelName: str = ""
    drawingNumber: str = ""
    application: str = ""
    remarks: str = ""
    transactions: Tuple[Transaction, ...] = ()


# ---------------------------------------------------------------------------
# REQUEST PAYLOADS
# ---------------------------------------------------------------------------


class ItemCreate(BaseModel):
    type: ItemType = ItemType.PART
    registrationDate: Optional[str] = None
    code: str = ""
    name: str = ""
    spec: str = ""
    modelName: str = ""
    drawingNumber: str = ""
    application: str = ""
    remarks: str = ""
    initialQuantity: int = Field(0, ge=0)

    @field_validator("code", "name")
    @classmethod
    def _uppercase(cls, value: str) -> str:
        return _upper(value) or ""


class ItemUpdate(BaseModel):
    registrationDate: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    spec: Optional[str] = None
    modelName: Optional[str] = None
    drawingNumber: Optional[str] = None
    application: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("code", "name")
    @classmethod
    def _uppercase(cls, value: Optional[str]) -> Optional[str]:
        return _upper(value)


class TransactionCreate(BaseModel):
    type: TransactionType = TransactionType.PURCHASE
    quantity: Optional[int] = None
    date: Optional[str] = None
    remarks: str = ""
    modelName: str = ""
    serialNumber: str = ""
    customerName: str = ""
    address: str = ""
    phoneNumber: str = ""
    userId: str = ""

    @field_validator("serialNumber")
    @classmethod
    def _uppercase(cls, value: str) -> str:
        return _upper(value) or ""


class TransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    quantity: Optional[int] = None
    date: Optional[str] = None
    remarks: Optional[str] = None
    modelName: Optional[str] = None
    serialNumber: Optional[str] = None
    customerName: Optional[str] = None
    address: Optional[str] = None
    phoneNumber: Optional[str] = None
    userId: Optional[str] = None

    @field_validator("serialNumber")
    @classmethod
    def _uppercase(cls, value: Optional[str]) -> Optional[str]:
        return _upper(value)


# ---------------------------------------------------------------------------
# RESPONSES
# ---------------------------------------------------------------------------


class ItemRead(Item):
    stock: int


class ItemSummary(BaseModel):
    id: str
    type: ItemType
    code: str
    name: str
    drawingNumber: str = ""
    stock: int


class InventoryStats(BaseModel):
    # None when the caller's role may not view that item type.
    partCount: Optional[int] = None
    productCount: Optional[int] = None


class SerialSuggestion(BaseModel):
    serialNumber: str


class SerialExpansion(BaseModel):
    serials: List[str]
    count: int


class CodeSuggestion(BaseModel):
    code: str


class BackupImportResult(BaseModel):
    imported: int
    version: Optional[str] = None
