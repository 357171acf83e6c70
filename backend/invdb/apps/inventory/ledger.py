"""
Stock is never stored. It is the signed sum of an item's transactions,
recomputed on every read.
"""

from __future__ import annotations

from typing import Iterable

from .schemas import Item, Transaction, TransactionType


def signed_quantity(transaction: Transaction) -> int:
    if transaction.type == TransactionType.PURCHASE:
        return transaction.quantity
    return -transaction.quantity


def calculate_stock(transactions: Iterable[Transaction]) -> int:
    stock = 0
    for transaction in transactions:
        stock += signed_quantity(transaction)
    return stock


def item_stock(item: Item) -> int:
    return calculate_stock(item.transactions)
