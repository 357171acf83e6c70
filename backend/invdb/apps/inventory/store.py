from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from .schemas import Item


def generate_id(prefix: str, taken: Optional[Set[str]] = None) -> str:
    """`<prefix>-<epoch millis>-<0..999>`, re-drawn until it is not in `taken`."""
    taken = taken or set()
    while True:
        candidate = f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 999)}"
        if candidate not in taken:
            return candidate


@dataclass(frozen=True)
class InventoryStore:
    """
    Immutable snapshot of the inventory.

    Mutations never edit a snapshot; they build a new one with `replace_items`,
    which bumps `version`.
    """

    items: Tuple[Item, ...] = ()
    version: int = 0

    @classmethod
    def from_items(cls, items: Iterable[Item], version: int = 0) -> "InventoryStore":
        return cls(items=tuple(items), version=version)

    def replace_items(self, items: Iterable[Item]) -> "InventoryStore":
        return InventoryStore(items=tuple(items), version=self.version + 1)

    def get(self, item_id: str) -> Optional[Item]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def codes(self) -> List[str]:
        return [item.code for item in self.items]

    def item_ids(self) -> Set[str]:
        return {item.id for item in self.items}

    def transaction_ids(self) -> Set[str]:
        return {t.id for item in self.items for t in item.transactions}

    def to_payload(self) -> List[dict]:
        return [item.model_dump(mode="json", exclude_none=True) for item in self.items]
