from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)

INVENTORY_KEY = "inventory_system_v2_data"


def empty_record() -> dict:
    return {"items": [], "lastUpdated": None}


def is_valid_record(body: Any) -> bool:
    return isinstance(body, dict) and isinstance(body.get("items"), list)


def get_value(db: Session, key: str) -> Optional[Any]:
    entry = db.query(models.KVEntry).filter(models.KVEntry.key == key).first()
    if not entry:
        return None
    return entry.value


def set_value(db: Session, key: str, value: Any) -> models.KVEntry:
    entry = db.query(models.KVEntry).filter(models.KVEntry.key == key).first()
    if entry is None:
        entry = models.KVEntry(key=key, value=value)
        db.add(entry)
    else:
        entry.value = value
        entry.updated_at = datetime.now(timezone.utc)
    db.flush()
    return entry


def load_inventory_record(db: Session) -> dict:
    value = get_value(db, INVENTORY_KEY)
    return value or empty_record()


def save_inventory_record(db: Session, body: dict) -> models.KVEntry:
    """Replace the stored record wholesale. Callers validate with `is_valid_record`."""
    entry = set_value(db, INVENTORY_KEY, body)
    logger.info(
        "inventory record stored",
        extra={"kv_key": INVENTORY_KEY, "item_count": len(body.get("items") or [])},
    )
    return entry
