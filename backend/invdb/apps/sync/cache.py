from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

CACHE_KEY = "inventory_system_data_v2"
DEFAULT_CACHE_PATH = os.getenv("INVENTORY_CACHE_PATH", os.path.join("instance", "inventory_cache.json"))


class LocalCache:
    """
    On-disk mirror of the full item list.

    Writes go to a temp file in the same directory and are swapped in with
    `os.replace`, so readers never see a half-written file.
    """

    def __init__(self, path: Union[str, Path] = DEFAULT_CACHE_PATH) -> None:
        self.path = Path(path)

    def load(self) -> Optional[List[dict]]:
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("local cache unreadable", extra={"cache_path": str(self.path)})
            return None
        items = document.get(CACHE_KEY) if isinstance(document, dict) else None
        if not isinstance(items, list):
            logger.warning("local cache has no item list", extra={"cache_path": str(self.path)})
            return None
        return items

    def save(self, items: List[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".inventory-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump({CACHE_KEY: items}, handle, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
