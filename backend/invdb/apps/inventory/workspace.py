"""
The process-wide inventory.

`InventoryWorkspace` holds the current `InventoryStore` snapshot and swaps it
under a lock. Every swap is reported to the persistence bridge, which mirrors
the collection into the local cache and schedules a remote push.
"""

from __future__ import annotations

import os
import threading
from typing import Callable, Iterable, Optional, Tuple, TypeVar

from invdb.database import SessionLocal
from invdb.apps.sync.bridge import PersistenceBridge
from invdb.apps.sync.cache import LocalCache
from invdb.apps.sync.remote import DatabaseRemoteStore, HttpRemoteStore

from . import services
from .schemas import Item
from .store import InventoryStore


REMOTE_URL = os.getenv("INVENTORY_REMOTE_URL", "").strip()

T = TypeVar("T")


class InventoryWorkspace:
    def __init__(self, bridge: PersistenceBridge, store: Optional[InventoryStore] = None) -> None:
        self.bridge = bridge
        self._store = store or InventoryStore()
        self._lock = threading.RLock()

    def snapshot(self) -> InventoryStore:
        with self._lock:
            return self._store

    def load(self) -> InventoryStore:
        items = self.bridge.load()
        with self._lock:
            self._store = services.replace_all(self._store, items)
            return self._store

    def refresh(self) -> InventoryStore:
        items = self.bridge.refresh()
        with self._lock:
            self._store = services.replace_all(self._store, items)
            return self._store

    def apply(self, mutation: Callable[[InventoryStore], Tuple[InventoryStore, T]]) -> T:
        """
        Run `mutation` against the current snapshot and adopt the store it returns.

        The mutation raises before returning if validation fails, in which case
        the current snapshot is left untouched.
        """
        with self._lock:
            new_store, result = mutation(self._store)
            self._store = new_store
            self.bridge.notify_changed(new_store.items)
            return result

    def replace(self, items: Iterable[Item]) -> InventoryStore:
        with self._lock:
            self._store = services.replace_all(self._store, items)
            self.bridge.notify_changed(self._store.items)
            return self._store

    def close(self) -> None:
        self.bridge.close()


def build_bridge() -> PersistenceBridge:
    if REMOTE_URL:
        remote = HttpRemoteStore(REMOTE_URL)
    else:
        remote = DatabaseRemoteStore(SessionLocal)
    return PersistenceBridge(remote, LocalCache())


_workspace: Optional[InventoryWorkspace] = None
_workspace_lock = threading.Lock()


def get_workspace() -> InventoryWorkspace:
    """FastAPI dependency returning the loaded process-wide workspace."""
    global _workspace
    with _workspace_lock:
        if _workspace is None:
            workspace = InventoryWorkspace(build_bridge())
            workspace.load()
            _workspace = workspace
        return _workspace


def shutdown_workspace() -> None:
    global _workspace
    with _workspace_lock:
        if _workspace is not None:
            _workspace.close()
        _workspace = None
