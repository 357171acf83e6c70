"""
Best-effort synchronisation of the inventory with a remote key-value store.

The bridge owns three things:
- the local cache, rewritten on every change so it is never behind,
- a debounced push of the whole collection to the remote store,
- a small status machine callers can report on.

Remote failures never propagate to callers. They are logged, reflected in the
status, and the local cache stays the source of truth until the next push.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol

from pydantic import ValidationError

from invdb.apps.inventory.schemas import Item

from .cache import LocalCache
from .remote import RemoteStoreError
from .scheduler import DebouncedTask

logger = logging.getLogger(__name__)

DEBOUNCE_SEC = float(os.getenv("INVENTORY_SYNC_DEBOUNCE_SEC", "1.5"))


class SyncStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    OFFLINE = "offline"


class DataSource(str, enum.Enum):
    CLOUD = "cloud"
    LOCAL = "local"


TRANSITIONS: Dict[SyncStatus, FrozenSet[SyncStatus]] = {
    SyncStatus.IDLE: frozenset({SyncStatus.LOADING}),
    SyncStatus.LOADING: frozenset({SyncStatus.SUCCESS, SyncStatus.OFFLINE, SyncStatus.ERROR}),
    SyncStatus.SUCCESS: frozenset({SyncStatus.LOADING}),
    SyncStatus.ERROR: frozenset({SyncStatus.LOADING}),
    SyncStatus.OFFLINE: frozenset({SyncStatus.LOADING}),
}


@dataclass
class SyncTransitionError(Exception):
    code: str
    detail: str

    def __str__(self) -> str:
        return self.detail


class RemoteStore(Protocol):
    def fetch(self) -> dict: ...

    def replace(self, record: dict) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_items(raw_items: Iterable[dict]) -> List[Item]:
    return [Item.model_validate(raw) for raw in raw_items]


def _serialise(items: Iterable[Item]) -> List[dict]:
    return [item.model_dump(mode="json", exclude_none=True) for item in items]


class PersistenceBridge:
    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        *,
        debounce_sec: float = DEBOUNCE_SEC,
        timer_factory: Callable[..., object] = threading.Timer,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._clock = clock
        # Serialises load and push so the status machine sees one at a time.
        self._sync_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._status = SyncStatus.IDLE
        self._data_source = DataSource.LOCAL
        self._last_synced_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._loaded = False
        self._push_task = DebouncedTask(debounce_sec, self.push, timer_factory=timer_factory)

    # ------------------------------------------------------------------
    # STATE
    # ------------------------------------------------------------------

    @property
    def status(self) -> SyncStatus:
        with self._state_lock:
            return self._status

    @property
    def data_source(self) -> DataSource:
        with self._state_lock:
            return self._data_source

    @property
    def loaded(self) -> bool:
        with self._state_lock:
            return self._loaded

    def _transition(
        self,
        target: SyncStatus,
        *,
        data_source: Optional[DataSource] = None,
        synced: bool = False,
        error: Optional[str] = None,
    ) -> None:
        with self._state_lock:
            if target not in TRANSITIONS[self._status]:
                raise SyncTransitionError(
                    code="invalid_transition",
                    detail=f"Cannot transition from {self._status.value} to {target.value}",
                )
            self._status = target
            if data_source is not None:
                self._data_source = data_source
            if synced:
                self._last_synced_at = self._clock()
            self._last_error = error

    def status_snapshot(self) -> dict:
        with self._state_lock:
            snapshot = {
                "status": self._status,
                "dataSource": self._data_source,
                "lastSyncedAt": _iso(self._last_synced_at) if self._last_synced_at else None,
                "lastError": self._last_error,
            }
        snapshot["pendingPush"] = self._push_task.pending
        return snapshot

    # ------------------------------------------------------------------
    # LOAD
    # ------------------------------------------------------------------

    def load(self) -> List[Item]:
        """Fetch the remote record, falling back to the local cache."""
        with self._sync_lock:
            self._transition(SyncStatus.LOADING)
            try:
                record = self._remote.fetch()
                items = _parse_items(record["items"])
            except (RemoteStoreError, ValidationError) as exc:
                logger.warning("remote load failed, using local cache", extra={"error": str(exc)})
                items = self._fall_back_to_cache(exc)
            except Exception as exc:  # noqa: BLE001
                logger.exception("remote load crashed, using local cache")
                items = self._fall_back_to_cache(exc)
            else:
                self._write_cache(_serialise(items))
                self._transition(SyncStatus.SUCCESS, data_source=DataSource.CLOUD, synced=True)
                logger.info("inventory loaded from remote", extra={"item_count": len(items)})

            with self._state_lock:
                self._loaded = True
            return items

    def refresh(self) -> List[Item]:
        """Push anything still pending, then load again."""
        self.flush()
        return self.load()

    def _fall_back_to_cache(self, exc: Exception) -> List[Item]:
        items = self._load_cached()
        self._transition(SyncStatus.OFFLINE, data_source=DataSource.LOCAL, error=str(exc))
        return items

    def _load_cached(self) -> List[Item]:
        cached = self._cache.load() or []
        try:
            return _parse_items(cached)
        except ValidationError:
            logger.warning("local cache holds invalid items, starting empty", extra={"cache_path": str(self._cache.path)})
            return []

    # ------------------------------------------------------------------
    # SAVE
    # ------------------------------------------------------------------

    def notify_changed(self, items: Iterable[Item]) -> bool:
        """
        Mirror `items` into the local cache and schedule a remote push.

        Ignored until the first `load()` has finished, so the initial adoption
        of remote data is never echoed back.
        """
        if not self.loaded:
            return False
        payload = _serialise(items)
        self._write_cache(payload)
        self._push_task.schedule(payload)
        return True

    def push(self, payload: List[dict]) -> bool:
        """Replace the remote record with `payload`. Single attempt, no retry."""
        with self._sync_lock:
            self._transition(SyncStatus.LOADING)
            record = {"items": payload, "lastUpdated": _iso(self._clock())}
            try:
                self._remote.replace(record)
            except RemoteStoreError as exc:
                logger.warning(
                    "remote push failed, local cache kept",
                    extra={"error": str(exc), "item_count": len(payload)},
                )
                return self._keep_local(payload, exc)
            except Exception as exc:  # noqa: BLE001
                logger.exception("remote push crashed, local cache kept", extra={"item_count": len(payload)})
                return self._keep_local(payload, exc)

            self._transition(SyncStatus.SUCCESS, data_source=DataSource.CLOUD, synced=True)
            logger.info("inventory pushed to remote", extra={"item_count": len(payload)})
            return True

    def _keep_local(self, payload: List[dict], exc: Exception) -> bool:
        self._write_cache(payload)
        self._transition(SyncStatus.ERROR, error=str(exc))
        return False

    def flush(self) -> bool:
        """Run a pending push now, on the calling thread."""
        return self._push_task.flush()

    def close(self) -> bool:
        """Drop any pending push without running it."""
        dropped = self._push_task.cancel()
        if dropped:
            logger.info("pending inventory push dropped on close")
        return dropped

    def _write_cache(self, payload: List[dict]) -> None:
        try:
            self._cache.save(payload)
        except OSError:
            logger.exception("local cache write failed", extra={"cache_path": str(self._cache.path)})
