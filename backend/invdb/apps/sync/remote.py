"""
Remote key-value stores the persistence bridge can push to.

Both implementations speak the same record shape:
``{"items": [...], "lastUpdated": "<iso timestamp>" | None}``.
"""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from typing import Callable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invdb.apps.kv import services as kv_services

REMOTE_TIMEOUT_SEC = float(os.getenv("INVENTORY_REMOTE_TIMEOUT_SEC", "15"))


class RemoteStoreError(RuntimeError):
    pass


def _send(method: str, url: str, payload: Optional[dict], timeout: float) -> Tuple[int, str]:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(url, data=data, method=method)
    req.add_header("Accept", "application/json")
    if data is not None:
        req.add_header("Content-Type", "application/json")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read().decode("utf-8", errors="replace")
    except Exception as exc:  # noqa: BLE001
        return 0, str(exc)


def _validate_record(record: object) -> dict:
    if not isinstance(record, dict) or not isinstance(record.get("items"), list):
        raise RemoteStoreError("Remote record is missing an items list.")
    return record


class HttpRemoteStore:
    """The `/api/inventory` endpoint of another (or this) server."""

    def __init__(self, url: str, *, timeout: float = REMOTE_TIMEOUT_SEC) -> None:
        self.url = url
        self.timeout = timeout

    def fetch(self) -> dict:
        status_code, body = _send("GET", self.url, None, self.timeout)
        if not 200 <= status_code < 300:
            raise RemoteStoreError(f"GET {self.url} failed ({status_code}): {body[:200]}")
        try:
            record = json.loads(body)
        except ValueError as exc:
            raise RemoteStoreError(f"GET {self.url} returned malformed JSON") from exc
        return _validate_record(record)

    def replace(self, record: dict) -> None:
        status_code, body = _send("POST", self.url, record, self.timeout)
        if not 200 <= status_code < 300:
            raise RemoteStoreError(f"POST {self.url} failed ({status_code}): {body[:200]}")


class DatabaseRemoteStore:
    """The key-value table of this server, without the HTTP hop."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def fetch(self) -> dict:
        db = self._session_factory()
        try:
            return _validate_record(kv_services.load_inventory_record(db))
        except SQLAlchemyError as exc:
            raise RemoteStoreError(f"Key-value read failed: {exc}") from exc
        finally:
            db.close()

    def replace(self, record: dict) -> None:
        _validate_record(record)
        db = self._session_factory()
        try:
            kv_services.save_inventory_record(db, record)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise RemoteStoreError(f"Key-value write failed: {exc}") from exc
        finally:
            db.close()
