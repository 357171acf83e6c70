from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from .bridge import DataSource, SyncStatus


class SyncStatusRead(BaseModel):
    status: SyncStatus
    dataSource: DataSource
    lastSyncedAt: Optional[str] = None
    lastError: Optional[str] = None
    pendingPush: bool = False
