from __future__ import annotations

import asyncio
import io
import json

import pytest
from fastapi import HTTPException
from starlette.datastructures import UploadFile

from invdb.apps.inventory import router as inventory_router
from invdb.apps.inventory.policy import Role
from invdb.apps.inventory.schemas import (
    ItemCreate,
    ItemType,
    ItemUpdate,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)
from invdb.apps.inventory.workspace import InventoryWorkspace
from invdb.apps.sync.bridge import PersistenceBridge
from invdb.apps.sync.cache import LocalCache


class _ManualTimer:
    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.cancelled = False
        self.daemon = False

    def start(self):
        pass

    def cancel(self):
        self.cancelled = True


class _MemoryRemote:
    def __init__(self):
        self.record = {"items": [], "lastUpdated": None}
        self.replaced = []

    def fetch(self):
        return self.record

    def replace(self, record):
        self.replaced.append(record)
        self.record = record


@pytest.fixture()
def workspace(tmp_path):
    bridge = PersistenceBridge(_MemoryRemote(), LocalCache(tmp_path / "cache.json"), timer_factory=_ManualTimer)
    ws = InventoryWorkspace(bridge)
    ws.load()
    try:
        yield ws
    finally:
        ws.close()


def _create(workspace, role=Role.ADMIN, **fields):
    payload = ItemCreate(**fields)
    return inventory_router.create_item(payload=payload, workspace=workspace, role=role)


def _list(workspace, item_type, role=Role.ADMIN, q=""):
    return inventory_router.list_items(type=item_type, q=q, workspace=workspace, role=role)


def test_create_and_list_items(workspace):
    created = _create(workspace, type=ItemType.PART, code="br-1", name="bracket", initialQuantity=4)
    assert created.stock == 4
    assert created.code == "BR-1"

    summaries = _list(workspace, ItemType.PART)
    assert [(s.code, s.stock) for s in summaries] == [("BR-1", 4)]
    assert _list(workspace, ItemType.PRODUCT) == []


def test_product_only_cannot_see_or_create_parts(workspace):
    with pytest.raises(HTTPException) as excinfo:
        _list(workspace, ItemType.PART, role=Role.PRODUCT_ONLY)
    assert excinfo.value.status_code == 403

    with pytest.raises(HTTPException) as excinfo:
        _create(workspace, role=Role.PRODUCT_ONLY, type=ItemType.PART, code="P1", name="pin")
    assert excinfo.value.status_code == 403

    part = _create(workspace, type=ItemType.PART, code="P1", name="pin")
    with pytest.raises(HTTPException) as excinfo:
        inventory_router.read_item(item_id=part.id, workspace=workspace, role=Role.PRODUCT_ONLY)
    assert excinfo.value.status_code == 403


def test_duplicate_code_maps_to_conflict(workspace):
    _create(workspace, code="A1", name="widget")
    with pytest.raises(HTTPException) as excinfo:
        _create(workspace, code="a1", name="other")
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail["code"] == "duplicate_code"


def test_unknown_item_is_not_found(workspace):
    with pytest.raises(HTTPException) as excinfo:
        inventory_router.read_item(item_id="item-missing", workspace=workspace, role=Role.ADMIN)
    assert excinfo.value.status_code == 404


def test_update_item_requires_confirmation_secret(workspace):
    item = _create(workspace, code="A1", name="widget")
    with pytest.raises(HTTPException) as excinfo:
        inventory_router.update_item(
            item_id=item.id,
            payload=ItemUpdate(spec="M6"),
            workspace=workspace,
            role=Role.ADMIN,
            confirm_secret="0000",
        )
    assert excinfo.value.status_code == 403

    updated = inventory_router.update_item(
        item_id=item.id,
        payload=ItemUpdate(spec="M6"),
        workspace=workspace,
        role=Role.ADMIN,
        confirm_secret="5200",
    )
    assert updated.spec == "M6"


def test_transaction_flow(workspace):
    item = _create(workspace, type=ItemType.PRODUCT, code="CT-1", name="controller")
    created = inventory_router.create_transaction(
        item_id=item.id,
        payload=TransactionCreate(serialNumber="sn00001~00003"),
        workspace=workspace,
        role=Role.PRODUCT_ONLY,
    )
    assert [t.serialNumber for t in created] == ["SN00001", "SN00002", "SN00003"]

    with pytest.raises(HTTPException) as excinfo:
        inventory_router.create_transaction(
            item_id=item.id,
            payload=TransactionCreate(type=TransactionType.RELEASE, quantity=5),
            workspace=workspace,
            role=Role.ADMIN,
        )
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail["code"] == "insufficient_stock"

    edited = inventory_router.update_transaction(
        item_id=item.id,
        transaction_id=created[0].id,
        payload=TransactionUpdate(customerName="ACME"),
        workspace=workspace,
        role=Role.PRODUCT_ONLY,
        confirm_secret="3281",
    )
    assert edited.customerName == "ACME"

    inventory_router.delete_transaction(
        item_id=item.id,
        transaction_id=created[1].id,
        workspace=workspace,
        role=Role.ADMIN,
        confirm_secret="5200",
    )
    history = inventory_router.list_transactions(item_id=item.id, q="", workspace=workspace, role=Role.ADMIN)
    assert [t.serialNumber for t in history] == ["SN00003", "SN00001"]

    assert inventory_router.next_serial(workspace=workspace, role=Role.ADMIN).serialNumber == "SN00004"


def test_delete_item(workspace):
    item = _create(workspace, code="A1", name="widget")
    response = inventory_router.delete_item(item_id=item.id, workspace=workspace, role=Role.ADMIN, confirm_secret="5200")
    assert response.status_code == 204
    assert workspace.snapshot().items == ()


def test_expand_serials_rejects_oversized_range():
    expansion = inventory_router.expand_serials(expression="ct0001~0010", role=Role.ADMIN)
    assert expansion.count == 10
    assert expansion.serials[0] == "CT0001"

    with pytest.raises(HTTPException) as excinfo:
        inventory_router.expand_serials(expression="CT0001~0200", role=Role.ADMIN)
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail["code"] == "range_too_large"


def test_next_code_and_stats(workspace):
    _create(workspace, code="BR-3", name="bracket")
    _create(workspace, type=ItemType.PRODUCT, code="CT-1", name="controller")
    assert inventory_router.next_code(prefix="br-", workspace=workspace, role=Role.ADMIN).code == "BR-4"
    stats = inventory_router.inventory_stats(workspace=workspace, role=Role.ADMIN)
    assert (stats.partCount, stats.productCount) == (1, 1)


def test_export_item_list_csv(workspace):
    _create(workspace, code="A1", name="widget", drawingNumber="D-1", initialQuantity=2)
    response = inventory_router.export_item_list(type=ItemType.PART, q="", workspace=workspace, role=Role.ADMIN)
    body = response.body.decode("utf-8")
    assert body.startswith("\ufeffCode,Name,Drawing No.,Stock\r\n")
    assert '"A1","WIDGET","D-1","2"' in body
    assert "parts_stock_" in response.headers["content-disposition"]


def test_export_history_of_empty_item_is_rejected(workspace):
    item = _create(workspace, code="A1", name="widget")
    with pytest.raises(HTTPException) as excinfo:
        inventory_router.export_item_history(item_id=item.id, q="", workspace=workspace, role=Role.ADMIN)
    assert excinfo.value.status_code == 400


def _upload(document) -> UploadFile:
    raw = document if isinstance(document, bytes) else json.dumps(document).encode("utf-8")
    return UploadFile(file=io.BytesIO(raw), filename="INVENTORY_BACKUP_2024-05-06.json")


def test_backup_round_trip(workspace):
    _create(workspace, code="A1", name="widget", initialQuantity=3)
    _create(workspace, type=ItemType.PRODUCT, code="CT-1", name="controller")
    before = workspace.snapshot().items

    response = inventory_router.download_backup(workspace=workspace, role=Role.ADMIN)
    document = json.loads(response.body)
    assert document["version"] == "2.0"

    inventory_router.delete_item(item_id=before[0].id, workspace=workspace, role=Role.ADMIN, confirm_secret="5200")
    result = asyncio.run(
        inventory_router.restore_backup(file=_upload(document), confirm=True, workspace=workspace, role=Role.ADMIN)
    )
    assert result.imported == 2
    assert result.version == "2.0"
    assert workspace.snapshot().items == before


def test_backup_restore_requires_confirmation_and_valid_file(workspace):
    _create(workspace, code="A1", name="widget")
    before = workspace.snapshot()

    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(
            inventory_router.restore_backup(
                file=_upload({"items": []}), confirm=False, workspace=workspace, role=Role.ADMIN
            )
        )
    assert excinfo.value.status_code == 400

    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(
            inventory_router.restore_backup(file=_upload(b"{broken"), confirm=True, workspace=workspace, role=Role.ADMIN)
        )
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail["code"] == "invalid_backup"
    assert workspace.snapshot() is before


def test_mutations_schedule_a_push(workspace):
    assert workspace.bridge.status_snapshot()["pendingPush"] is False
    _create(workspace, code="A1", name="widget")
    status_read = inventory_router.sync_status(workspace=workspace, role=Role.ADMIN)
    assert status_read["pendingPush"] is True
    assert workspace.bridge.flush() is True
    assert workspace.bridge.status_snapshot()["status"].value == "success"


def test_stats_hide_counts_for_item_types_the_role_cannot_view(workspace):
    _create(workspace, code="BR-3", name="bracket")
    _create(workspace, type=ItemType.PRODUCT, code="CT-1", name="controller")
    _create(workspace, type=ItemType.PRODUCT, code="CT-2", name="controller")
    stats = inventory_router.inventory_stats(workspace=workspace, role=Role.PRODUCT_ONLY)
    assert stats.partCount is None
    assert stats.productCount == 2
