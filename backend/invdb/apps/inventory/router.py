from __future__ import annotations

import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status

from invdb.security import check_confirmation, confirmation_secret, get_current_role, require_operation
from invdb.apps.sync.schemas import SyncStatusRead

from . import exports, schemas, services
from .errors import CONFLICT_CODES, NOT_FOUND_CODES, InventoryError
from .ledger import item_stock
from .policy import Operation, Role, can_access_item_type
from .serials import expand_serial_range, suggest_next_code, suggest_next_serial
from .workspace import InventoryWorkspace, get_workspace

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _raise_http(exc: InventoryError) -> NoReturn:
    if exc.code in NOT_FOUND_CODES:
        status_code = status.HTTP_404_NOT_FOUND
    elif exc.code in CONFLICT_CODES:
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=status_code, detail={"code": exc.code, "detail": exc.detail}) from exc


def _ensure_type_access(role: Role, item_type: schemas.ItemType) -> None:
    if not can_access_item_type(role, item_type):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role {role.value} cannot access {item_type.value} items",
        )


def _item_read(item: schemas.Item) -> schemas.ItemRead:
    return schemas.ItemRead(**item.model_dump(), stock=item_stock(item))


def _load_item(workspace: InventoryWorkspace, item_id: str, role: Role) -> schemas.Item:
    try:
        item = services.get_item(workspace.snapshot(), item_id)
    except InventoryError as exc:
        _raise_http(exc)
    _ensure_type_access(role, item.type)
    return item


# ---------------------------------------------------------------------------
# ITEMS
# ---------------------------------------------------------------------------


@router.get("/items", response_model=List[schemas.ItemSummary])
def list_items(
    type: schemas.ItemType = Query(schemas.ItemType.PART),
    q: str = Query(""),
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(get_current_role),
):
    _ensure_type_access(role, type)
    return [
        schemas.ItemSummary(
            id=item.id,
            type=item.type,
            code=item.code,
            name=item.name,
            drawingNumber=item.drawingNumber,
            stock=item_stock(item),
        )
        for item in services.filter_items(workspace.snapshot(), type, q)
    ]


@router.post("/items", response_model=schemas.ItemRead, status_code=status.HTTP_201_CREATED)
def create_item(
    payload: schemas.ItemCreate,
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.CREATE_ITEM)),
):
    _ensure_type_access(role, payload.type)
    try:
        item = workspace.apply(lambda store: services.add_item(store, payload))
    except InventoryError as exc:
        _raise_http(exc)
    return _item_read(item)


@router.get("/items/{item_id}", response_model=schemas.ItemRead)
def read_item(
    item_id: str,
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(get_current_role),
):
    return _item_read(_load_item(workspace, item_id, role))


@router.patch("/items/{item_id}", response_model=schemas.ItemRead)
def update_item(
    item_id: str,
    payload: schemas.ItemUpdate,
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.EDIT_ITEM)),
    confirm_secret: Optional[str] = Depends(confirmation_secret),
):
    _load_item(workspace, item_id, role)
    check_confirmation(role, confirm_secret)
    try:
        item = workspace.apply(lambda store: services.update_item(store, item_id, payload))
    except InventoryError as exc:
        _raise_http(exc)
    return _item_read(item)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: str,
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.DELETE_ITEM)),
    confirm_secret: Optional[str] = Depends(confirmation_secret),
):
    _load_item(workspace, item_id, role)
    check_confirmation(role, confirm_secret)
    try:
        workspace.apply(lambda store: (services.delete_item(store, item_id), None))
    except InventoryError as exc:
        _raise_http(exc)
    logger.info("item deleted", extra={"item_id": item_id, "role": role.value})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# TRANSACTIONS
# ---------------------------------------------------------------------------


@router.get("/items/{item_id}/transactions", response_model=List[schemas.Transaction])
def list_transactions(
    item_id: str,
    q: str = Query(""),
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(get_current_role),
):
    item = _load_item(workspace, item_id, role)
    return services.filter_history(item, q)


@router.post(
    "/items/{item_id}/transactions",
    response_model=List[schemas.Transaction],
    status_code=status.HTTP_201_CREATED,
)
def create_transaction(
    item_id: str,
    payload: schemas.TransactionCreate,
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.ADD_TRANSACTION)),
):
    _load_item(workspace, item_id, role)
    try:
        return workspace.apply(lambda store: services.add_transaction(store, item_id, payload))
    except InventoryError as exc:
        _raise_http(exc)


@router.patch("/items/{item_id}/transactions/{transaction_id}", response_model=schemas.Transaction)
def update_transaction(
    item_id: str,
    transaction_id: str,
    payload: schemas.TransactionUpdate,
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.EDIT_TRANSACTION)),
    confirm_secret: Optional[str] = Depends(confirmation_secret),
):
    _load_item(workspace, item_id, role)
    check_confirmation(role, confirm_secret)
    try:
        return workspace.apply(
            lambda store: services.update_transaction(store, item_id, transaction_id, payload)
        )
    except InventoryError as exc:
        _raise_http(exc)


@router.delete("/items/{item_id}/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_transaction(
    item_id: str,
    transaction_id: str,
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.DELETE_TRANSACTION)),
    confirm_secret: Optional[str] = Depends(confirmation_secret),
):
    _load_item(workspace, item_id, role)
    check_confirmation(role, confirm_secret)
    try:
        workspace.apply(lambda store: (services.delete_transaction(store, item_id, transaction_id), None))
    except InventoryError as exc:
        _raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# ALLOCATION HELPERS
# ---------------------------------------------------------------------------


@router.get("/serials/next", response_model=schemas.SerialSuggestion)
def next_serial(
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.VIEW_PRODUCTS)),
):
    return schemas.SerialSuggestion(serialNumber=suggest_next_serial(services.used_serials(workspace.snapshot())))


@router.get("/serials/expand", response_model=schemas.SerialExpansion)
def expand_serials(
    expression: str = Query(..., min_length=1),
    role: Role = Depends(require_operation(Operation.VIEW_PRODUCTS)),
):
    try:
        serials = expand_serial_range(expression.strip().upper())
    except InventoryError as exc:
        _raise_http(exc)
    return schemas.SerialExpansion(serials=serials, count=len(serials))


@router.get("/codes/next", response_model=schemas.CodeSuggestion)
def next_code(
    prefix: str = Query(""),
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.CREATE_ITEM)),
):
    return schemas.CodeSuggestion(code=suggest_next_code(prefix, workspace.snapshot().codes()))


@router.get("/stats", response_model=schemas.InventoryStats)
def inventory_stats(
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(get_current_role),
):
    counts = services.stats(workspace.snapshot())
    hidden = {}
    if not can_access_item_type(role, schemas.ItemType.PART):
        hidden["partCount"] = None
    if not can_access_item_type(role, schemas.ItemType.PRODUCT):
        hidden["productCount"] = None
    return counts.model_copy(update=hidden)


# ---------------------------------------------------------------------------
# EXPORT / IMPORT
# ---------------------------------------------------------------------------


@router.get("/export.csv")
def export_item_list(
    type: schemas.ItemType = Query(schemas.ItemType.PART),
    q: str = Query(""),
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.EXPORT)),
):
    _ensure_type_access(role, type)
    items = services.filter_items(workspace.snapshot(), type, q)
    return exports.csv_response(exports.item_list_csv(items, type), exports.item_list_filename(type))


@router.get("/items/{item_id}/history.csv")
def export_item_history(
    item_id: str,
    q: str = Query(""),
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.EXPORT)),
):
    item = _load_item(workspace, item_id, role)
    try:
        content = exports.history_csv(item, services.filter_history(item, q))
    except InventoryError as exc:
        _raise_http(exc)
    return exports.csv_response(content, exports.history_filename(item))


@router.get("/backup")
def download_backup(
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.EXPORT)),
):
    document = exports.build_backup(workspace.snapshot().items)
    return exports.backup_response(document, exports.backup_filename())


@router.post("/backup", response_model=schemas.BackupImportResult)
async def restore_backup(
    file: UploadFile = File(...),
    confirm: bool = Query(False),
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.IMPORT_BACKUP)),
):
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "confirmation_required", "detail": "Restoring a backup replaces all data; pass confirm=true."},
        )
    raw = await file.read()
    try:
        items, version = exports.parse_backup(raw)
    except InventoryError as exc:
        _raise_http(exc)

    workspace.replace(items)
    logger.info("backup restored", extra={"item_count": len(items), "backup_version": version})
    return schemas.BackupImportResult(imported=len(items), version=version)


# ---------------------------------------------------------------------------
# SYNC
# ---------------------------------------------------------------------------


@router.get("/sync", response_model=SyncStatusRead)
def sync_status(
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(get_current_role),
):
    return workspace.bridge.status_snapshot()


@router.post("/sync/refresh", response_model=SyncStatusRead)
def refresh_sync(
    workspace: InventoryWorkspace = Depends(get_workspace),
    role: Role = Depends(require_operation(Operation.SYNC)),
):
    workspace.refresh()
    return workspace.bridge.status_snapshot()
