from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invdb.database import get_db

from . import services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["kv"])


def _server_error(exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error", "details": str(exc)},
    )


@router.get("/inventory")
def read_inventory(db: Session = Depends(get_db)):
    try:
        return services.load_inventory_record(db)
    except SQLAlchemyError as exc:
        logger.exception("kv read failed")
        return _server_error(exc)


@router.post("/inventory")
async def write_inventory(request: Request, db: Session = Depends(get_db)):
    raw_body = await request.body()
    try:
        body = json.loads(raw_body or b"null")
    except ValueError:
        body = None
    if not services.is_valid_record(body):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid data format"},
        )

    try:
        services.save_inventory_record(db, body)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("kv write failed")
        return _server_error(exc)

    return {"success": True, "timestamp": datetime.now(timezone.utc).isoformat()}
