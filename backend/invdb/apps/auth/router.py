from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from invdb import security
from invdb.apps.inventory.policy import Role, permissions_for

from . import schemas

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ---------------------------------------------------------------------------
# LOGIN
# ---------------------------------------------------------------------------


@router.post(
    "/login",
    response_model=schemas.Token,
    summary="Exchange a role secret for an access token",
)
def login(payload: schemas.LoginRequest):
    """
    The secret alone decides the role:

    - the admin secret grants full access
    - the product secret grants product-only access
    """
    role = security.resolve_role(payload.password)
    if role is None:
        logger.warning("login rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect password.",
        )

    token = security.create_access_token(role=role)
    logger.info("login accepted", extra={"role": role.value})
    return schemas.Token(
        access_token=token,
        expires_in=security.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        role=role,
        permissions=permissions_for(role),
    )


@router.get("/me", response_model=schemas.SessionRead)
def read_session(role: Role = Depends(security.get_current_role)):
    return schemas.SessionRead(role=role, permissions=permissions_for(role))
