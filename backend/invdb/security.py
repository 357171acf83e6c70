# backend/invdb/security.py

"""
Security helpers for invdb.

Responsibilities:
- Shared-secret verification (plain, Argon2 or bcrypt encoded)
- JWT access token creation and decoding
- FastAPI dependencies for the current role and operation checks
- Confirmation-secret checks for destructive edits

The shared secrets are a convenience gate, not a security boundary. Which role
may do what lives in `invdb.apps.inventory.policy`.
"""

from __future__ import annotations

import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHash
import bcrypt

from invdb.apps.inventory.policy import Operation, Role, is_allowed

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720")
    )
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 720

# Login secrets decide the role; confirmation secrets gate destructive edits.
ROLE_SECRETS: Dict[Role, str] = {
    Role.ADMIN: os.getenv("INVENTORY_ADMIN_SECRET", "0000"),
    Role.PRODUCT_ONLY: os.getenv("INVENTORY_PRODUCT_SECRET", "1111"),
}

CONFIRM_SECRETS: Dict[Role, str] = {
    Role.ADMIN: os.getenv("INVENTORY_ADMIN_CONFIRM_SECRET", "5200"),
    Role.PRODUCT_ONLY: os.getenv("INVENTORY_PRODUCT_CONFIRM_SECRET", "3281"),
}

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# ---------------------------------------------------------------------------
# SECRET VERIFICATION
# ---------------------------------------------------------------------------

_pwd_hasher = PasswordHasher()


def _is_argon2_hash(value: str) -> bool:
    return isinstance(value, str) and value.startswith("$argon2")


def _is_bcrypt_hash(value: str) -> bool:
    return isinstance(value, str) and value.startswith(("$2a$", "$2b$", "$2y$"))


def verify_secret(plain: str, configured: str) -> bool:
    """Return True if `plain` matches the configured secret or its hash."""
    if not plain or not configured:
        return False

    if _is_argon2_hash(configured):
        try:
            return _pwd_hasher.verify(configured, plain)
        except (VerifyMismatchError, VerificationError, InvalidHash):
            return False

    if _is_bcrypt_hash(configured):
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), configured.encode("utf-8"))
        except ValueError:
            return False

    return hmac.compare_digest(plain.encode("utf-8"), configured.encode("utf-8"))


def hash_secret(plain: str) -> str:
    """Argon2id hash suitable for the INVENTORY_*_SECRET variables."""
    return _pwd_hasher.hash(plain)


def resolve_role(password: str) -> Optional[Role]:
    for role, configured in ROLE_SECRETS.items():
        if verify_secret(password, configured):
            return role
    return None


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    role: Role,
    expires_delta: Optional[timedelta] = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": role.value, "role": role.value, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_role(token: str) -> Role:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
        return Role(payload.get("role"))
    except (JWTError, ValueError):
        raise _credentials_exception()


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_role(token: str = Depends(oauth2_scheme)) -> Role:
    return decode_role(token)


def require_operation(operation: Operation) -> Callable[[Role], Role]:
    """
    Dependency factory enforcing that the caller's role may perform `operation`.

    Usage:
        @router.delete(...)
        def endpoint(role: Role = Depends(require_operation(Operation.DELETE_ITEM))):
            ...
    """

    def dependency(role: Role = Depends(get_current_role)) -> Role:
        if not is_allowed(role, operation):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return role

    return dependency


def check_confirmation(role: Role, secret: Optional[str]) -> None:
    if not verify_secret(secret or "", CONFIRM_SECRETS.get(role, "")):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Confirmation secret is incorrect",
        )


def confirmation_secret(
    x_confirm_secret: Optional[str] = Header(None, alias="X-Confirm-Secret"),
) -> Optional[str]:
    return x_confirm_secret
