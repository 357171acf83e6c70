from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from invdb import security
from invdb.apps.inventory.policy import (
    Operation,
    Role,
    can_access_item_type,
    is_allowed,
    permissions_for,
)
from invdb.apps.inventory.schemas import ItemType


def test_admin_may_do_everything():
    assert all(is_allowed(Role.ADMIN, op) for op in Operation)


def test_product_only_restrictions():
    assert not can_access_item_type(Role.PRODUCT_ONLY, ItemType.PART)
    assert can_access_item_type(Role.PRODUCT_ONLY, ItemType.PRODUCT)
    assert not is_allowed(Role.PRODUCT_ONLY, Operation.DELETE_TRANSACTION)
    assert is_allowed(Role.PRODUCT_ONLY, Operation.EDIT_TRANSACTION)
    assert "delete_transaction" not in permissions_for(Role.PRODUCT_ONLY)


def test_resolve_role_from_default_secrets():
    assert security.resolve_role("0000") == Role.ADMIN
    assert security.resolve_role("1111") == Role.PRODUCT_ONLY
    assert security.resolve_role("9999") is None
    assert security.resolve_role("") is None


def test_verify_secret_accepts_hashes():
    hashed = security.hash_secret("4321")
    assert security.verify_secret("4321", hashed)
    assert not security.verify_secret("1234", hashed)


def test_token_round_trip():
    token = security.create_access_token(role=Role.PRODUCT_ONLY)
    assert security.decode_role(token) == Role.PRODUCT_ONLY


def test_expired_token_rejected():
    token = security.create_access_token(role=Role.ADMIN, expires_delta=timedelta(seconds=-5))
    with pytest.raises(HTTPException) as excinfo:
        security.decode_role(token)
    assert excinfo.value.status_code == 401


def test_require_operation_dependency():
    dependency = security.require_operation(Operation.DELETE_TRANSACTION)
    assert dependency(role=Role.ADMIN) == Role.ADMIN
    with pytest.raises(HTTPException) as excinfo:
        dependency(role=Role.PRODUCT_ONLY)
    assert excinfo.value.status_code == 403


def test_confirmation_secret_per_role():
    security.check_confirmation(Role.ADMIN, "5200")
    security.check_confirmation(Role.PRODUCT_ONLY, "3281")
    for role, secret in ((Role.ADMIN, "3281"), (Role.PRODUCT_ONLY, None)):
        with pytest.raises(HTTPException) as excinfo:
            security.check_confirmation(role, secret)
        assert excinfo.value.status_code == 403
