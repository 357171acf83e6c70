from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from invdb.apps.inventory.policy import Role


class LoginRequest(BaseModel):
    password: str = Field(..., min_length=1, description="One of the configured role secrets")


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: Role
    permissions: List[str]


class SessionRead(BaseModel):
    role: Role
    permissions: List[str]
