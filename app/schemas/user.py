# File: /app/schemas/user.py | Version: 3.0 | Path: /app/schemas/user.py
from __future__ import annotations

from pydantic import BaseModel, EmailStr
from pydantic import ConfigDict


class UserResponse(BaseModel):
    id: str
    email: EmailStr
    full_name: str | None = None
    is_active: bool = True

    # Pydantic v2 style
    model_config = ConfigDict(from_attributes=True)


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenPair(TokenResponse):
    refresh_token: str
