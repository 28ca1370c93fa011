from __future__ import annotations

import uuid
from typing import Literal

from pydantic import Field

from salesdesk.core.schemas import ApiModel, Email, UtcDatetime


RoleName = Literal["admin", "agent"]


class UserRead(ApiModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: RoleName
    is_active: bool
    last_login: UtcDatetime | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class LoginRequest(ApiModel):
    email: Email
    password: str = Field(min_length=1)


class RefreshRequest(ApiModel):
    refresh_token: str = Field(min_length=1)


class TokenPair(ApiModel):
    access_token: str
    refresh_token: str


class LoginResult(ApiModel):
    user: UserRead
    access_token: str
    refresh_token: str


class RegisterRequest(ApiModel):
    email: Email
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    role: RoleName = "agent"


class UserUpdate(ApiModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
    role: RoleName | None = None
    is_active: bool | None = None


class ProfileUpdate(ApiModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
