# backend/pallet/schemas/auth.py
from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

_PHONE_RE = re.compile(r"^\d{11}$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{4,20}$")


def normalize_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = re.sub(r"[\s-]", "", value)
    if not v:
        return None
    if not _PHONE_RE.match(v):
        raise ValueError("Must be an 11-digit phone number.")
    return v


def normalize_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = " ".join(value.strip().split())
    return v or None


def normalize_username(value: str) -> str:
    v = value.strip()
    if not _USERNAME_RE.match(v):
        raise ValueError("Username must be 4-20 letters, digits or underscores.")
    return v


def blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# -----------------------------
# Sessions
# -----------------------------
class LoginRequest(BaseModel):
    # username, phone or email
    account: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=128)


class RegisterRequest(BaseModel):
    username: str
    password: str = Field(min_length=6, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[EmailStr] = None
    company: Optional[str] = Field(default=None, max_length=200)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return normalize_username(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        n = normalize_name(v)
        if not n:
            raise ValueError("Name is required.")
        return n

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, v):
        return blank_to_none(v)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class UserInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    is_admin: bool
    status: str
    avatar: Optional[str] = None
    wechat_qrcode: Optional[str] = None
    last_login_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TokenResponse(BaseModel):
    token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user_info: UserInfo


class AccessTokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int


# -----------------------------
# Profile
# -----------------------------
class StoreOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    platform: str
    name: str
    url: Optional[str] = None


class ProfileResponse(UserInfo):
    stores: List[StoreOut] = Field(default_factory=list)


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[EmailStr] = None
    company: Optional[str] = Field(default=None, max_length=200)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        n = normalize_name(v)
        if not n:
            raise ValueError("Name cannot be empty.")
        return n

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, v):
        return blank_to_none(v)


class PasswordChangeRequest(BaseModel):
    old_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=6, max_length=20)


class StoreCreate(BaseModel):
    platform: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    url: Optional[str] = Field(default=None, max_length=500)


class StoreUpdate(BaseModel):
    platform: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    url: Optional[str] = Field(default=None, max_length=500)
