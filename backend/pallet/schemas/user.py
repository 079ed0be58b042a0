from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from pallet.core.roles import UserStatus
from pallet.schemas.auth import (
    StoreOut,
    UserInfo,
    blank_to_none,
    normalize_name,
    normalize_phone,
    normalize_username,
)


class UserCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str
    # falls back to settings.DEFAULT_PASSWORD
    password: Optional[str] = Field(default=None, min_length=6, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[EmailStr] = None
    company: Optional[str] = Field(default=None, max_length=200)
    is_admin: bool = False

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


class UserUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[EmailStr] = None
    company: Optional[str] = Field(default=None, max_length=200)
    is_admin: Optional[bool] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: Optional[str]) -> Optional[str]:
        return normalize_username(v) if v is not None else None

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


class PasswordReset(BaseModel):
    new_password: str = Field(min_length=6, max_length=20)


class StatusUpdate(BaseModel):
    status: UserStatus


class StoreLinkRequest(BaseModel):
    store_ids: List[int] = Field(default_factory=list, max_length=200)


class BatchPasswordReset(BaseModel):
    user_ids: List[int] = Field(..., min_length=1, max_length=100)
    new_password: Optional[str] = Field(default=None, min_length=6, max_length=20)


class UserDetail(UserInfo):
    stores: List[StoreOut] = Field(default_factory=list)
