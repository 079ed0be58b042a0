from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from pallet.core.roles import BrandStatus


def _normalize_brand_name(value: str) -> str:
    v = " ".join(value.strip().split())
    if not v:
        raise ValueError("Brand name is required.")
    return v


class BrandCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    status: BrandStatus = BrandStatus.ACTIVE

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _normalize_brand_name(v)


class BrandUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    status: Optional[BrandStatus] = None
    # drop the current logo attachment and its file
    delete_logo: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_brand_name(v) if v is not None else None


class BrandStatusUpdate(BaseModel):
    status: BrandStatus


class BrandOut(BaseModel):
    id: int
    name: str
    status: str
    logo_url: Optional[str] = None
    product_count: int = 0
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class BrandDetail(BrandOut):
    created_by_name: Optional[str] = None
    updated_by_name: Optional[str] = None
