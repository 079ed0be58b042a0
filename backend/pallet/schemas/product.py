from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_URL_RE = re.compile(r"^(https?://)(www\.)?([a-zA-Z0-9-]+\.)+[a-zA-Z]{2,}(:[0-9]+)?(/[^\s]*)?$")


def _normalize_optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = value.strip()
    return v or None


def _normalize_product_url(value: Optional[str]) -> Optional[str]:
    v = _normalize_optional_text(value)
    if v is None:
        return None
    if not _URL_RE.match(v):
        raise ValueError("product_url must be an http(s) URL.")
    return v


class PriceTierIn(BaseModel):
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class PriceTierOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    price: Decimal


class AttachmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: int
    file_type: str
    slot: Optional[str] = None
    file_name: str
    file_path: str
    file_size: int
    created_by: Optional[int] = None
    created_at: datetime


class ProductFields(BaseModel):
    brand_id: Optional[int] = Field(None, ge=1)
    product_code: Optional[str] = Field(None, max_length=100)
    specification: Optional[str] = Field(None, max_length=200)
    net_content: Optional[str] = Field(None, max_length=100)
    product_size: Optional[str] = Field(None, max_length=100)
    shipping_method: Optional[str] = Field(None, max_length=100)
    shipping_spec: Optional[str] = Field(None, max_length=100)
    shipping_size: Optional[str] = Field(None, max_length=100)
    product_url: Optional[str] = Field(None, max_length=2000)

    @field_validator(
        "product_code",
        "specification",
        "net_content",
        "product_size",
        "shipping_method",
        "shipping_spec",
        "shipping_size",
    )
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_optional_text(v)

    @field_validator("product_url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_product_url(v)


class ProductCreate(ProductFields):
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required.")
        return v


class ProductUpdate(ProductFields):
    name: Optional[str] = Field(None, min_length=1, max_length=200)

    # full replacement when present
    price_tiers: Optional[List[PriceTierIn]] = None
    deleted_attachment_ids: Optional[List[int]] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty.")
        return v


class ProductOut(BaseModel):
    id: int
    owner_type: str
    owner_id: Optional[int] = None
    name: str
    brand_id: Optional[int] = None
    brand_name: Optional[str] = None
    product_code: Optional[str] = None
    specification: Optional[str] = None
    net_content: Optional[str] = None
    product_size: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_spec: Optional[str] = None
    shipping_size: Optional[str] = None
    product_url: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    price_tiers: List[PriceTierOut] = Field(default_factory=list)
    attachments: List[AttachmentOut] = Field(default_factory=list)


class PriceTierCreate(PriceTierIn):
    product_id: int = Field(..., ge=1)


class PriceTierUpdate(BaseModel):
    quantity: Optional[int] = Field(None, ge=1)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
