from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from pallet.core.roles import ShareType
from pallet.schemas.auth import StoreOut
from pallet.schemas.common import Page
from pallet.schemas.product import ProductOut


class ShareCreate(BaseModel):
    share_type: ShareType = ShareType.FULL


class ShareOut(BaseModel):
    token: str
    share_url: str
    share_type: str
    pallet_type: str
    access_count: int = 0
    last_accessed: Optional[datetime] = None
    created_at: datetime


class QrcodeRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=64)
    size: int = Field(500, ge=100, le=2000)


class QrcodeOut(BaseModel):
    qrcode_url: str
    share_url: str


class ShareOwner(BaseModel):
    id: int
    name: str
    company: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None
    wechat_qrcode: Optional[str] = None
    stores: List[StoreOut] = Field(default_factory=list)


class ShareInfo(BaseModel):
    token: str
    access_count: int
    last_accessed: Optional[datetime] = None


class SharedPallet(BaseModel):
    owner: ShareOwner
    pallet_type: str
    share: ShareInfo
    products: Page[ProductOut]
