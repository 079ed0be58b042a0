from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class RecycleItemOut(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    owner_type: str
    owner_id: Optional[int] = None

    deleted_by: Optional[int] = None
    deleted_at: datetime
    restored_by: Optional[int] = None
    restored_at: Optional[datetime] = None

    # product snapshot
    name: str
    product_code: Optional[str] = None
    brand_id: Optional[int] = None
    brand_name: Optional[str] = None
    specification: Optional[str] = None
    net_content: Optional[str] = None


class RestoreResult(BaseModel):
    recycle_id: int
    product_id: int
    restored_at: datetime
