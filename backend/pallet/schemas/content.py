from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class StaticPageIn(BaseModel):
    content: str = Field(default="", max_length=200_000)


class StaticPageOut(BaseModel):
    page_type: str
    content: str = ""
    updated_by: Optional[int] = None
    updated_at: Optional[datetime] = None


class PaginationSettingIn(BaseModel):
    page_size: Literal[10, 20, 50, 100]


class PaginationSettingOut(BaseModel):
    page_size: int
