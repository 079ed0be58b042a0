from __future__ import annotations

import math
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    code: int = 200
    success: bool = True
    message: str = "success"
    data: Optional[T] = None


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, *, page: int, page_size: int, total: int) -> "Pagination":
        return cls(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )


class Page(BaseModel, Generic[T]):
    items: List[T]
    pagination: Pagination


class BatchResult(BaseModel):
    total: int
    success: int
    failed: int
    failed_ids: List[int] = Field(default_factory=list)


class ConfirmRequest(BaseModel):
    confirm: bool = False


class IdList(BaseModel):
    ids: List[int] = Field(..., min_length=1, max_length=100)
    confirm: bool = False
