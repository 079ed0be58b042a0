from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel

from pallet.schemas.common import Pagination


class SearchFieldOut(BaseModel):
    field: str
    label: str
    default: bool


class SearchResult(BaseModel):
    module: str
    keyword: str
    # rows keep the shape of the module's own listing endpoint
    items: List[Dict[str, Any]]
    pagination: Pagination
