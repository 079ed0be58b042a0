from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CustomerLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    share_id: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    access_time: dt.datetime


class AccessLogOut(CustomerLogOut):
    token: str
    issuer_id: int
    issuer_name: Optional[str] = None


class ShareSummary(BaseModel):
    id: int
    token: str
    user_id: int
    pallet_type: str
    access_count: int
    last_accessed: Optional[dt.datetime] = None
    created_at: dt.datetime


class DeviceBreakdown(BaseModel):
    mobile: int = 0
    desktop: int = 0


class DailyVisits(BaseModel):
    date: dt.date
    visits: int


class ClientAnalysis(BaseModel):
    share: ShareSummary
    total_visits: int
    unique_visitors: int
    devices: DeviceBreakdown
    daily_stats: List[DailyVisits] = Field(default_factory=list)
    recent_logs: List[CustomerLogOut] = Field(default_factory=list)
