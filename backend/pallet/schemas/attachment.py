from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from pallet.core.roles import EntityType
from pallet.schemas.product import AttachmentOut


class AttachmentUploadOut(AttachmentOut):
    # BRAND uploads
    logo_url: Optional[str] = None
    # USER uploads
    avatar: Optional[str] = None
    wechat_qrcode: Optional[str] = None


class AttachmentRebind(BaseModel):
    entity_id: int = Field(..., ge=1)
    entity_type: EntityType = EntityType.PRODUCT
