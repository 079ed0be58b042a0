from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from pallet.db.base import Base, utcnow


class Attachment(Base):
    """
    A stored file bound to (entity_type, entity_id).

    entity_id 0 is a placeholder for uploads made before the owning row exists;
    the attachment is rebound to the real id afterwards.
    """

    __tablename__ = "attachments"
    __table_args__ = (
        CheckConstraint("entity_id >= 0", name="entity_id_non_negative"),
        Index("ix_attachments_entity", "entity_type", "entity_id", "file_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # PRODUCT | BRAND | USER
    entity_type: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # IMAGE | MATERIAL
    file_type: Mapped[str] = mapped_column(String(16), nullable=False)
    # USER images only: avatar | qrcode
    slot: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Canonical web path, e.g. /uploads/images/<uuid>.png
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    created_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False
    )
