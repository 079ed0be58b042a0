from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from pallet.db.base import Base, utcnow


class RecycleBinEntry(Base):
    """
    Tombstone for a soft-deleted entity.

    owner_type/owner_id are captured at recycle time and are what restore and
    purge authorize against. Restored tombstones are kept for audit.
    """

    __tablename__ = "recycle_bin"
    __table_args__ = (
        Index("ix_recycle_bin_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    entity_type: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    owner_type: Mapped[str] = mapped_column(String(16), nullable=False)
    owner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    deleted_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    deleted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False
    )

    restored_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    restored_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
