from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from pallet.core.roles import ShareType
from pallet.db.base import Base, utcnow


class PalletShare(Base):
    __tablename__ = "pallet_shares"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    share_type: Mapped[str] = mapped_column(String(16), nullable=False, default=ShareType.FULL.value)
    # Snapshot of the issuer's catalog at issuance: COMPANY | SELLER. Never re-derived.
    pallet_type: Mapped[str] = mapped_column(String(16), nullable=False)

    access_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False
    )


class CustomerLog(Base):
    """Append-only visit record for a share link."""

    __tablename__ = "customer_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    share_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("pallet_shares.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    access_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False, index=True
    )
