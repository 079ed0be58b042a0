from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from pallet.core.roles import OwnerType
from pallet.db.base import Base, utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        # COMPANY rows never carry a seller id; SELLER rows always do.
        CheckConstraint(
            "(owner_type = 'COMPANY' AND owner_id IS NULL) OR (owner_type = 'SELLER' AND owner_id IS NOT NULL)",
            name="owner_consistent",
        ),
        Index("ix_products_owner", "owner_type", "owner_id"),
        Index("ix_products_deleted_at", "deleted_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    owner_type: Mapped[str] = mapped_column(String(16), nullable=False, default=OwnerType.COMPANY.value)
    owner_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    brand_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("brands.id"), nullable=True, index=True)
    product_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    specification: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    net_content: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    product_size: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    shipping_method: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    shipping_spec: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    shipping_size: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    product_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Soft delete marker; set together with an open recycle_bin tombstone.
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class PriceTier(Base):
    __tablename__ = "price_tiers"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("price >= 0", name="price_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, onupdate=utcnow, nullable=False
    )
