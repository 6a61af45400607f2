from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiftpos.app.core.database import Base
from shiftpos.app.models.pos import PaymentMethod


# ─── Enums ────────────────────────────────────────────────────────────────────


class ReturnStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# ─── Return (Header) ─────────────────────────────────────────────────────────


class Return(Base):
    """Partial or full return against a completed sale.

    A cancelled return keeps its row (status CANCELLED) for audit; only
    COMPLETED returns count towards the returned quantity of a sale.
    """

    __tablename__ = "returns"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    return_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    sale_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    shift_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("shifts.id"), nullable=False)
    cashier_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("customers.id"), nullable=True
    )
    refund_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    total_refund: Mapped[int] = mapped_column(BigInteger, nullable=False)
    points_reversed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_restored: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ReturnStatus] = mapped_column(
        Enum(ReturnStatus), nullable=False, default=ReturnStatus.COMPLETED
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    cancelled_shift_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("shifts.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    items: Mapped[list[ReturnItem]] = relationship(
        back_populates="return_", cascade="all, delete-orphan"
    )
    sale = relationship("Sale")

    __table_args__ = (
        CheckConstraint("total_refund >= 0", name="ck_returns_refund_non_negative"),
        CheckConstraint(
            "(status = 'COMPLETED' AND cancelled_at IS NULL)"
            " OR (status = 'CANCELLED' AND cancelled_at IS NOT NULL)",
            name="ck_returns_state",
        ),
        Index("ix_returns_sale", "sale_id"),
        Index("ix_returns_shift", "shift_id"),
        Index("ix_returns_cancelled_shift", "cancelled_shift_id"),
        Index("ix_returns_created_at", "created_at"),
    )


# ─── Return Item (Lines) ─────────────────────────────────────────────────────


class ReturnItem(Base):
    """Returned pieces of one product.

    ``redeemed_share`` is the part of the sale's redeemed amount attributed
    to these pieces; it drives the proportional restoration of points.
    """

    __tablename__ = "return_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    return_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("returns.id"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    refund_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    redeemed_share: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    return_: Mapped[Return] = relationship(back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_return_items_quantity_positive"),
        Index("ix_return_items_return", "return_id"),
        Index("ix_return_items_product", "product_id"),
    )
