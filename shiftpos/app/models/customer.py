from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from shiftpos.app.core.database import Base


class CustomerType(str, enum.Enum):
    REGULAR = "REGULAR"
    MEMBER = "MEMBER"
    VIP = "VIP"


class TierLevel(str, enum.Enum):
    REGULAR = "REGULAR"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class CustomerStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_type: Mapped[CustomerType] = mapped_column(
        Enum(CustomerType), nullable=False, default=CustomerType.REGULAR
    )
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spending: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tier_level: Mapped[TierLevel] = mapped_column(
        Enum(TierLevel), nullable=False, default=TierLevel.REGULAR
    )
    status: Mapped[CustomerStatus] = mapped_column(
        Enum(CustomerStatus), nullable=False, default=CustomerStatus.ACTIVE
    )
    last_purchase_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("total_points >= 0", name="ck_customers_points_non_negative"),
        Index("ix_customers_phone", "phone"),
    )


class PointLog(Base):
    """Append-only ledger of every change to ``Customer.total_points``."""

    __tablename__ = "point_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customers.id"), nullable=False
    )
    sale_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("sales.id"), nullable=True
    )
    return_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("returns.id"), nullable=True
    )
    points_change: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_point_logs_customer", "customer_id"),
        Index("ix_point_logs_sale", "sale_id"),
    )


class LoyaltySettings(Base):
    """Single-row loyalty configuration.  Money columns are minor units."""

    __tablename__ = "loyalty_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    earn_amount_per_point: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=1_000_000
    )
    redeem_amount_per_point: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=10_000
    )
    silver_min_spending: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=100_000_000
    )
    gold_min_spending: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=500_000_000
    )
    platinum_min_spending: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=1_000_000_000
    )
    silver_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(precision=6, scale=2), nullable=False, default=Decimal("1.00")
    )
    gold_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(precision=6, scale=2), nullable=False, default=Decimal("1.25")
    )
    platinum_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(precision=6, scale=2), nullable=False, default=Decimal("1.50")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_loyalty_settings_singleton"),
        CheckConstraint("earn_amount_per_point > 0", name="ck_loyalty_earn_positive"),
        CheckConstraint("redeem_amount_per_point > 0", name="ck_loyalty_redeem_positive"),
    )
