from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from shiftpos.app.core.database import Base
from shiftpos.app.models.customer import CustomerType


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class DiscountTarget(str, enum.Enum):
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"
    BRAND = "BRAND"
    GLOBAL = "GLOBAL"
    CUSTOMER = "CUSTOMER"


LINE_TARGETS = frozenset({DiscountTarget.PRODUCT, DiscountTarget.CATEGORY, DiscountTarget.BRAND})
CART_TARGETS = frozenset({DiscountTarget.GLOBAL, DiscountTarget.CUSTOMER})


class DiscountStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Discount(Base):
    """Promotion rule.

    ``value`` is in basis points for PERCENTAGE (1000 = 10%) and in minor
    units for FIXED_AMOUNT (per unit on a line, flat on the cart).
    """

    __tablename__ = "discounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    discount_type: Mapped[DiscountType] = mapped_column(Enum(DiscountType), nullable=False)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    applies_to: Mapped[DiscountTarget] = mapped_column(Enum(DiscountTarget), nullable=False)
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("products.id"), nullable=True
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("categories.id"), nullable=True
    )
    brand_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("brands.id"), nullable=True
    )
    customer_type: Mapped[CustomerType | None] = mapped_column(
        Enum(CustomerType), nullable=True
    )
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[DiscountStatus] = mapped_column(
        Enum(DiscountStatus), nullable=False, default=DiscountStatus.ACTIVE
    )
    minimum_purchase: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    priority_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stackable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("value > 0", name="ck_discounts_value_positive"),
        CheckConstraint(
            "discount_type != 'PERCENTAGE' OR value <= 10000",
            name="ck_discounts_percentage_range",
        ),
        CheckConstraint("minimum_purchase >= 0", name="ck_discounts_minimum_non_negative"),
        Index("ix_discounts_active_status", "active", "status"),
        Index("ix_discounts_priority", "priority_level"),
    )
