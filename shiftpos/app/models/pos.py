from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
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
    text,
)
from sqlalchemy.orm import Mapped, MappedColumn, mapped_column, relationship

from shiftpos.app.core.database import Base
from shiftpos.app.models.inventory import UnitType


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"


class ShiftStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class ApprovalStatus(str, enum.Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SaleStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


def _counter() -> MappedColumn[int]:
    return mapped_column(BigInteger, nullable=False, default=0)


class Shift(Base):
    """Cashier working session at one terminal.

    Money columns are minor units.  The counter columns are maintained by
    every sale, void, return and return-cancel while the shift is ACTIVE and
    are frozen by close; they are never recomputed afterwards.
    """

    __tablename__ = "shifts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    terminal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ShiftStatus] = mapped_column(
        Enum(ShiftStatus), nullable=False, default=ShiftStatus.ACTIVE
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus), nullable=False, default=ApprovalStatus.NONE
    )
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    opening_cash: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    expected_cash: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    actual_cash: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    cash_difference: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    close_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approval_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Aggregate counters ────────────────────────────────────────────────
    transaction_count: Mapped[int] = _counter()
    total_sales: Mapped[int] = _counter()
    cash_sales: Mapped[int] = _counter()
    non_cash_sales: Mapped[int] = _counter()
    payment_breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    total_discount: Mapped[int] = _counter()
    points_used: Mapped[int] = _counter()
    points_earned: Mapped[int] = _counter()
    point_tx_count: Mapped[int] = _counter()
    big_discount_tx_count: Mapped[int] = _counter()
    total_refund: Mapped[int] = _counter()
    cash_refunds: Mapped[int] = _counter()
    non_cash_refunds: Mapped[int] = _counter()
    return_count: Mapped[int] = _counter()
    points_reversed: Mapped[int] = _counter()
    points_restored: Mapped[int] = _counter()
    void_count: Mapped[int] = _counter()
    void_cash_out: Mapped[int] = _counter()
    return_cancel_cash_in: Mapped[int] = _counter()

    user = relationship("User", foreign_keys=[user_id])
    approver = relationship("User", foreign_keys=[approved_by])

    __table_args__ = (
        CheckConstraint(
            "(status = 'ACTIVE' AND approval_status = 'NONE'"
            " AND closed_at IS NULL AND actual_cash IS NULL)"
            " OR (status = 'CLOSED' AND closed_at IS NOT NULL"
            " AND actual_cash IS NOT NULL AND expected_cash IS NOT NULL"
            " AND cash_difference IS NOT NULL)",
            name="ck_shifts_state",
        ),
        Index(
            "uq_shifts_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        Index(
            "uq_shifts_active_terminal",
            "terminal_name",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        Index("ix_shifts_status", "status"),
        Index("ix_shifts_approval_status", "approval_status"),
        Index("ix_shifts_opened_at", "opened_at"),
    )


class Sale(Base):
    __tablename__ = "sales"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_no: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    shift_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("shifts.id"), nullable=False)
    cashier_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("customers.id"), nullable=True
    )
    subtotal: Mapped[int] = mapped_column(BigInteger, nullable=False)
    item_discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    global_discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    applied_global_discount_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("discounts.id"), nullable=True
    )
    redeemed_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    redeemed_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    status: Mapped[SaleStatus] = mapped_column(
        Enum(SaleStatus), nullable=False, default=SaleStatus.COMPLETED
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

    items: Mapped[list[SaleItem]] = relationship(
        back_populates="sale", cascade="all, delete-orphan", order_by="SaleItem.line_no"
    )
    discount_lines: Mapped[list[SaleDiscountLine]] = relationship(
        back_populates="sale", cascade="all, delete-orphan"
    )
    cashier = relationship("User", foreign_keys=[cashier_id])
    customer = relationship("Customer")

    __table_args__ = (
        CheckConstraint("final_amount >= 0", name="ck_sales_final_non_negative"),
        CheckConstraint(
            "(status = 'COMPLETED' AND cancelled_at IS NULL)"
            " OR (status = 'CANCELLED' AND cancelled_at IS NOT NULL)",
            name="ck_sales_state",
        ),
        Index("ix_sales_shift", "shift_id"),
        Index("ix_sales_cancelled_shift", "cancelled_shift_id"),
        Index("ix_sales_cashier", "cashier_id"),
        Index("ix_sales_customer", "customer_id"),
        Index("ix_sales_created_at", "created_at"),
    )


class SaleItem(Base):
    """One cart line.

    ``net_amount`` is the line's share of ``Sale.final_amount`` after line,
    cart and points deductions; the shares of a sale sum to its final amount.
    """

    __tablename__ = "sale_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_type: Mapped[UnitType] = mapped_column(Enum(UnitType), nullable=False)
    conversion_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    price_at_sale: Mapped[int] = mapped_column(BigInteger, nullable=False)
    gross_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    applied_discount_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("discounts.id"), nullable=True
    )
    subtotal: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    redeemed_share: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    sale: Mapped[Sale] = relationship(back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        CheckConstraint("net_amount >= 0", name="ck_sale_items_net_non_negative"),
        Index("ix_sale_items_sale", "sale_id"),
        Index("ix_sale_items_product", "product_id"),
    )


class SaleDiscountLine(Base):
    """Amount contributed by one discount; ``sale_item_id`` NULL means cart scope."""

    __tablename__ = "sale_discount_lines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    sale_item_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("sale_items.id"), nullable=True
    )
    discount_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("discounts.id"), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    sale: Mapped[Sale] = relationship(back_populates="discount_lines")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_sale_discount_lines_amount_positive"),
        Index("ix_sale_discount_lines_sale", "sale_id"),
    )


class SuspendedSale(Base):
    """Parked cart; recalling it deletes the row and returns the payload."""

    __tablename__ = "suspended_sales"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    cashier_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("customers.id"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (Index("ix_suspended_sales_cashier", "cashier_id"),)
