from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, field_validator

from shiftpos.app.models.inventory import UnitType
from shiftpos.app.models.pos import PaymentMethod


# ─── Request ──────────────────────────────────────────────────────────────────


class CartItem(BaseModel):
    product_id: UUID
    quantity: int
    unit_type: UnitType = UnitType.PCS

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class CheckoutRequest(BaseModel):
    items: list[CartItem]
    customer_id: UUID | None = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    redeem_points: int = 0

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[CartItem]) -> list[CartItem]:
        if not v:
            raise ValueError("Cart must contain at least one item")
        return v

    @field_validator("redeem_points")
    @classmethod
    def redeem_points_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Redeemed points cannot be negative")
        return v


class VoidRequest(BaseModel):
    reason: str | None = None


class SuspendRequest(BaseModel):
    items: list[CartItem]
    customer_id: UUID | None = None
    payment_method: PaymentMethod | None = None
    redeem_points: int = 0
    note: str | None = None

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[CartItem]) -> list[CartItem]:
        if not v:
            raise ValueError("Cart must contain at least one item")
        return v


# ─── Response ─────────────────────────────────────────────────────────────────


class SaleItemOut(BaseModel):
    id: UUID
    line_no: int
    product_id: UUID
    product_name: str
    quantity: int
    unit_type: str
    conversion_qty: int
    price_at_sale: str
    gross_amount: str
    discount_amount: str
    applied_discount_id: UUID | None = None
    subtotal: str
    net_amount: str


class SaleDiscountOut(BaseModel):
    discount_id: UUID
    sale_item_id: UUID | None = None
    amount: str


class ReturnableOut(BaseModel):
    product_id: UUID
    sold_qty: int
    returned_qty: int
    returnable_qty: int


class SaleOut(BaseModel):
    id: UUID
    invoice_no: str
    shift_id: UUID
    cashier_id: UUID
    customer_id: UUID | None = None
    subtotal: str
    item_discount_amount: str
    global_discount_amount: str
    discount_amount: str
    redeemed_points: int
    redeemed_amount: str
    points_earned: int
    final_amount: str
    payment_method: str
    status: str
    created_at: str
    cancelled_at: str | None = None
    cancelled_by: UUID | None = None
    cancelled_shift_id: UUID | None = None
    items: list[SaleItemOut] = []
    discounts: list[SaleDiscountOut] = []
    returnable: list[ReturnableOut] = []


class SuspendedSaleOut(BaseModel):
    id: UUID
    customer_id: UUID | None = None
    note: str | None = None
    payload: dict[str, Any]
    created_at: str
