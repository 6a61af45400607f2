from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, field_validator

from shiftpos.app.models.pos import PaymentMethod


# ─── Request ──────────────────────────────────────────────────────────────────


class ReturnItemIn(BaseModel):
    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Return quantity must be greater than zero")
        return v


class ReturnRequest(BaseModel):
    sale_id: UUID
    items: list[ReturnItemIn]
    refund_method: PaymentMethod = PaymentMethod.CASH
    reason: str | None = None

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[ReturnItemIn]) -> list[ReturnItemIn]:
        if not v:
            raise ValueError("Return must contain at least one item")
        return v


class ReturnCancelRequest(BaseModel):
    reason: str | None = None


# ─── Response ─────────────────────────────────────────────────────────────────


class ReturnItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product_name: str
    quantity: int
    refund_amount: str


class ReturnOut(BaseModel):
    id: UUID
    return_number: str
    sale_id: UUID
    invoice_no: str
    shift_id: UUID
    cashier_id: UUID
    customer_id: UUID | None = None
    refund_method: str
    total_refund: str
    points_reversed: int
    points_restored: int
    reason: str | None = None
    status: str
    created_at: str
    cancelled_at: str | None = None
    cancelled_by: UUID | None = None
    cancelled_shift_id: UUID | None = None
    items: list[ReturnItemOut] = []
