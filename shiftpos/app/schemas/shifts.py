from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


# ─── Requests ────────────────────────────────────────────────────────────────


class ShiftOpenRequest(BaseModel):
    opening_cash: Decimal
    terminal_name: str
    note: str | None = None

    @field_validator("opening_cash")
    @classmethod
    def opening_cash_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Opening cash cannot be negative")
        return v

    @field_validator("terminal_name")
    @classmethod
    def terminal_name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Terminal name is required")
        if len(v) > 255:
            raise ValueError("Terminal name must be at most 255 characters")
        return v


class ShiftCloseRequest(BaseModel):
    actual_cash: Decimal
    close_note: str | None = None

    @field_validator("actual_cash")
    @classmethod
    def actual_cash_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Actual cash cannot be negative")
        return v


class ShiftApprovalRequest(BaseModel):
    note: str | None = None


# ─── Responses ───────────────────────────────────────────────────────────────


class ShiftSummaryOut(BaseModel):
    transaction_count: int
    total_sales: str
    cash_sales: str
    non_cash_sales: str
    payment_breakdown: dict[str, str]
    total_discount: str
    points_used: int
    points_earned: int
    point_tx_count: int
    big_discount_tx_count: int
    total_refund: str
    cash_refunds: str
    non_cash_refunds: str
    return_count: int
    points_reversed: int
    points_restored: int
    void_count: int
    void_cash_out: str
    return_cancel_cash_in: str
    expected_cash: str


class _ShiftBase(BaseModel):
    id: UUID
    user_id: UUID
    username: str
    terminal_name: str
    opened_at: str
    opening_cash: str
    note: str | None = None


class ActiveShiftOut(_ShiftBase):
    status: Literal["ACTIVE"] = "ACTIVE"


class ClosedShiftOut(_ShiftBase):
    status: Literal["CLOSED"] = "CLOSED"
    closed_at: str
    expected_cash: str
    actual_cash: str
    cash_difference: str
    close_note: str | None = None
    approval_status: Literal["NONE", "PENDING", "APPROVED", "REJECTED"]
    approved_by: UUID | None = None
    approved_at: str | None = None
    approval_note: str | None = None


ShiftOut = Annotated[Union[ActiveShiftOut, ClosedShiftOut], Field(discriminator="status")]


class ShiftWithSummaryOut(BaseModel):
    shift: ShiftOut
    summary: ShiftSummaryOut


class ShiftTransactionOut(BaseModel):
    kind: Literal["SALE", "RETURN"]
    id: UUID
    number: str
    amount: str
    payment_method: str
    status: str
    created_at: str
