from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator

from shiftpos.app.core.money import to_basis_points, to_minor
from shiftpos.app.models.customer import CustomerType
from shiftpos.app.models.discount import DiscountStatus, DiscountTarget, DiscountType


class DiscountCreate(BaseModel):
    """``value`` is a percent for PERCENTAGE and a currency amount for FIXED_AMOUNT."""

    name: str
    discount_type: DiscountType
    value: Decimal
    applies_to: DiscountTarget
    product_id: UUID | None = None
    category_id: UUID | None = None
    brand_id: UUID | None = None
    customer_type: CustomerType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    active: bool = True
    status: DiscountStatus = DiscountStatus.ACTIVE
    minimum_purchase: Decimal = Decimal("0")
    priority_level: int = 0
    stackable: bool = False

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("value")
    @classmethod
    def value_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Discount value must be greater than zero")
        return v

    @field_validator("minimum_purchase")
    @classmethod
    def minimum_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Minimum purchase cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_discount(self) -> "DiscountCreate":
        if self.discount_type == DiscountType.PERCENTAGE and self.value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def to_fields(self) -> dict[str, Any]:
        data = self.model_dump()
        if self.discount_type == DiscountType.PERCENTAGE:
            data["value"] = to_basis_points(self.value)
        else:
            data["value"] = to_minor(self.value)
        data["minimum_purchase"] = to_minor(self.minimum_purchase)
        return data


class DiscountOut(BaseModel):
    id: UUID
    name: str
    discount_type: str
    value: str
    applies_to: str
    product_id: UUID | None = None
    category_id: UUID | None = None
    brand_id: UUID | None = None
    customer_type: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    active: bool
    status: str
    minimum_purchase: str
    priority_level: int
    stackable: bool
