from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, field_validator, model_validator

from shiftpos.app.core.money import to_minor

_MONEY_FIELDS = (
    "earn_amount_per_point",
    "redeem_amount_per_point",
    "silver_min_spending",
    "gold_min_spending",
    "platinum_min_spending",
)


class LoyaltySettingsOut(BaseModel):
    earn_amount_per_point: str
    redeem_amount_per_point: str
    silver_min_spending: str
    gold_min_spending: str
    platinum_min_spending: str
    silver_multiplier: str
    gold_multiplier: str
    platinum_multiplier: str


class LoyaltySettingsUpdate(BaseModel):
    earn_amount_per_point: Decimal | None = None
    redeem_amount_per_point: Decimal | None = None
    silver_min_spending: Decimal | None = None
    gold_min_spending: Decimal | None = None
    platinum_min_spending: Decimal | None = None
    silver_multiplier: Decimal | None = None
    gold_multiplier: Decimal | None = None
    platinum_multiplier: Decimal | None = None

    @field_validator("earn_amount_per_point", "redeem_amount_per_point")
    @classmethod
    def rate_positive(cls, v: Decimal | None) -> Decimal | None:
        # Checked in minor units: 0.001 rounds to zero when stored.
        if v is not None and to_minor(v) <= 0:
            raise ValueError("Point rates must be at least 0.01")
        return v

    @field_validator(
        "silver_min_spending",
        "gold_min_spending",
        "platinum_min_spending",
        "silver_multiplier",
        "gold_multiplier",
        "platinum_multiplier",
    )
    @classmethod
    def non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("Value cannot be negative")
        return v

    @model_validator(mode="after")
    def at_least_one_field(self) -> "LoyaltySettingsUpdate":
        if not self.model_dump(exclude_none=True):
            raise ValueError("No settings to update")
        return self

    @model_validator(mode="after")
    def thresholds_ordered(self) -> "LoyaltySettingsUpdate":
        """Thresholds sent together must rise from silver to platinum.

        Fields left out are checked against the stored row by the service.
        """
        given = [
            v
            for v in (self.silver_min_spending, self.gold_min_spending, self.platinum_min_spending)
            if v is not None
        ]
        if given != sorted(given):
            raise ValueError("Tier thresholds must satisfy silver <= gold <= platinum")
        return self

    def to_fields(self) -> dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        for name in _MONEY_FIELDS:
            if name in data:
                data[name] = to_minor(data[name])
        return data
