from __future__ import annotations

import logging
from decimal import Decimal, ROUND_FLOOR
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftpos.app.core import errors
from shiftpos.app.core.database import atomic
from shiftpos.app.models.customer import LoyaltySettings, TierLevel
from shiftpos.app.services.audit import log_action

logger = logging.getLogger(__name__)

SETTINGS_ID = 1

_TIER_THRESHOLDS = ("silver_min_spending", "gold_min_spending", "platinum_min_spending")


def get_loyalty_settings(db: Session) -> LoyaltySettings:
    """Return the settings row.

    The initial migration seeds it; databases built with ``create_all`` get
    the defaults inserted on first use.  A concurrent first insert loses on
    the primary key and reads the winner's row instead.
    """
    row = db.get(LoyaltySettings, SETTINGS_ID)
    if row is not None:
        return row
    try:
        with db.begin_nested():
            row = LoyaltySettings(id=SETTINGS_ID)
            db.add(row)
            db.flush()
    except IntegrityError:
        logger.info("Loyalty settings row created concurrently; reloading")
        row = db.get(LoyaltySettings, SETTINGS_ID, populate_existing=True)
        if row is None:
            raise
    return row


def update_loyalty_settings(
    db: Session, user_id: UUID, changes: dict[str, Any]
) -> LoyaltySettings:
    with atomic(db):
        row = get_loyalty_settings(db)
        for field, value in changes.items():
            setattr(row, field, value)
        thresholds = {name: getattr(row, name) for name in _TIER_THRESHOLDS}
        if list(thresholds.values()) != sorted(thresholds.values()):
            raise errors.validation(
                "Tier thresholds must satisfy silver <= gold <= platinum", thresholds
            )
        log_action(
            db,
            user_id=user_id,
            action="LOYALTY_SETTINGS_UPDATED",
            resource_type="loyalty_settings",
            resource_id=str(SETTINGS_ID),
            changes={k: str(v) for k, v in changes.items()},
        )
    logger.info("Loyalty settings updated by %s: %s", user_id, sorted(changes))
    db.refresh(row)
    return row


def tier_for_spending(total_spending: int, loyalty: LoyaltySettings) -> TierLevel:
    if total_spending >= loyalty.platinum_min_spending:
        return TierLevel.PLATINUM
    if total_spending >= loyalty.gold_min_spending:
        return TierLevel.GOLD
    if total_spending >= loyalty.silver_min_spending:
        return TierLevel.SILVER
    return TierLevel.REGULAR


def tier_multiplier(tier: TierLevel, loyalty: LoyaltySettings) -> Decimal:
    if tier == TierLevel.PLATINUM:
        return Decimal(str(loyalty.platinum_multiplier))
    if tier == TierLevel.GOLD:
        return Decimal(str(loyalty.gold_multiplier))
    if tier == TierLevel.SILVER:
        return Decimal(str(loyalty.silver_multiplier))
    return Decimal("1")


def points_for_amount(amount: int, tier: TierLevel, loyalty: LoyaltySettings) -> int:
    """floor(amount / earn_amount_per_point * multiplier)."""
    if amount <= 0:
        return 0
    raw = Decimal(amount) / Decimal(loyalty.earn_amount_per_point) * tier_multiplier(tier, loyalty)
    return int(raw.to_integral_value(rounding=ROUND_FLOOR))


def max_redeemable_points(amount: int, available: int, loyalty: LoyaltySettings) -> int:
    """Points that can be spent against *amount* without exceeding it."""
    if amount <= 0 or available <= 0:
        return 0
    return min(available, amount // loyalty.redeem_amount_per_point)
