from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shiftpos.app.api.permission_deps import require_permission
from shiftpos.app.core.database import get_db
from shiftpos.app.core.money import from_minor
from shiftpos.app.models.customer import LoyaltySettings
from shiftpos.app.models.user import User
from shiftpos.app.schemas.loyalty import LoyaltySettingsOut, LoyaltySettingsUpdate
from shiftpos.app.services.loyalty import get_loyalty_settings, update_loyalty_settings

router = APIRouter()


def _to_out(row: LoyaltySettings) -> LoyaltySettingsOut:
    return LoyaltySettingsOut(
        earn_amount_per_point=str(from_minor(row.earn_amount_per_point)),
        redeem_amount_per_point=str(from_minor(row.redeem_amount_per_point)),
        silver_min_spending=str(from_minor(row.silver_min_spending)),
        gold_min_spending=str(from_minor(row.gold_min_spending)),
        platinum_min_spending=str(from_minor(row.platinum_min_spending)),
        silver_multiplier=str(row.silver_multiplier),
        gold_multiplier=str(row.gold_multiplier),
        platinum_multiplier=str(row.platinum_multiplier),
    )


@router.get("/settings", response_model=LoyaltySettingsOut)
def read_settings(
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("loyalty:read")),
) -> LoyaltySettingsOut:
    row = get_loyalty_settings(db)
    out = _to_out(row)
    db.commit()
    return out


@router.put("/settings", response_model=LoyaltySettingsOut)
def write_settings(
    payload: LoyaltySettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("loyalty:write")),
) -> LoyaltySettingsOut:
    return _to_out(update_loyalty_settings(db, current_user.id, payload.to_fields()))
