from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from shiftpos.app.api.permission_deps import require_permission
from shiftpos.app.core.database import get_db
from shiftpos.app.core.money import from_basis_points, from_minor
from shiftpos.app.models.discount import Discount, DiscountType
from shiftpos.app.models.user import User
from shiftpos.app.schemas.discounts import DiscountCreate, DiscountOut
from shiftpos.app.services.discounts import create_discount, list_discounts

router = APIRouter()


def _to_out(discount: Discount) -> DiscountOut:
    if discount.discount_type == DiscountType.PERCENTAGE:
        value = from_basis_points(discount.value)
    else:
        value = from_minor(discount.value)
    return DiscountOut(
        id=discount.id,
        name=discount.name,
        discount_type=discount.discount_type.value,
        value=str(value),
        applies_to=discount.applies_to.value,
        product_id=discount.product_id,
        category_id=discount.category_id,
        brand_id=discount.brand_id,
        customer_type=discount.customer_type.value if discount.customer_type else None,
        start_date=discount.start_date.isoformat() if discount.start_date else None,
        end_date=discount.end_date.isoformat() if discount.end_date else None,
        active=discount.active,
        status=discount.status.value,
        minimum_purchase=str(from_minor(discount.minimum_purchase)),
        priority_level=discount.priority_level,
        stackable=discount.stackable,
    )


@router.get("", response_model=list[DiscountOut])
def get_discounts(
    active_only: bool = False,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("discount:read")),
) -> list[DiscountOut]:
    return [_to_out(d) for d in list_discounts(db, active_only=active_only)]


@router.post("", response_model=DiscountOut, status_code=status.HTTP_201_CREATED)
def add_discount(
    payload: DiscountCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("discount:write")),
) -> DiscountOut:
    return _to_out(create_discount(db, current_user.id, payload.to_fields()))
