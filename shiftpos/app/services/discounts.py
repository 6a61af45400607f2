"""Discount resolution for a cart.

Given the discounts currently in force, decide which ones apply to each
line and to the cart as a whole, and how much each one takes off.  The
result tags every amount with the discount that produced it so returns can
later reverse exactly what was granted.

Rules:

* candidates are evaluated by ``priority_level`` descending, ties broken by
  discount id ascending;
* a non-stackable discount applies only to a scope nothing has touched yet,
  and once applied it blocks every later candidate on that scope;
* ``minimum_purchase`` is compared with the line's gross amount (line scope)
  or the cart subtotal after line discounts (cart scope);
* no amount ever drives its scope below zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from shiftpos.app.core import errors
from shiftpos.app.core.database import atomic
from shiftpos.app.core.money import apply_basis_points
from shiftpos.app.models.customer import CustomerType
from shiftpos.app.models.discount import (
    CART_TARGETS,
    Discount,
    DiscountStatus,
    DiscountTarget,
    DiscountType,
)
from shiftpos.app.services.audit import log_action

logger = logging.getLogger(__name__)

_TARGET_FIELDS: dict[DiscountTarget, str] = {
    DiscountTarget.PRODUCT: "product_id",
    DiscountTarget.CATEGORY: "category_id",
    DiscountTarget.BRAND: "brand_id",
}


@dataclass
class AppliedDiscount:
    discount_id: UUID
    amount: int


@dataclass
class ScopeDiscount:
    applied: list[AppliedDiscount] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(a.amount for a in self.applied)

    @property
    def primary_id(self) -> UUID | None:
        return self.applied[0].discount_id if self.applied else None


@dataclass
class CartLine:
    product_id: UUID
    category_id: UUID | None
    brand_id: UUID | None
    quantity: int
    gross_amount: int


@dataclass
class DiscountResolution:
    lines: list[ScopeDiscount]
    cart: ScopeDiscount

    @property
    def item_discount_total(self) -> int:
        return sum(line.total for line in self.lines)


def load_active_discounts(db: Session, now: datetime | None = None) -> list[Discount]:
    """Discounts that are switched on and inside their validity window."""
    now = now or datetime.now(timezone.utc)
    rows = (
        db.query(Discount)
        .filter(
            Discount.active.is_(True),
            Discount.status == DiscountStatus.ACTIVE,
            or_(Discount.start_date.is_(None), Discount.start_date <= now),
            or_(Discount.end_date.is_(None), Discount.end_date >= now),
        )
        .all()
    )
    return sort_candidates(rows)


def sort_candidates(discounts: list[Discount]) -> list[Discount]:
    return sorted(discounts, key=lambda d: (-d.priority_level, str(d.id)))


def _customer_matches(discount: Discount, customer_type: CustomerType | None) -> bool:
    if discount.customer_type is None:
        return True
    return customer_type is not None and discount.customer_type == customer_type


def _line_matches(discount: Discount, line: CartLine) -> bool:
    if discount.applies_to == DiscountTarget.PRODUCT:
        return discount.product_id is not None and discount.product_id == line.product_id
    if discount.applies_to == DiscountTarget.CATEGORY:
        return discount.category_id is not None and discount.category_id == line.category_id
    if discount.applies_to == DiscountTarget.BRAND:
        return discount.brand_id is not None and discount.brand_id == line.brand_id
    return False


def _amount_for(discount: Discount, base: int, quantity: int | None) -> int:
    if discount.discount_type == DiscountType.PERCENTAGE:
        return apply_basis_points(base, discount.value)
    if quantity is not None:
        return discount.value * quantity
    return discount.value


def _apply_scope(
    candidates: list[Discount], base: int, quantity: int | None
) -> ScopeDiscount:
    scope = ScopeDiscount()
    remaining = base
    for discount in candidates:
        if base < discount.minimum_purchase:
            continue
        if not discount.stackable and scope.applied:
            continue
        amount = min(_amount_for(discount, base, quantity), remaining)
        if amount > 0:
            scope.applied.append(AppliedDiscount(discount_id=discount.id, amount=amount))
            remaining -= amount
        if not discount.stackable:
            break
    return scope


def resolve_discounts(
    discounts: list[Discount],
    lines: list[CartLine],
    *,
    has_customer: bool,
    customer_type: CustomerType | None,
) -> DiscountResolution:
    """Resolve line and cart discounts; *discounts* must already be sorted."""
    eligible = [d for d in discounts if _customer_matches(d, customer_type)]

    line_results: list[ScopeDiscount] = []
    for line in lines:
        candidates = [d for d in eligible if _line_matches(d, line)]
        line_results.append(_apply_scope(candidates, line.gross_amount, line.quantity))

    subtotal = sum(line.gross_amount for line in lines) - sum(r.total for r in line_results)
    cart_candidates = [
        d
        for d in eligible
        if d.applies_to in CART_TARGETS
        and (d.applies_to != DiscountTarget.CUSTOMER or has_customer)
    ]
    cart = _apply_scope(cart_candidates, subtotal, None)
    return DiscountResolution(lines=line_results, cart=cart)


# ─── Administration ──────────────────────────────────────────────────────────


def list_discounts(db: Session, *, active_only: bool = False) -> list[Discount]:
    if active_only:
        return load_active_discounts(db)
    return sort_candidates(db.query(Discount).all())


def create_discount(db: Session, user_id: UUID, fields: dict[str, Any]) -> Discount:
    """Insert a discount rule; *fields* are already in storage units."""
    applies_to = fields["applies_to"]
    target_field = _TARGET_FIELDS.get(applies_to)
    if target_field is not None and fields.get(target_field) is None:
        raise errors.validation(
            f"{target_field} is required for {applies_to.value} discounts",
            {"field": target_field},
        )
    start, end = fields.get("start_date"), fields.get("end_date")
    if start is not None and end is not None and end < start:
        raise errors.validation("end_date must not be before start_date", {"field": "end_date"})

    with atomic(db):
        discount = Discount(**fields)
        db.add(discount)
        db.flush()
        log_action(
            db,
            user_id=user_id,
            action="DISCOUNT_CREATED",
            resource_type="discounts",
            resource_id=str(discount.id),
            changes={
                "name": discount.name,
                "discount_type": discount.discount_type.value,
                "value": discount.value,
                "applies_to": discount.applies_to.value,
                "priority_level": discount.priority_level,
                "stackable": discount.stackable,
            },
        )
    db.refresh(discount)
    logger.info("Discount %s (%s) created by %s", discount.id, discount.name, user_id)
    return discount
