"""Ledger primitives shared by the sale and return engines.

Product stock and customer points are never owned by one engine; every
mutation goes through these helpers so the non-negativity guarantees hold
regardless of which transaction touches the row.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from shiftpos.app.core import errors
from shiftpos.app.models.customer import Customer, LoyaltySettings, PointLog
from shiftpos.app.models.inventory import Product
from shiftpos.app.services.loyalty import tier_for_spending


# ─── Stock ───────────────────────────────────────────────────────────────────


def lock_products(db: Session, product_ids: set[UUID]) -> dict[UUID, Product]:
    """Lock product rows in id order so concurrent carts cannot deadlock."""
    products = (
        db.query(Product)
        .filter(Product.id.in_(list(product_ids)))
        .order_by(Product.id)
        .with_for_update()
        .all()
    )
    return {p.id: p for p in products}


def decrement_stock(db: Session, product: Product, pieces: int) -> None:
    """Take *pieces* out of stock or raise INSUFFICIENT_STOCK.

    The decrement is a single conditional UPDATE, so two transactions can
    never both succeed against the same remaining stock.
    """
    updated = (
        db.query(Product)
        .filter(Product.id == product.id, Product.stock >= pieces)
        .update({Product.stock: Product.stock - pieces}, synchronize_session=False)
    )
    if updated != 1:
        available = db.query(Product.stock).filter(Product.id == product.id).scalar()
        raise errors.conflict(
            "INSUFFICIENT_STOCK",
            f"Insufficient stock for '{product.name}'",
            {
                "product_id": str(product.id),
                "product_name": product.name,
                "required": pieces,
                "available": available,
            },
        )
    db.expire(product, ["stock"])


def restore_stock(db: Session, product_id: UUID, pieces: int) -> None:
    db.query(Product).filter(Product.id == product_id).update(
        {Product.stock: Product.stock + pieces}, synchronize_session=False
    )
    product = db.get(Product, product_id)
    if product is not None:
        db.expire(product, ["stock"])


# ─── Customer points & spending ──────────────────────────────────────────────


def lock_customer(db: Session, customer_id: UUID) -> Customer | None:
    return (
        db.query(Customer)
        .filter(Customer.id == customer_id)
        .with_for_update()
        .first()
    )


def change_points(
    db: Session,
    customer: Customer,
    delta: int,
    reason: str,
    *,
    sale_id: UUID | None = None,
    return_id: UUID | None = None,
) -> None:
    """Apply *delta* to the customer's balance and append a point log entry."""
    if delta == 0:
        return
    if customer.total_points + delta < 0:
        raise errors.conflict(
            "INSUFFICIENT_POINTS",
            "Customer does not have enough points for this operation",
            {
                "customer_id": str(customer.id),
                "available": customer.total_points,
                "required": -delta,
            },
        )
    customer.total_points += delta
    db.add(
        PointLog(
            customer_id=customer.id,
            sale_id=sale_id,
            return_id=return_id,
            points_change=delta,
            reason=reason,
        )
    )


def change_spending(customer: Customer, delta: int, loyalty: LoyaltySettings) -> None:
    customer.total_spending += delta
    customer.tier_level = tier_for_spending(customer.total_spending, loyalty)
