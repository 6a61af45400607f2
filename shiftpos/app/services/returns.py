from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from shiftpos.app.core import errors
from shiftpos.app.core.database import atomic
from shiftpos.app.core.money import prorate
from shiftpos.app.core.permissions import is_supervisor
from shiftpos.app.models.inventory import Product
from shiftpos.app.models.pos import PaymentMethod, Sale, SaleStatus, ShiftStatus
from shiftpos.app.models.returns import Return, ReturnItem, ReturnStatus
from shiftpos.app.models.user import User
from shiftpos.app.services.audit import log_action
from shiftpos.app.services.ledger import (
    change_points,
    change_spending,
    decrement_stock,
    lock_customer,
    restore_stock,
)
from shiftpos.app.services.loyalty import get_loyalty_settings
from shiftpos.app.services.numbering import insert_with_document_number
from shiftpos.app.services.shift_aggregates import (
    apply_to_shift,
    return_cancel_totals,
    return_totals,
)
from shiftpos.app.services.shifts import lock_shift, require_active_shift

logger = logging.getLogger(__name__)

RETURN_PREFIX = "RET"


# ─── Returnable quantities ───────────────────────────────────────────────────


def _sold_by_product(sale: Sale) -> dict[UUID, dict[str, int]]:
    """Pieces, net amount and redeemed share per product on a sale."""
    sold: dict[UUID, dict[str, int]] = defaultdict(
        lambda: {"pieces": 0, "net": 0, "redeemed": 0}
    )
    for item in sale.items:
        entry = sold[item.product_id]
        entry["pieces"] += item.conversion_qty
        entry["net"] += item.net_amount
        entry["redeemed"] += item.redeemed_share
    return dict(sold)


def returned_quantities(db: Session, sale_id: UUID) -> dict[UUID, int]:
    """Pieces already returned per product, counting COMPLETED returns only."""
    returned: dict[UUID, int] = defaultdict(int)
    rows = (
        db.query(ReturnItem.product_id, ReturnItem.quantity)
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(Return.sale_id == sale_id, Return.status == ReturnStatus.COMPLETED)
        .all()
    )
    for product_id, quantity in rows:
        returned[product_id] += quantity
    return dict(returned)


def returnable_summary(db: Session, sale: Sale) -> list[dict[str, Any]]:
    already = returned_quantities(db, sale.id)
    summary: list[dict[str, Any]] = []
    for product_id, entry in _sold_by_product(sale).items():
        returned = already.get(product_id, 0)
        summary.append(
            {
                "product_id": product_id,
                "sold_qty": entry["pieces"],
                "returned_qty": returned,
                "returnable_qty": entry["pieces"] - returned,
            }
        )
    return summary


def lookup_sale(db: Session, invoice_no: str) -> Sale:
    """Find a sale by invoice number for the return screen."""
    sale = db.query(Sale).filter(Sale.invoice_no == invoice_no).first()
    if sale is None:
        raise errors.not_found(f"Invoice {invoice_no} not found", {"invoice_no": invoice_no})
    return sale


# ─── Process Return ──────────────────────────────────────────────────────────


def process_return(
    db: Session,
    actor: User,
    sale_id: UUID,
    items: list[tuple[UUID, int]],
    refund_method: PaymentMethod = PaymentMethod.CASH,
    reason: str | None = None,
    ip_address: str | None = None,
) -> Return:
    """Return pieces of a completed sale on the actor's active shift.

    *items* is a list of ``(product_id, pieces)``.  Refunds and point
    adjustments are computed on cumulative quantities, so a sale returned in
    several steps refunds exactly its net amount and reverses exactly its
    points once everything is back.
    """
    if not items:
        raise errors.validation("Return must contain at least one item")
    requested: dict[UUID, int] = defaultdict(int)
    for product_id, quantity in items:
        if quantity <= 0:
            raise errors.validation(
                "Return quantity must be greater than zero", {"product_id": str(product_id)}
            )
        requested[product_id] += quantity

    now = datetime.now(timezone.utc)

    with atomic(db):
        # Lock order everywhere: sale, return, shift, products, customer.
        sale = db.query(Sale).filter(Sale.id == sale_id).with_for_update().first()
        shift = require_active_shift(db, actor.id, lock=True)
        if sale is None:
            raise errors.not_found("Sale not found", {"sale_id": str(sale_id)})
        if sale.status != SaleStatus.COMPLETED:
            raise errors.conflict(
                "SALE_NOT_COMPLETED",
                "Only completed sales can be returned",
                {"sale_id": str(sale.id), "status": sale.status.value},
            )

        sold = _sold_by_product(sale)
        already = returned_quantities(db, sale.id)

        # ── Per-product refund on cumulative quantities ─────────────────
        lines: list[dict[str, Any]] = []
        for product_id in sorted(requested):
            quantity = requested[product_id]
            if product_id not in sold:
                raise errors.validation(
                    "Product is not part of this sale", {"product_id": str(product_id)}
                )
            entry = sold[product_id]
            before = already.get(product_id, 0)
            after = before + quantity
            if after > entry["pieces"]:
                raise errors.conflict(
                    "RETURN_QTY_EXCEEDS_SOLD",
                    "Return quantity exceeds the quantity remaining on the sale",
                    {
                        "product_id": str(product_id),
                        "sold": entry["pieces"],
                        "already_returned": before,
                        "requested": quantity,
                    },
                )
            lines.append(
                {
                    "product_id": product_id,
                    "quantity": quantity,
                    "refund": prorate(entry["net"], after, entry["pieces"])
                    - prorate(entry["net"], before, entry["pieces"]),
                    "redeemed_share": prorate(entry["redeemed"], after, entry["pieces"])
                    - prorate(entry["redeemed"], before, entry["pieces"]),
                }
            )
        total_refund = sum(line["refund"] for line in lines)
        redeemed_share = sum(line["redeemed_share"] for line in lines)

        # ── Points on cumulative amounts ─────────────────────────────────
        prior = (
            db.query(Return)
            .filter(Return.sale_id == sale.id, Return.status == ReturnStatus.COMPLETED)
            .all()
        )
        prior_refund = sum(r.total_refund for r in prior)
        prior_reversed = sum(r.points_reversed for r in prior)
        prior_restored = sum(r.points_restored for r in prior)
        prior_redeemed_share = sum(i.redeemed_share for r in prior for i in r.items)

        points_reversed = (
            prorate(sale.points_earned, prior_refund + total_refund, sale.final_amount)
            - prior_reversed
        )
        points_restored = (
            prorate(
                sale.redeemed_points,
                prior_redeemed_share + redeemed_share,
                sale.redeemed_amount,
            )
            - prior_restored
        )

        # ── Return document ──────────────────────────────────────────────
        ret = Return(
            sale_id=sale.id,
            shift_id=shift.id,
            cashier_id=actor.id,
            customer_id=sale.customer_id,
            refund_method=refund_method,
            total_refund=total_refund,
            points_reversed=points_reversed,
            points_restored=points_restored,
            reason=reason,
            status=ReturnStatus.COMPLETED,
        )
        insert_with_document_number(db, ret, "return_number", RETURN_PREFIX, now)
        for line in lines:
            db.add(
                ReturnItem(
                    return_id=ret.id,
                    product_id=line["product_id"],
                    quantity=line["quantity"],
                    refund_amount=line["refund"],
                    redeemed_share=line["redeemed_share"],
                )
            )
            restore_stock(db, line["product_id"], line["quantity"])

        # ── Customer ledger ──────────────────────────────────────────────
        if sale.customer_id is not None:
            customer = lock_customer(db, sale.customer_id)
            if customer is not None:
                loyalty = get_loyalty_settings(db)
                change_points(db, customer, points_restored, "RETURN_RESTORE", sale_id=sale.id, return_id=ret.id)
                change_points(db, customer, -points_reversed, "RETURN_REVERSAL", sale_id=sale.id, return_id=ret.id)
                change_spending(customer, -total_refund, loyalty)

        apply_to_shift(shift, return_totals(ret))

        log_action(
            db,
            user_id=actor.id,
            action="RETURN_COMPLETED",
            resource_type="returns",
            resource_id=ret.return_number,
            ip_address=ip_address,
            changes={
                "return_id": str(ret.id),
                "sale_id": str(sale.id),
                "invoice_no": sale.invoice_no,
                "shift_id": str(shift.id),
                "total_refund": total_refund,
                "points_reversed": points_reversed,
                "points_restored": points_restored,
                "items": [
                    {"product_id": str(line["product_id"]), "quantity": line["quantity"]}
                    for line in lines
                ],
            },
        )

    db.refresh(ret)
    logger.info(
        "Return %s against %s: refund=%s method=%s",
        ret.return_number,
        sale.invoice_no,
        ret.total_refund,
        ret.refund_method.value,
    )
    return ret


# ─── Cancel Return ───────────────────────────────────────────────────────────


def cancel_return(
    db: Session,
    return_id: UUID,
    actor: User,
    reason: str | None = None,
    ip_address: str | None = None,
) -> Return:
    """Undo a completed return.  The row is kept with status CANCELLED."""
    if not is_supervisor(actor.role):
        raise errors.forbidden("Only supervisors or admins can cancel returns")

    now = datetime.now(timezone.utc)

    with atomic(db):
        sale_id = db.query(Return.sale_id).filter(Return.id == return_id).scalar()
        if sale_id is None:
            raise errors.not_found("Return not found", {"return_id": str(return_id)})
        # The sale row goes first so returns and voids on it queue up in one order.
        db.query(Sale).filter(Sale.id == sale_id).with_for_update().first()
        ret = (
            db.query(Return)
            .filter(Return.id == return_id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        if ret.status == ReturnStatus.CANCELLED:
            raise errors.conflict(
                "ALREADY_CANCELLED", "Return is already cancelled", {"return_id": str(ret.id)}
            )

        return_shift = lock_shift(db, ret.shift_id)
        if return_shift is not None and return_shift.status == ShiftStatus.ACTIVE:
            target_shift = return_shift
            absorbed = False
        else:
            target_shift = require_active_shift(db, actor.id, lock=True)
            absorbed = True

        # ── Stock goes back out (conditional) ────────────────────────────
        for item in sorted(ret.items, key=lambda i: i.product_id):
            product = db.get(Product, item.product_id)
            if product is None:
                raise errors.not_found(
                    "Product not found", {"product_id": str(item.product_id)}
                )
            decrement_stock(db, product, item.quantity)

        # ── Customer ledger ──────────────────────────────────────────────
        if ret.customer_id is not None:
            customer = lock_customer(db, ret.customer_id)
            if customer is not None:
                loyalty = get_loyalty_settings(db)
                change_points(db, customer, ret.points_reversed, "RETURN_CANCEL_REVERSAL", sale_id=ret.sale_id, return_id=ret.id)
                change_points(db, customer, -ret.points_restored, "RETURN_CANCEL_RESTORE", sale_id=ret.sale_id, return_id=ret.id)
                change_spending(customer, ret.total_refund, loyalty)

        # ── Shift counters ───────────────────────────────────────────────
        if absorbed:
            apply_to_shift(target_shift, return_cancel_totals(ret))
        else:
            apply_to_shift(target_shift, return_totals(ret), -1)

        ret.status = ReturnStatus.CANCELLED
        ret.cancelled_at = now
        ret.cancelled_by = actor.id
        ret.cancelled_shift_id = target_shift.id

        log_action(
            db,
            user_id=actor.id,
            action="RETURN_CANCELLED",
            resource_type="returns",
            resource_id=ret.return_number,
            ip_address=ip_address,
            changes={
                "return_id": str(ret.id),
                "sale_id": str(ret.sale_id),
                "return_shift_id": str(ret.shift_id),
                "cancelled_shift_id": str(target_shift.id),
                "total_refund": ret.total_refund,
                "reason": reason,
            },
        )

    db.refresh(ret)
    logger.info("Return %s cancelled by %s", ret.return_number, actor.id)
    return ret


# ─── Reads ───────────────────────────────────────────────────────────────────


def get_return(db: Session, return_id: UUID, viewer: User) -> Return:
    ret = db.get(Return, return_id)
    if ret is None:
        raise errors.not_found("Return not found", {"return_id": str(return_id)})
    if ret.cashier_id != viewer.id and not is_supervisor(viewer.role):
        raise errors.forbidden("You can only view your own returns")
    return ret


def list_returns(
    db: Session,
    viewer: User,
    *,
    sale_id: UUID | None = None,
    shift_id: UUID | None = None,
    status: ReturnStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Return]:
    """Most recent first; cashiers only see the returns they processed."""
    query = db.query(Return)
    if not is_supervisor(viewer.role):
        query = query.filter(Return.cashier_id == viewer.id)
    if sale_id is not None:
        query = query.filter(Return.sale_id == sale_id)
    if shift_id is not None:
        query = query.filter(Return.shift_id == shift_id)
    if status is not None:
        query = query.filter(Return.status == status)
    return (
        query.order_by(Return.created_at.desc(), Return.id)
        .offset(offset)
        .limit(limit)
        .all()
    )
