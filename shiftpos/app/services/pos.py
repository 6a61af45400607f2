from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from shiftpos.app.core import errors
from shiftpos.app.core.database import atomic
from shiftpos.app.core.money import allocate
from shiftpos.app.core.permissions import is_supervisor
from shiftpos.app.models.customer import Customer, CustomerStatus
from shiftpos.app.models.inventory import Product, ProductStatus, UnitType
from shiftpos.app.models.pos import (
    PaymentMethod,
    Sale,
    SaleDiscountLine,
    SaleItem,
    SaleStatus,
    ShiftStatus,
    SuspendedSale,
)
from shiftpos.app.models.returns import Return, ReturnStatus
from shiftpos.app.models.user import User
from shiftpos.app.schemas.pos import CartItem
from shiftpos.app.services.audit import log_action
from shiftpos.app.services.discounts import CartLine, load_active_discounts, resolve_discounts
from shiftpos.app.services.ledger import (
    change_points,
    change_spending,
    decrement_stock,
    lock_customer,
    lock_products,
    restore_stock,
)
from shiftpos.app.services.loyalty import (
    get_loyalty_settings,
    max_redeemable_points,
    points_for_amount,
)
from shiftpos.app.services.numbering import insert_with_document_number
from shiftpos.app.services.shift_aggregates import apply_to_shift, sale_totals, void_totals
from shiftpos.app.services.shifts import lock_shift, require_active_shift

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"


def _load_customer_for_sale(db: Session, customer_id: UUID) -> Customer:
    customer = lock_customer(db, customer_id)
    if customer is None:
        raise errors.not_found("Customer not found", {"customer_id": str(customer_id)})
    if customer.status != CustomerStatus.ACTIVE:
        raise errors.conflict(
            "CUSTOMER_INACTIVE",
            f"Customer '{customer.name}' is inactive",
            {"customer_id": str(customer_id)},
        )
    return customer


def _price_line(product: Product, item: CartItem) -> tuple[int, int]:
    """Return (unit price, pieces) for a cart line in the requested unit."""
    if item.unit_type == UnitType.CARTON:
        if not product.supports_carton or product.carton_price is None:
            raise errors.validation(
                f"Product '{product.name}' cannot be sold by the carton",
                {"product_id": str(product.id)},
            )
        return product.carton_price, item.quantity * product.pcs_per_carton
    return product.price, item.quantity


def checkout(
    db: Session,
    cashier: User,
    items: list[CartItem],
    payment_method: PaymentMethod = PaymentMethod.CASH,
    customer_id: UUID | None = None,
    redeem_points: int = 0,
    ip_address: str | None = None,
) -> Sale:
    """Commit a POS sale against the cashier's active shift.

    Stock, customer points/spending/tier and the shift counters change in the
    same transaction as the Sale insert; any failure leaves none of them
    changed.
    """
    if not items:
        raise errors.validation("Cart must contain at least one item")
    if redeem_points < 0:
        raise errors.validation("Redeemed points cannot be negative")
    if redeem_points and customer_id is None:
        raise errors.validation("Redeeming points requires a customer", {"field": "customer_id"})

    now = datetime.now(timezone.utc)

    with atomic(db):
        shift = require_active_shift(db, cashier.id, lock=True)
        loyalty = get_loyalty_settings(db)

        # ── Lock products & price each line ──────────────────────────────
        products = lock_products(db, {item.product_id for item in items})
        line_details: list[dict[str, Any]] = []
        pieces_by_product: dict[UUID, int] = defaultdict(int)
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                raise errors.not_found(
                    f"Product {item.product_id} not found",
                    {"product_id": str(item.product_id)},
                )
            if product.status == ProductStatus.ARCHIVED:
                raise errors.validation(
                    f"Product '{product.name}' is archived",
                    {"product_id": str(product.id)},
                )
            unit_price, pieces = _price_line(product, item)
            pieces_by_product[product.id] += pieces
            line_details.append(
                {
                    "product": product,
                    "item": item,
                    "unit_price": unit_price,
                    "pieces": pieces,
                    "gross": unit_price * item.quantity,
                }
            )

        customer = _load_customer_for_sale(db, customer_id) if customer_id else None

        # ── Discounts ────────────────────────────────────────────────────
        resolution = resolve_discounts(
            load_active_discounts(db, now),
            [
                CartLine(
                    product_id=ld["product"].id,
                    category_id=ld["product"].category_id,
                    brand_id=ld["product"].brand_id,
                    quantity=ld["item"].quantity,
                    gross_amount=ld["gross"],
                )
                for ld in line_details
            ],
            has_customer=customer is not None,
            customer_type=customer.customer_type if customer else None,
        )
        line_subtotals = [
            ld["gross"] - res.total for ld, res in zip(line_details, resolution.lines)
        ]
        subtotal = sum(line_subtotals)
        global_discount = resolution.cart.total
        amount_after_discounts = subtotal - global_discount

        # ── Points ───────────────────────────────────────────────────────
        redeemed_points = 0
        if customer is not None and redeem_points:
            redeemed_points = min(
                redeem_points,
                max_redeemable_points(amount_after_discounts, customer.total_points, loyalty),
            )
        redeemed_amount = redeemed_points * loyalty.redeem_amount_per_point
        final_amount = amount_after_discounts - redeemed_amount
        points_earned = (
            points_for_amount(final_amount, customer.tier_level, loyalty) if customer else 0
        )

        # ── Stock (conditional decrements, all or nothing) ───────────────
        for product_id in sorted(pieces_by_product):
            decrement_stock(db, products[product_id], pieces_by_product[product_id])

        # ── Sale header ──────────────────────────────────────────────────
        sale = Sale(
            shift_id=shift.id,
            cashier_id=cashier.id,
            customer_id=customer.id if customer else None,
            subtotal=subtotal,
            item_discount_amount=resolution.item_discount_total,
            global_discount_amount=global_discount,
            discount_amount=resolution.item_discount_total + global_discount,
            applied_global_discount_id=resolution.cart.primary_id,
            redeemed_points=redeemed_points,
            redeemed_amount=redeemed_amount,
            points_earned=points_earned,
            final_amount=final_amount,
            payment_method=payment_method,
            status=SaleStatus.COMPLETED,
        )
        insert_with_document_number(db, sale, "invoice_no", INVOICE_PREFIX, now)

        # ── Lines: global discount and points spread by line subtotal ────
        global_shares = allocate(global_discount, line_subtotals)
        after_global = [s - g for s, g in zip(line_subtotals, global_shares)]
        redeemed_shares = allocate(redeemed_amount, after_global)

        sale_items: list[SaleItem] = []
        for idx, ld in enumerate(line_details):
            line_discount = resolution.lines[idx]
            sale_item = SaleItem(
                sale_id=sale.id,
                line_no=idx + 1,
                product_id=ld["product"].id,
                quantity=ld["item"].quantity,
                unit_type=ld["item"].unit_type,
                conversion_qty=ld["pieces"],
                price_at_sale=ld["unit_price"],
                gross_amount=ld["gross"],
                discount_amount=line_discount.total,
                applied_discount_id=line_discount.primary_id,
                subtotal=line_subtotals[idx],
                net_amount=after_global[idx] - redeemed_shares[idx],
                redeemed_share=redeemed_shares[idx],
            )
            db.add(sale_item)
            sale_items.append(sale_item)
        db.flush()

        for sale_item, line_discount in zip(sale_items, resolution.lines):
            for applied in line_discount.applied:
                db.add(
                    SaleDiscountLine(
                        sale_id=sale.id,
                        sale_item_id=sale_item.id,
                        discount_id=applied.discount_id,
                        amount=applied.amount,
                    )
                )
        for applied in resolution.cart.applied:
            db.add(
                SaleDiscountLine(
                    sale_id=sale.id,
                    discount_id=applied.discount_id,
                    amount=applied.amount,
                )
            )

        # ── Customer ledger ──────────────────────────────────────────────
        if customer is not None:
            change_points(db, customer, -redeemed_points, "REDEEM", sale_id=sale.id)
            change_points(db, customer, points_earned, "EARN", sale_id=sale.id)
            change_spending(customer, final_amount, loyalty)
            customer.last_purchase_at = now

        apply_to_shift(shift, sale_totals(sale))

        log_action(
            db,
            user_id=cashier.id,
            action="SALE_COMPLETED",
            resource_type="sales",
            resource_id=sale.invoice_no,
            ip_address=ip_address,
            changes={
                "sale_id": str(sale.id),
                "shift_id": str(shift.id),
                "item_count": len(line_details),
                "subtotal": subtotal,
                "discount_amount": sale.discount_amount,
                "redeemed_points": redeemed_points,
                "final_amount": final_amount,
                "payment_method": PaymentMethod(payment_method).value,
                "customer_id": str(customer.id) if customer else None,
            },
        )

    db.refresh(sale)
    logger.info(
        "Sale %s completed on shift %s: final=%s method=%s",
        sale.invoice_no,
        sale.shift_id,
        sale.final_amount,
        sale.payment_method.value,
    )
    return sale


# ─── Void ────────────────────────────────────────────────────────────────────


def void_sale(
    db: Session,
    sale_id: UUID,
    actor: User,
    reason: str | None = None,
    ip_address: str | None = None,
) -> Sale:
    """Cancel a completed sale and reverse every effect it had.

    The financial counters are reversed on the shift that owned the sale
    when it is still ACTIVE.  A closed shift keeps its frozen snapshot and
    the void is recorded on the actor's active shift instead.
    """
    if not is_supervisor(actor.role):
        raise errors.forbidden("Only supervisors or admins can void sales")

    now = datetime.now(timezone.utc)

    with atomic(db):
        # Sale before shift, the same order process_return and cancel_return use.
        sale = db.query(Sale).filter(Sale.id == sale_id).with_for_update().first()
        if sale is None:
            raise errors.not_found("Sale not found", {"sale_id": str(sale_id)})
        if sale.status == SaleStatus.CANCELLED:
            raise errors.conflict(
                "ALREADY_CANCELLED", "Sale is already cancelled", {"sale_id": str(sale.id)}
            )
        returns = (
            db.query(Return)
            .filter(Return.sale_id == sale.id, Return.status == ReturnStatus.COMPLETED)
            .count()
        )
        if returns:
            raise errors.conflict(
                "SALE_HAS_RETURNS",
                "Sale has completed returns; cancel them before voiding",
                {"sale_id": str(sale.id), "return_count": returns},
            )

        owning_shift = lock_shift(db, sale.shift_id)
        if owning_shift is not None and owning_shift.status == ShiftStatus.ACTIVE:
            target_shift = owning_shift
            absorbed = False
        else:
            target_shift = require_active_shift(db, actor.id, lock=True)
            absorbed = True

        # ── Stock ────────────────────────────────────────────────────────
        pieces_by_product: dict[UUID, int] = defaultdict(int)
        for item in sale.items:
            pieces_by_product[item.product_id] += item.conversion_qty
        for product_id in sorted(pieces_by_product):
            restore_stock(db, product_id, pieces_by_product[product_id])

        # ── Customer ledger ──────────────────────────────────────────────
        if sale.customer_id is not None:
            customer = lock_customer(db, sale.customer_id)
            if customer is not None:
                loyalty = get_loyalty_settings(db)
                change_points(db, customer, sale.redeemed_points, "VOID_REDEEM_REFUND", sale_id=sale.id)
                change_points(db, customer, -sale.points_earned, "VOID_EARN_REVERSAL", sale_id=sale.id)
                change_spending(customer, -sale.final_amount, loyalty)

        # ── Shift counters ───────────────────────────────────────────────
        if not absorbed:
            apply_to_shift(target_shift, sale_totals(sale), -1)
        apply_to_shift(target_shift, void_totals(sale, absorbed=absorbed))

        sale.status = SaleStatus.CANCELLED
        sale.cancelled_at = now
        sale.cancelled_by = actor.id
        sale.cancelled_shift_id = target_shift.id

        log_action(
            db,
            user_id=actor.id,
            action="SALE_VOIDED",
            resource_type="sales",
            resource_id=sale.invoice_no,
            ip_address=ip_address,
            changes={
                "sale_id": str(sale.id),
                "owning_shift_id": str(sale.shift_id),
                "cancelled_shift_id": str(target_shift.id),
                "final_amount": sale.final_amount,
                "reason": reason,
            },
        )

    db.refresh(sale)
    logger.info(
        "Sale %s voided by %s (recorded on shift %s)",
        sale.invoice_no,
        actor.id,
        sale.cancelled_shift_id,
    )
    return sale


# ─── Suspended sales ─────────────────────────────────────────────────────────


def suspend_sale(
    db: Session,
    cashier: User,
    payload: dict[str, Any],
    customer_id: UUID | None = None,
    note: str | None = None,
) -> SuspendedSale:
    """Park a cart; only allowed while the cashier holds an active shift."""
    with atomic(db):
        require_active_shift(db, cashier.id)
        suspended = SuspendedSale(
            cashier_id=cashier.id,
            customer_id=customer_id,
            note=note,
            payload=payload,
        )
        db.add(suspended)
        db.flush()
        log_action(
            db,
            user_id=cashier.id,
            action="SALE_SUSPENDED",
            resource_type="suspended_sales",
            resource_id=str(suspended.id),
            changes={"item_count": len(payload.get("items", [])), "note": note},
        )
    db.refresh(suspended)
    return suspended


def list_suspended_sales(db: Session, cashier_id: UUID) -> list[SuspendedSale]:
    return (
        db.query(SuspendedSale)
        .filter(SuspendedSale.cashier_id == cashier_id)
        .order_by(SuspendedSale.created_at.desc())
        .all()
    )


def recall_suspended_sale(db: Session, suspended_id: UUID, cashier: User) -> dict[str, Any]:
    """Delete a parked cart and hand its payload back to the terminal."""
    with atomic(db):
        suspended = (
            db.query(SuspendedSale)
            .filter(SuspendedSale.id == suspended_id)
            .with_for_update()
            .first()
        )
        if suspended is None:
            raise errors.not_found(
                "Suspended sale not found", {"suspended_id": str(suspended_id)}
            )
        if suspended.cashier_id != cashier.id and not is_supervisor(cashier.role):
            raise errors.forbidden("You can only recall your own suspended sales")
        payload = dict(suspended.payload)
        db.delete(suspended)
        log_action(
            db,
            user_id=cashier.id,
            action="SALE_RECALLED",
            resource_type="suspended_sales",
            resource_id=str(suspended_id),
        )
    return payload
