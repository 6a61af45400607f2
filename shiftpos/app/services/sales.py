"""Read-side queries over sales and returns, plus their output mapping."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from shiftpos.app.core import errors
from shiftpos.app.core.money import from_minor
from shiftpos.app.core.permissions import is_supervisor
from shiftpos.app.models.pos import Sale, SaleStatus, SuspendedSale
from shiftpos.app.models.returns import Return
from shiftpos.app.models.user import User
from shiftpos.app.schemas.pos import (
    ReturnableOut,
    SaleDiscountOut,
    SaleItemOut,
    SaleOut,
    SuspendedSaleOut,
)
from shiftpos.app.schemas.returns import ReturnItemOut, ReturnOut
from shiftpos.app.services.returns import returnable_summary


def _money(value: int) -> str:
    return str(from_minor(value))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def list_sales(
    db: Session,
    viewer: User,
    *,
    shift_id: UUID | None = None,
    cashier_id: UUID | None = None,
    customer_id: UUID | None = None,
    status: SaleStatus | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Sale]:
    """Most recent first; cashiers only see their own sales."""
    query = db.query(Sale)
    if not is_supervisor(viewer.role):
        query = query.filter(Sale.cashier_id == viewer.id)
    elif cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)
    if shift_id is not None:
        query = query.filter(Sale.shift_id == shift_id)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if status is not None:
        query = query.filter(Sale.status == status)
    if date_from is not None:
        query = query.filter(Sale.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Sale.created_at <= date_to)
    return (
        query.order_by(Sale.created_at.desc(), Sale.id)
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_sale(db: Session, sale_id: UUID, viewer: User) -> Sale:
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise errors.not_found("Sale not found", {"sale_id": str(sale_id)})
    if sale.cashier_id != viewer.id and not is_supervisor(viewer.role):
        raise errors.forbidden("You can only view your own sales")
    return sale


# ─── Output mapping ──────────────────────────────────────────────────────────


def sale_to_out(db: Session, sale: Sale, *, with_returnable: bool = False) -> SaleOut:
    items = [
        SaleItemOut(
            id=item.id,
            line_no=item.line_no,
            product_id=item.product_id,
            product_name=item.product.name if item.product else "Unknown",
            quantity=item.quantity,
            unit_type=item.unit_type.value,
            conversion_qty=item.conversion_qty,
            price_at_sale=_money(item.price_at_sale),
            gross_amount=_money(item.gross_amount),
            discount_amount=_money(item.discount_amount),
            applied_discount_id=item.applied_discount_id,
            subtotal=_money(item.subtotal),
            net_amount=_money(item.net_amount),
        )
        for item in sale.items
    ]
    discounts = [
        SaleDiscountOut(
            discount_id=line.discount_id,
            sale_item_id=line.sale_item_id,
            amount=_money(line.amount),
        )
        for line in sale.discount_lines
    ]
    returnable = (
        [ReturnableOut(**row) for row in returnable_summary(db, sale)]
        if with_returnable
        else []
    )
    return SaleOut(
        id=sale.id,
        invoice_no=sale.invoice_no,
        shift_id=sale.shift_id,
        cashier_id=sale.cashier_id,
        customer_id=sale.customer_id,
        subtotal=_money(sale.subtotal),
        item_discount_amount=_money(sale.item_discount_amount),
        global_discount_amount=_money(sale.global_discount_amount),
        discount_amount=_money(sale.discount_amount),
        redeemed_points=sale.redeemed_points,
        redeemed_amount=_money(sale.redeemed_amount),
        points_earned=sale.points_earned,
        final_amount=_money(sale.final_amount),
        payment_method=sale.payment_method.value,
        status=sale.status.value,
        created_at=_iso(sale.created_at) or "",
        cancelled_at=_iso(sale.cancelled_at),
        cancelled_by=sale.cancelled_by,
        cancelled_shift_id=sale.cancelled_shift_id,
        items=items,
        discounts=discounts,
        returnable=returnable,
    )


def return_to_out(ret: Return) -> ReturnOut:
    return ReturnOut(
        id=ret.id,
        return_number=ret.return_number,
        sale_id=ret.sale_id,
        invoice_no=ret.sale.invoice_no if ret.sale else "",
        shift_id=ret.shift_id,
        cashier_id=ret.cashier_id,
        customer_id=ret.customer_id,
        refund_method=ret.refund_method.value,
        total_refund=_money(ret.total_refund),
        points_reversed=ret.points_reversed,
        points_restored=ret.points_restored,
        reason=ret.reason,
        status=ret.status.value,
        created_at=_iso(ret.created_at) or "",
        cancelled_at=_iso(ret.cancelled_at),
        cancelled_by=ret.cancelled_by,
        cancelled_shift_id=ret.cancelled_shift_id,
        items=[
            ReturnItemOut(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product.name if item.product else "Unknown",
                quantity=item.quantity,
                refund_amount=_money(item.refund_amount),
            )
            for item in ret.items
        ],
    )


def suspended_to_out(suspended: SuspendedSale) -> SuspendedSaleOut:
    return SuspendedSaleOut(
        id=suspended.id,
        customer_id=suspended.customer_id,
        note=suspended.note,
        payload=suspended.payload,
        created_at=_iso(suspended.created_at) or "",
    )
