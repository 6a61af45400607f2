"""Per-shift financial aggregates.

The same per-document contributions feed both the running counters stored
on the shift row (updated inside every sale/void/return/cancel transaction)
and the live recomputation over Sale and Return rows.  Keeping a single
definition of "what a document contributes" is what lets close() compare
the two and freeze a snapshot that matches the underlying rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

from sqlalchemy import and_
from sqlalchemy.orm import Session

from shiftpos.app.core.config import settings
from shiftpos.app.core.money import to_minor
from shiftpos.app.models.pos import PaymentMethod, Sale, SaleStatus, Shift
from shiftpos.app.models.returns import Return, ReturnStatus


@dataclass
class ShiftTotals:
    transaction_count: int = 0
    total_sales: int = 0
    cash_sales: int = 0
    non_cash_sales: int = 0
    total_discount: int = 0
    points_used: int = 0
    points_earned: int = 0
    point_tx_count: int = 0
    big_discount_tx_count: int = 0
    total_refund: int = 0
    cash_refunds: int = 0
    non_cash_refunds: int = 0
    return_count: int = 0
    points_reversed: int = 0
    points_restored: int = 0
    void_count: int = 0
    void_cash_out: int = 0
    return_cancel_cash_in: int = 0
    payment_breakdown: dict[str, int] = field(default_factory=dict)

    def add(self, other: ShiftTotals, sign: int = 1) -> None:
        for name in COUNTER_FIELDS:
            setattr(self, name, getattr(self, name) + sign * getattr(other, name))
        breakdown = dict(self.payment_breakdown)
        for method, amount in other.payment_breakdown.items():
            breakdown[method] = breakdown.get(method, 0) + sign * amount
        self.payment_breakdown = {m: a for m, a in breakdown.items() if a != 0}

    def expected_cash(self, opening_cash: int) -> int:
        return (
            opening_cash
            + self.cash_sales
            - self.cash_refunds
            - self.void_cash_out
            + self.return_cancel_cash_in
        )

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: getattr(self, name) for name in COUNTER_FIELDS}
        data["payment_breakdown"] = dict(self.payment_breakdown)
        return data


COUNTER_FIELDS: tuple[str, ...] = tuple(
    f.name for f in fields(ShiftTotals) if f.name != "payment_breakdown"
)


def _big_discount_threshold() -> int:
    return to_minor(settings.SHIFT_BIG_DISCOUNT_THRESHOLD)


# ─── Per-document contributions ──────────────────────────────────────────────


def sale_totals(sale: Sale) -> ShiftTotals:
    is_cash = sale.payment_method == PaymentMethod.CASH
    return ShiftTotals(
        transaction_count=1,
        total_sales=sale.final_amount,
        cash_sales=sale.final_amount if is_cash else 0,
        non_cash_sales=0 if is_cash else sale.final_amount,
        total_discount=sale.discount_amount,
        points_used=sale.redeemed_points,
        points_earned=sale.points_earned,
        point_tx_count=1 if sale.redeemed_points > 0 else 0,
        big_discount_tx_count=1 if sale.discount_amount >= _big_discount_threshold() else 0,
        payment_breakdown={PaymentMethod(sale.payment_method).value: sale.final_amount},
    )


def void_totals(sale: Sale, *, absorbed: bool) -> ShiftTotals:
    """Contribution of a void to the shift recorded in ``cancelled_shift_id``.

    When the sale's own shift was already closed the void is absorbed by the
    voider's shift, and for cash sales the money handed back leaves that
    drawer.
    """
    cash_out = sale.final_amount if absorbed and sale.payment_method == PaymentMethod.CASH else 0
    return ShiftTotals(void_count=1, void_cash_out=cash_out)


def return_totals(ret: Return) -> ShiftTotals:
    is_cash = ret.refund_method == PaymentMethod.CASH
    return ShiftTotals(
        total_refund=ret.total_refund,
        cash_refunds=ret.total_refund if is_cash else 0,
        non_cash_refunds=0 if is_cash else ret.total_refund,
        return_count=1,
        points_reversed=ret.points_reversed,
        points_restored=ret.points_restored,
    )


def return_cancel_totals(ret: Return) -> ShiftTotals:
    """Cash taken back into an absorbing shift when a closed shift's return is cancelled."""
    cash_in = ret.total_refund if ret.refund_method == PaymentMethod.CASH else 0
    return ShiftTotals(return_cancel_cash_in=cash_in)


# ─── Running counters ────────────────────────────────────────────────────────


def totals_from_shift(shift: Shift) -> ShiftTotals:
    totals = ShiftTotals(**{name: getattr(shift, name) or 0 for name in COUNTER_FIELDS})
    totals.payment_breakdown = {
        method: int(amount) for method, amount in (shift.payment_breakdown or {}).items()
    }
    return totals


def write_to_shift(shift: Shift, totals: ShiftTotals) -> None:
    for name in COUNTER_FIELDS:
        setattr(shift, name, getattr(totals, name))
    # New dict so the JSON column is flagged dirty.
    shift.payment_breakdown = dict(totals.payment_breakdown)


def apply_to_shift(shift: Shift, delta: ShiftTotals, sign: int = 1) -> None:
    totals = totals_from_shift(shift)
    totals.add(delta, sign)
    write_to_shift(shift, totals)


# ─── Live recomputation ──────────────────────────────────────────────────────


def compute_live_totals(db: Session, shift: Shift) -> ShiftTotals:
    totals = ShiftTotals()

    sales = (
        db.query(Sale)
        .filter(Sale.shift_id == shift.id, Sale.status == SaleStatus.COMPLETED)
        .all()
    )
    for sale in sales:
        totals.add(sale_totals(sale))

    voided = (
        db.query(Sale)
        .filter(Sale.cancelled_shift_id == shift.id, Sale.status == SaleStatus.CANCELLED)
        .all()
    )
    for sale in voided:
        totals.add(void_totals(sale, absorbed=sale.shift_id != shift.id))

    returns = (
        db.query(Return)
        .filter(Return.shift_id == shift.id, Return.status == ReturnStatus.COMPLETED)
        .all()
    )
    for ret in returns:
        totals.add(return_totals(ret))

    absorbed_cancels = (
        db.query(Return)
        .filter(
            and_(
                Return.cancelled_shift_id == shift.id,
                Return.shift_id != shift.id,
                Return.status == ReturnStatus.CANCELLED,
            )
        )
        .all()
    )
    for ret in absorbed_cancels:
        totals.add(return_cancel_totals(ret))

    return totals


def find_drift(running: ShiftTotals, live: ShiftTotals) -> dict[str, tuple[Any, Any]]:
    """Fields where the running counters disagree with the recomputation."""
    drift: dict[str, tuple[Any, Any]] = {}
    for name in COUNTER_FIELDS:
        if getattr(running, name) != getattr(live, name):
            drift[name] = (getattr(running, name), getattr(live, name))
    if running.payment_breakdown != live.payment_breakdown:
        drift["payment_breakdown"] = (running.payment_breakdown, live.payment_breakdown)
    return drift
