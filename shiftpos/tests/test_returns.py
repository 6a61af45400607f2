"""Return engine: cumulative refunds, point reversal/restoration and cancellation."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.orm import Session

from shiftpos.app.core.errors import BusinessError
from shiftpos.app.models.customer import Customer
from shiftpos.app.models.discount import DiscountTarget, DiscountType
from shiftpos.app.models.inventory import Product
from shiftpos.app.models.pos import PaymentMethod, Sale, Shift
from shiftpos.app.models.returns import ReturnStatus
from shiftpos.app.models.user import User
from shiftpos.app.schemas.pos import CartItem
from shiftpos.app.services.discounts import create_discount
from shiftpos.app.services.pos import checkout, void_sale
from shiftpos.app.services.returns import (
    cancel_return,
    get_return,
    list_returns,
    lookup_sale,
    process_return,
    returnable_summary,
)
from shiftpos.app.services.shifts import close_shift, open_shift


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _sell(db: Session, cashier: User, product: Product, quantity: int = 3, **kwargs) -> Sale:
    return checkout(db, cashier, [CartItem(product_id=product.id, quantity=quantity)], **kwargs)


# ─── Process Return ──────────────────────────────────────────────────────────


class TestProcessReturn:
    def test_partial_return_refunds_and_restocks(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
        shift_state,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)

        ret = process_return(db, cashier_user, sale.id, [(product_a.id, 1)], reason="Damaged")

        assert ret.return_number.startswith("RET-")
        assert ret.status == ReturnStatus.COMPLETED
        assert ret.shift_id == cashier_shift.id
        assert ret.total_refund == 10000
        assert [(i.product_id, i.quantity) for i in ret.items] == [(product_a.id, 1)]

        db.refresh(product_a)
        assert product_a.stock == 48

        shift = shift_state(cashier_shift)
        assert shift.return_count == 1
        assert shift.total_refund == 10000
        assert shift.cash_refunds == 10000
        assert shift.non_cash_refunds == 0
        # The sale itself is still counted in full.
        assert shift.total_sales == 30000

        closed, _ = close_shift(db, cashier_user.id, 120000)
        assert closed.expected_cash == 120000
        assert closed.cash_difference == 0

    def test_card_refund(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
        shift_state,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        process_return(
            db, cashier_user, sale.id, [(product_a.id, 1)], refund_method=PaymentMethod.CARD
        )
        shift = shift_state(cashier_shift)
        assert shift.cash_refunds == 0
        assert shift.non_cash_refunds == 10000

    def test_cumulative_refunds_match_net_amount(
        self,
        db: Session,
        admin_user: User,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        create_discount(
            db,
            admin_user.id,
            {
                "name": "10.00 off",
                "discount_type": DiscountType.FIXED_AMOUNT,
                "value": 1000,
                "applies_to": DiscountTarget.GLOBAL,
            },
        )
        sale = _sell(db, cashier_user, product_a)
        assert sale.final_amount == 29000

        first = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])
        second = process_return(db, cashier_user, sale.id, [(product_a.id, 2)])

        assert first.total_refund == 9666
        assert second.total_refund == 19334
        assert first.total_refund + second.total_refund == sale.final_amount

    def test_over_return_rejected(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        process_return(db, cashier_user, sale.id, [(product_a.id, 2)])

        with pytest.raises(BusinessError) as exc_info:
            process_return(db, cashier_user, sale.id, [(product_a.id, 2)])

        assert exc_info.value.code == "RETURN_QTY_EXCEEDS_SOLD"
        assert exc_info.value.details["sold"] == 3
        assert exc_info.value.details["already_returned"] == 2
        assert exc_info.value.details["requested"] == 2

    def test_duplicate_lines_are_summed(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)

        with pytest.raises(BusinessError) as exc_info:
            process_return(db, cashier_user, sale.id, [(product_a.id, 2), (product_a.id, 2)])
        assert exc_info.value.code == "RETURN_QTY_EXCEEDS_SOLD"

    def test_product_not_in_sale(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
        product_b: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)

        with pytest.raises(BusinessError) as exc_info:
            process_return(db, cashier_user, sale.id, [(product_b.id, 1)])
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_zero_quantity_rejected(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)

        with pytest.raises(BusinessError) as exc_info:
            process_return(db, cashier_user, sale.id, [(product_a.id, 0)])
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_voided_sale_cannot_be_returned(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        void_sale(db, sale.id, supervisor_user)

        with pytest.raises(BusinessError) as exc_info:
            process_return(db, cashier_user, sale.id, [(product_a.id, 1)])
        assert exc_info.value.code == "SALE_NOT_COMPLETED"

    def test_requires_active_shift(
        self,
        db: Session,
        cashier_user: User,
        cashier2_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)

        with pytest.raises(BusinessError) as exc_info:
            process_return(db, cashier2_user, sale.id, [(product_a.id, 1)])
        assert exc_info.value.code == "NO_ACTIVE_SHIFT"

    def test_recorded_on_returning_cashier_shift(
        self,
        db: Session,
        cashier_user: User,
        cashier2_user: User,
        cashier_shift: Shift,
        product_a: Product,
        shift_state,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        other_shift = open_shift(db, cashier2_user.id, 0, "T3")

        ret = process_return(db, cashier2_user, sale.id, [(product_a.id, 1)])

        assert ret.shift_id == other_shift.id
        assert shift_state(other_shift).return_count == 1
        assert shift_state(cashier_shift).return_count == 0


# ─── Loyalty on returns ──────────────────────────────────────────────────────


class TestReturnPoints:
    def test_earned_points_reversed_cumulatively(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
        customer: Customer,
        shift_state,
    ) -> None:
        sale = _sell(db, cashier_user, product_a, customer_id=customer.id)
        assert sale.points_earned == 30

        first = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])
        second = process_return(db, cashier_user, sale.id, [(product_a.id, 2)])

        assert first.points_reversed == 10
        assert second.points_reversed == 20
        db.refresh(customer)
        assert customer.total_points == 0
        assert customer.total_spending == 0
        assert shift_state(cashier_shift).points_reversed == 30

    def test_redeemed_points_restored(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
        rich_customer: Customer,
        shift_state,
    ) -> None:
        sale = _sell(
            db, cashier_user, product_a, quantity=2, customer_id=rich_customer.id, redeem_points=50
        )
        assert sale.final_amount == 15000
        assert sale.points_earned == 15

        first = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])
        assert first.total_refund == 7500
        assert first.points_restored == 25
        assert first.points_reversed == 7
        db.refresh(rich_customer)
        assert rich_customer.total_points == 83

        second = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])
        assert second.points_restored == 25
        assert second.points_reversed == 8
        db.refresh(rich_customer)
        assert rich_customer.total_points == 100

        shift = shift_state(cashier_shift)
        assert shift.points_restored == 50
        assert shift.points_reversed == 15


# ─── Cancel Return ───────────────────────────────────────────────────────────


class TestCancelReturn:
    def test_cancel_on_active_shift_reverses_counters(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
        customer: Customer,
        shift_state,
    ) -> None:
        sale = _sell(db, cashier_user, product_a, customer_id=customer.id)
        ret = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])

        cancelled = cancel_return(db, ret.id, supervisor_user, reason="Customer kept it")

        assert cancelled.status == ReturnStatus.CANCELLED
        assert cancelled.cancelled_by == supervisor_user.id
        assert cancelled.cancelled_shift_id == cashier_shift.id

        db.refresh(product_a)
        db.refresh(customer)
        assert product_a.stock == 47
        assert customer.total_points == 30
        assert customer.total_spending == 30000

        shift = shift_state(cashier_shift)
        assert shift.return_count == 0
        assert shift.total_refund == 0
        assert shift.points_reversed == 0
        assert shift.return_cancel_cash_in == 0

        # A cancelled return no longer counts against the sale.
        again = process_return(db, cashier_user, sale.id, [(product_a.id, 3)])
        assert again.total_refund == 30000

    def test_cancel_twice_conflicts(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        ret = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])
        cancel_return(db, ret.id, supervisor_user)

        with pytest.raises(BusinessError) as exc_info:
            cancel_return(db, ret.id, supervisor_user)
        assert exc_info.value.code == "ALREADY_CANCELLED"

    def test_cashier_cannot_cancel(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        ret = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])

        with pytest.raises(BusinessError) as exc_info:
            cancel_return(db, ret.id, cashier_user)
        assert exc_info.value.code == "FORBIDDEN"

    def test_cancel_needs_stock_back(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        ret = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])
        _sell(db, cashier_user, product_a, quantity=48)

        with pytest.raises(BusinessError) as exc_info:
            cancel_return(db, ret.id, supervisor_user)
        assert exc_info.value.code == "INSUFFICIENT_STOCK"

        db.refresh(ret)
        assert ret.status == ReturnStatus.COMPLETED

    def test_cancel_on_closed_shift_is_absorbed(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        supervisor_shift: Shift,
        product_a: Product,
        shift_state,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        ret = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])
        close_shift(db, cashier_user.id, 120000)

        cancelled = cancel_return(db, ret.id, supervisor_user)
        assert cancelled.cancelled_shift_id == supervisor_shift.id

        closed = shift_state(cashier_shift)
        assert closed.return_count == 1
        assert closed.total_refund == 10000

        absorbing = shift_state(supervisor_shift)
        assert absorbing.return_cancel_cash_in == 10000
        assert absorbing.return_count == 0

        shift, _ = close_shift(db, supervisor_user.id, 60000)
        assert shift.expected_cash == 60000
        assert shift.cash_difference == 0


# ─── Lookup & visibility ─────────────────────────────────────────────────────


class TestReturnReads:
    def test_lookup_and_returnable_summary(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        process_return(db, cashier_user, sale.id, [(product_a.id, 1)])

        found = lookup_sale(db, sale.invoice_no)
        assert found.id == sale.id
        assert returnable_summary(db, found) == [
            {
                "product_id": product_a.id,
                "sold_qty": 3,
                "returned_qty": 1,
                "returnable_qty": 2,
            }
        ]

    def test_lookup_unknown_invoice(self, db: Session) -> None:
        with pytest.raises(BusinessError) as exc_info:
            lookup_sale(db, "INV-00000000-MISSING0")
        assert exc_info.value.code == "NOT_FOUND"

    def test_cashiers_only_see_their_own(
        self,
        db: Session,
        cashier_user: User,
        cashier2_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        ret = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])

        assert get_return(db, ret.id, cashier_user).id == ret.id
        assert get_return(db, ret.id, supervisor_user).id == ret.id
        with pytest.raises(BusinessError) as exc_info:
            get_return(db, ret.id, cashier2_user)
        assert exc_info.value.code == "FORBIDDEN"

        assert [r.id for r in list_returns(db, cashier_user)] == [ret.id]
        assert list_returns(db, cashier2_user) == []
        assert [r.id for r in list_returns(db, supervisor_user, sale_id=sale.id)] == [ret.id]

    def test_unknown_return(self, db: Session, supervisor_user: User) -> None:
        with pytest.raises(BusinessError) as exc_info:
            cancel_return(db, uuid.uuid4(), supervisor_user)
        assert exc_info.value.code == "NOT_FOUND"
