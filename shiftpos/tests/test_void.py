"""Voiding sales: reversal on the owning shift or absorption by the voider's shift."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.orm import Session

from shiftpos.app.core.errors import BusinessError
from shiftpos.app.models.customer import Customer, PointLog
from shiftpos.app.models.inventory import Product
from shiftpos.app.models.pos import ApprovalStatus, PaymentMethod, Sale, SaleStatus, Shift
from shiftpos.app.models.user import User
from shiftpos.app.schemas.pos import CartItem
from shiftpos.app.services.pos import checkout, void_sale
from shiftpos.app.services.returns import process_return
from shiftpos.app.services.shifts import close_shift


def _sell(db: Session, cashier: User, product: Product, quantity: int = 2, **kwargs) -> Sale:
    return checkout(db, cashier, [CartItem(product_id=product.id, quantity=quantity)], **kwargs)


class TestVoidOnActiveShift:
    def test_reverses_owning_shift(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
        shift_state,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)

        voided = void_sale(db, sale.id, supervisor_user, reason="Wrong item")

        assert voided.status == SaleStatus.CANCELLED
        assert voided.cancelled_by == supervisor_user.id
        assert voided.cancelled_shift_id == cashier_shift.id
        assert voided.cancelled_at is not None

        db.refresh(product_a)
        assert product_a.stock == 50

        shift = shift_state(cashier_shift)
        assert shift.transaction_count == 0
        assert shift.total_sales == 0
        assert shift.cash_sales == 0
        assert shift.payment_breakdown == {}
        assert shift.void_count == 1
        assert shift.void_cash_out == 0

    def test_supervisor_needs_no_shift_of_their_own(
        self,
        db: Session,
        cashier_user: User,
        admin_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        assert void_sale(db, sale.id, admin_user).status == SaleStatus.CANCELLED

    def test_balanced_close_after_void(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        void_sale(db, sale.id, supervisor_user)

        shift, summary = close_shift(db, cashier_user.id, 100000)

        assert shift.expected_cash == 100000
        assert shift.cash_difference == 0
        assert shift.approval_status == ApprovalStatus.NONE
        assert summary.void_count == 1

    def test_void_twice_conflicts(
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
            void_sale(db, sale.id, supervisor_user)
        assert exc_info.value.code == "ALREADY_CANCELLED"

    def test_cashier_cannot_void(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)

        with pytest.raises(BusinessError) as exc_info:
            void_sale(db, sale.id, cashier_user)
        assert exc_info.value.code == "FORBIDDEN"

        db.refresh(sale)
        assert sale.status == SaleStatus.COMPLETED

    def test_sale_with_returns_cannot_be_voided(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        process_return(db, cashier_user, sale.id, [(product_a.id, 1)])

        with pytest.raises(BusinessError) as exc_info:
            void_sale(db, sale.id, supervisor_user)
        assert exc_info.value.code == "SALE_HAS_RETURNS"
        assert exc_info.value.details["return_count"] == 1

    def test_unknown_sale(self, db: Session, supervisor_user: User) -> None:
        with pytest.raises(BusinessError) as exc_info:
            void_sale(db, uuid.uuid4(), supervisor_user)
        assert exc_info.value.code == "NOT_FOUND"


class TestVoidCustomerLedger:
    def test_earned_points_and_spending_reversed(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
        customer: Customer,
    ) -> None:
        sale = _sell(db, cashier_user, product_a, quantity=4, customer_id=customer.id)
        db.refresh(customer)
        assert customer.total_points == 40
        assert customer.total_spending == 40000

        void_sale(db, sale.id, supervisor_user)

        db.refresh(customer)
        assert customer.total_points == 0
        assert customer.total_spending == 0
        reasons = [
            log.reason
            for log in db.query(PointLog)
            .filter(PointLog.sale_id == sale.id)
            .order_by(PointLog.created_at, PointLog.id)
            .all()
        ]
        assert "VOID_EARN_REVERSAL" in reasons

    def test_redeemed_points_refunded(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
        rich_customer: Customer,
    ) -> None:
        sale = _sell(
            db, cashier_user, product_a, customer_id=rich_customer.id, redeem_points=50
        )
        assert sale.final_amount == 15000
        db.refresh(rich_customer)
        assert rich_customer.total_points == 65

        void_sale(db, sale.id, supervisor_user)

        db.refresh(rich_customer)
        assert rich_customer.total_points == 100

    def test_earned_points_already_spent_blocks_void(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
        customer: Customer,
    ) -> None:
        first = _sell(db, cashier_user, product_a, quantity=4, customer_id=customer.id)
        second = _sell(db, cashier_user, product_a, customer_id=customer.id, redeem_points=40)
        assert second.final_amount == 16000
        db.refresh(customer)
        assert customer.total_points == 16

        with pytest.raises(BusinessError) as exc_info:
            void_sale(db, first.id, supervisor_user)
        assert exc_info.value.code == "INSUFFICIENT_POINTS"
        assert exc_info.value.details["available"] == 16
        assert exc_info.value.details["required"] == 40

        db.refresh(first)
        db.refresh(product_a)
        db.refresh(customer)
        assert first.status == SaleStatus.COMPLETED
        assert product_a.stock == 44
        assert customer.total_points == 16


class TestVoidOnClosedShift:
    def test_absorbed_by_voider_shift(
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
        close_shift(db, cashier_user.id, 120000)

        voided = void_sale(db, sale.id, supervisor_user)
        assert voided.cancelled_shift_id == supervisor_shift.id

        closed = shift_state(cashier_shift)
        assert closed.total_sales == 20000
        assert closed.void_count == 0

        absorbing = shift_state(supervisor_shift)
        assert absorbing.void_count == 1
        assert absorbing.void_cash_out == 20000
        assert absorbing.transaction_count == 0

        shift, _ = close_shift(db, supervisor_user.id, 30000)
        assert shift.expected_cash == 30000
        assert shift.approval_status == ApprovalStatus.NONE

    def test_card_sale_takes_no_cash_out(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        supervisor_shift: Shift,
        product_a: Product,
        shift_state,
    ) -> None:
        sale = _sell(db, cashier_user, product_a, payment_method=PaymentMethod.CARD)
        close_shift(db, cashier_user.id, 100000)

        void_sale(db, sale.id, supervisor_user)

        absorbing = shift_state(supervisor_shift)
        assert absorbing.void_count == 1
        assert absorbing.void_cash_out == 0

    def test_voider_without_shift_is_rejected(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = _sell(db, cashier_user, product_a)
        close_shift(db, cashier_user.id, 120000)

        with pytest.raises(BusinessError) as exc_info:
            void_sale(db, sale.id, supervisor_user)
        assert exc_info.value.code == "NO_ACTIVE_SHIFT"

        db.refresh(sale)
        db.refresh(product_a)
        assert sale.status == SaleStatus.COMPLETED
        assert product_a.stock == 48
