"""Shift lifecycle: open, close & reconcile, approval and reporting."""

from __future__ import annotations

import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftpos.app.core.config import settings
from shiftpos.app.core.errors import BusinessError
from shiftpos.app.models.inventory import Product
from shiftpos.app.models.pos import ApprovalStatus, PaymentMethod, Shift, ShiftStatus
from shiftpos.app.models.user import User
from shiftpos.app.schemas.pos import CartItem
from shiftpos.app.services.pos import checkout, suspend_sale
from shiftpos.app.services.returns import process_return
from shiftpos.app.services.shift_aggregates import (
    compute_live_totals,
    find_drift,
    totals_from_shift,
)
from shiftpos.app.services.shifts import (
    active_shift_conflict_scope,
    approve_shift,
    close_shift,
    get_active_shift,
    get_shift_summary,
    get_shift_transactions,
    list_shifts,
    open_shift,
    reject_shift,
)


# ─── Open ────────────────────────────────────────────────────────────────────


class TestOpenShift:
    def test_open_creates_active_shift(self, db: Session, cashier_user: User) -> None:
        shift = open_shift(db, cashier_user.id, 100000, "  T1  ", note="morning")

        assert shift.status == ShiftStatus.ACTIVE
        assert shift.approval_status == ApprovalStatus.NONE
        assert shift.terminal_name == "T1"
        assert shift.opening_cash == 100000
        assert shift.transaction_count == 0
        assert shift.total_sales == 0
        assert shift.payment_breakdown == {}
        assert get_active_shift(db, cashier_user.id).id == shift.id

    def test_second_shift_for_same_user_conflicts(
        self, db: Session, cashier_user: User, cashier_shift: Shift
    ) -> None:
        with pytest.raises(BusinessError) as exc_info:
            open_shift(db, cashier_user.id, 0, "T9")
        assert exc_info.value.code == "SHIFT_ALREADY_ACTIVE"
        assert exc_info.value.status == 409
        assert exc_info.value.details["scope"] == "user"

    def test_second_shift_on_same_terminal_conflicts(
        self, db: Session, cashier2_user: User, cashier_shift: Shift
    ) -> None:
        with pytest.raises(BusinessError) as exc_info:
            open_shift(db, cashier2_user.id, 0, "T1")
        assert exc_info.value.code == "SHIFT_ALREADY_ACTIVE"
        assert exc_info.value.details["scope"] == "terminal"

    def test_terminal_free_again_after_close(
        self, db: Session, cashier_user: User, cashier2_user: User, cashier_shift: Shift
    ) -> None:
        close_shift(db, cashier_user.id, 100000)
        shift = open_shift(db, cashier2_user.id, 0, "T1")
        assert shift.status == ShiftStatus.ACTIVE

    def test_blank_terminal_rejected(self, db: Session, cashier_user: User) -> None:
        with pytest.raises(BusinessError) as exc_info:
            open_shift(db, cashier_user.id, 0, "   ")
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_negative_opening_cash_rejected(self, db: Session, cashier_user: User) -> None:
        with pytest.raises(BusinessError) as exc_info:
            open_shift(db, cashier_user.id, -1, "T1")
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_unknown_user_is_not_an_active_shift_conflict(self, db: Session) -> None:
        with pytest.raises(IntegrityError):
            open_shift(db, uuid.uuid4(), 0, "T7")
        assert db.query(Shift).count() == 0


class _DriverError(Exception):
    """Driver exception carrying the constraint name the way psycopg does."""

    def __init__(self, message: str, constraint_name: str) -> None:
        super().__init__(message)
        self.diag = SimpleNamespace(constraint_name=constraint_name)


class TestActiveShiftConflictScope:
    @pytest.mark.parametrize(
        ("constraint", "expected"),
        [
            ("uq_shifts_active_user", "user"),
            ("uq_shifts_active_terminal", "terminal"),
            ("shifts_user_id_fkey", None),
        ],
    )
    def test_reads_constraint_name(self, constraint: str, expected: str | None) -> None:
        orig = _DriverError(
            f'violates constraint "{constraint}" DETAIL: Key (user_id)=(x)', constraint
        )
        exc = IntegrityError("INSERT INTO shifts", {}, orig)
        assert active_shift_conflict_scope(exc) == expected

    def test_sqlite_foreign_key_failure_is_not_a_conflict(self) -> None:
        exc = IntegrityError("INSERT INTO shifts", {}, Exception("FOREIGN KEY constraint failed"))
        assert active_shift_conflict_scope(exc) is None


# ─── Close & reconcile ───────────────────────────────────────────────────────


class TestCloseShift:
    def test_balanced_close_needs_no_approval(
        self, db: Session, cashier_user: User, cashier_shift: Shift, product_a: Product
    ) -> None:
        checkout(db, cashier_user, [CartItem(product_id=product_a.id, quantity=2)])

        shift, totals = close_shift(db, cashier_user.id, 120000, close_note="all good")

        assert shift.status == ShiftStatus.CLOSED
        assert shift.closed_at is not None
        assert shift.expected_cash == 120000
        assert shift.actual_cash == 120000
        assert shift.cash_difference == 0
        assert shift.approval_status == ApprovalStatus.NONE
        assert totals.total_sales == 20000
        assert totals.cash_sales == 20000
        assert get_active_shift(db, cashier_user.id) is None

    def test_short_drawer_goes_pending(
        self, db: Session, cashier_user: User, cashier_shift: Shift, product_a: Product
    ) -> None:
        checkout(db, cashier_user, [CartItem(product_id=product_a.id, quantity=2)])

        shift, _ = close_shift(db, cashier_user.id, 119000)

        assert shift.expected_cash == 120000
        assert shift.cash_difference == -1000
        assert shift.approval_status == ApprovalStatus.PENDING

    def test_difference_within_tolerance_is_not_pending(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings, "SHIFT_CASH_DIFF_TOLERANCE", Decimal("5"))
        shift, _ = close_shift(db, cashier_user.id, 100500)
        assert shift.cash_difference == 500
        assert shift.approval_status == ApprovalStatus.NONE

    def test_card_sales_do_not_count_towards_drawer(
        self, db: Session, cashier_user: User, cashier_shift: Shift, product_a: Product
    ) -> None:
        checkout(db, cashier_user, [CartItem(product_id=product_a.id, quantity=1)])
        checkout(
            db,
            cashier_user,
            [CartItem(product_id=product_a.id, quantity=3)],
            payment_method=PaymentMethod.CARD,
        )

        shift, totals = close_shift(db, cashier_user.id, 110000)

        assert totals.total_sales == 40000
        assert totals.cash_sales == 10000
        assert totals.non_cash_sales == 30000
        assert totals.payment_breakdown == {"CASH": 10000, "CARD": 30000}
        assert shift.expected_cash == 110000
        assert shift.approval_status == ApprovalStatus.NONE

    def test_close_without_active_shift(self, db: Session, cashier_user: User) -> None:
        with pytest.raises(BusinessError) as exc_info:
            close_shift(db, cashier_user.id, 0)
        assert exc_info.value.code == "NO_ACTIVE_SHIFT"
        assert exc_info.value.status == 409

    def test_close_blocked_by_suspended_sales(
        self, db: Session, cashier_user: User, cashier_shift: Shift, product_a: Product
    ) -> None:
        suspend_sale(
            db,
            cashier_user,
            {"items": [{"product_id": str(product_a.id), "quantity": 1}]},
        )
        with pytest.raises(BusinessError) as exc_info:
            close_shift(db, cashier_user.id, 100000)
        assert exc_info.value.code == "PENDING_SUSPENDED_SALES"

    def test_counters_match_recomputation(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
        product_b: Product,
        shift_state,
    ) -> None:
        sale = checkout(
            db,
            cashier_user,
            [
                CartItem(product_id=product_a.id, quantity=2),
                CartItem(product_id=product_b.id, quantity=1),
            ],
        )
        checkout(
            db,
            cashier_user,
            [CartItem(product_id=product_b.id, quantity=2)],
            payment_method=PaymentMethod.BANK_TRANSFER,
        )
        process_return(db, cashier_user, sale.id, [(product_a.id, 1)])

        shift = shift_state(cashier_shift)
        assert find_drift(totals_from_shift(shift), compute_live_totals(db, shift)) == {}
        assert shift.transaction_count == 2
        assert shift.return_count == 1

    def test_closed_snapshot_is_frozen(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
        shift_state,
    ) -> None:
        checkout(db, cashier_user, [CartItem(product_id=product_a.id, quantity=1)])
        close_shift(db, cashier_user.id, 110000)

        open_shift(db, cashier_user.id, 0, "T1")
        checkout(db, cashier_user, [CartItem(product_id=product_a.id, quantity=5)])

        closed = shift_state(cashier_shift)
        assert closed.total_sales == 10000
        assert closed.transaction_count == 1
        _, totals = get_shift_summary(db, closed.id, cashier_user)
        assert totals.total_sales == 10000


# ─── Approval ────────────────────────────────────────────────────────────────


class TestApproval:
    @pytest.fixture()
    def pending_shift(self, db: Session, cashier_user: User, cashier_shift: Shift) -> Shift:
        shift, _ = close_shift(db, cashier_user.id, 99000)
        assert shift.approval_status == ApprovalStatus.PENDING
        return shift

    def test_supervisor_approves(
        self, db: Session, supervisor_user: User, pending_shift: Shift
    ) -> None:
        shift = approve_shift(db, pending_shift.id, supervisor_user, note="counted twice")
        assert shift.approval_status == ApprovalStatus.APPROVED
        assert shift.approved_by == supervisor_user.id
        assert shift.approved_at is not None
        assert shift.approval_note == "counted twice"

    def test_admin_rejects(self, db: Session, admin_user: User, pending_shift: Shift) -> None:
        shift = reject_shift(db, pending_shift.id, admin_user)
        assert shift.approval_status == ApprovalStatus.REJECTED
        assert shift.approved_by == admin_user.id

    def test_decision_is_final(
        self, db: Session, supervisor_user: User, pending_shift: Shift
    ) -> None:
        approve_shift(db, pending_shift.id, supervisor_user)
        with pytest.raises(BusinessError) as exc_info:
            reject_shift(db, pending_shift.id, supervisor_user)
        assert exc_info.value.code == "APPROVAL_NOT_PENDING"

    def test_cashier_cannot_approve(
        self, db: Session, cashier2_user: User, pending_shift: Shift
    ) -> None:
        with pytest.raises(BusinessError) as exc_info:
            approve_shift(db, pending_shift.id, cashier2_user)
        assert exc_info.value.code == "FORBIDDEN"
        assert exc_info.value.status == 403

    def test_balanced_shift_is_not_pending(
        self, db: Session, cashier_user: User, supervisor_user: User, cashier_shift: Shift
    ) -> None:
        shift, _ = close_shift(db, cashier_user.id, 100000)
        with pytest.raises(BusinessError) as exc_info:
            approve_shift(db, shift.id, supervisor_user)
        assert exc_info.value.code == "APPROVAL_NOT_PENDING"

    def test_active_shift_cannot_be_approved(
        self, db: Session, supervisor_user: User, cashier_shift: Shift
    ) -> None:
        with pytest.raises(BusinessError) as exc_info:
            approve_shift(db, cashier_shift.id, supervisor_user)
        assert exc_info.value.code == "APPROVAL_NOT_PENDING"


# ─── Reporting ───────────────────────────────────────────────────────────────


class TestReporting:
    def test_list_filters_by_status_and_search(
        self,
        db: Session,
        cashier_user: User,
        cashier2_user: User,
        cashier_shift: Shift,
    ) -> None:
        close_shift(db, cashier_user.id, 90000)
        open_shift(db, cashier2_user.id, 0, "Front Desk")

        pending = list_shifts(db, approval_status=ApprovalStatus.PENDING)
        assert [s.id for s in pending] == [cashier_shift.id]

        active = list_shifts(db, status=ShiftStatus.ACTIVE)
        assert [s.terminal_name for s in active] == ["Front Desk"]

        by_user = list_shifts(db, search="cashier_2")
        assert [s.terminal_name for s in by_user] == ["Front Desk"]

    def test_list_large_differences_only(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings, "SHIFT_CASH_DIFF_LARGE_THRESHOLD", Decimal("50"))
        close_shift(db, cashier_user.id, 90000)
        assert [s.id for s in list_shifts(db, diff_large_only=True)] == [cashier_shift.id]

    def test_summary_visible_to_owner_only(
        self,
        db: Session,
        cashier2_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
    ) -> None:
        with pytest.raises(BusinessError) as exc_info:
            get_shift_summary(db, cashier_shift.id, cashier2_user)
        assert exc_info.value.code == "FORBIDDEN"
        shift, totals = get_shift_summary(db, cashier_shift.id, supervisor_user)
        assert shift.id == cashier_shift.id
        assert totals.transaction_count == 0

    def test_transactions_list_sales_and_returns(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        product_a: Product,
    ) -> None:
        sale = checkout(db, cashier_user, [CartItem(product_id=product_a.id, quantity=2)])
        ret = process_return(db, cashier_user, sale.id, [(product_a.id, 1)])

        rows = get_shift_transactions(db, cashier_shift.id, cashier_user)

        by_kind = {row["kind"]: row for row in rows}
        assert by_kind["SALE"]["number"] == sale.invoice_no
        assert by_kind["SALE"]["amount"] == 20000
        assert by_kind["RETURN"]["number"] == ret.return_number
        assert by_kind["RETURN"]["amount"] == -10000
