from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftpos.app.core import errors
from shiftpos.app.core.config import settings
from shiftpos.app.core.database import atomic
from shiftpos.app.core.money import from_minor, to_minor
from shiftpos.app.core.permissions import is_supervisor
from shiftpos.app.models.pos import (
    ApprovalStatus,
    Sale,
    Shift,
    ShiftStatus,
    SuspendedSale,
)
from shiftpos.app.models.returns import Return
from shiftpos.app.models.user import User
from shiftpos.app.schemas.shifts import ActiveShiftOut, ClosedShiftOut, ShiftSummaryOut
from shiftpos.app.services.audit import log_action
from shiftpos.app.services.shift_aggregates import (
    ShiftTotals,
    compute_live_totals,
    find_drift,
    totals_from_shift,
    write_to_shift,
)

logger = logging.getLogger(__name__)

_MONEY_FIELDS = frozenset(
    {
        "total_sales",
        "cash_sales",
        "non_cash_sales",
        "total_discount",
        "total_refund",
        "cash_refunds",
        "non_cash_refunds",
        "void_cash_out",
        "return_cancel_cash_in",
    }
)


# ─── Active-shift guard ──────────────────────────────────────────────────────


def get_active_shift(db: Session, user_id: UUID, *, lock: bool = False) -> Shift | None:
    """Return the user's ACTIVE shift, or None."""
    query = db.query(Shift).filter(
        Shift.user_id == user_id, Shift.status == ShiftStatus.ACTIVE
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def require_active_shift(db: Session, user_id: UUID, *, lock: bool = False) -> Shift:
    """Resolve the caller's ACTIVE shift or fail with NO_ACTIVE_SHIFT."""
    shift = get_active_shift(db, user_id, lock=lock)
    if shift is None:
        raise errors.conflict(
            "NO_ACTIVE_SHIFT", "You must open a shift before performing this operation"
        )
    return shift


def lock_shift(db: Session, shift_id: UUID) -> Shift | None:
    return db.query(Shift).filter(Shift.id == shift_id).with_for_update().first()


# ─── Lifecycle ───────────────────────────────────────────────────────────────


_ACTIVE_SHIFT_INDEXES = {
    "uq_shifts_active_terminal": "terminal",
    "uq_shifts_active_user": "user",
}
# SQLite reports the indexed columns instead of the index name.
_SQLITE_UNIQUE_COLUMNS = {
    "UNIQUE constraint failed: shifts.terminal_name": "terminal",
    "UNIQUE constraint failed: shifts.user_id": "user",
}


def active_shift_conflict_scope(exc: IntegrityError) -> str | None:
    """Map a violation of an active-shift index to ``"user"``/``"terminal"``.

    Any other integrity failure (foreign keys, checks) returns None.
    """
    diag = getattr(exc.orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint is not None:
        return _ACTIVE_SHIFT_INDEXES.get(constraint)
    message = str(exc.orig)
    for marker, scope in {**_ACTIVE_SHIFT_INDEXES, **_SQLITE_UNIQUE_COLUMNS}.items():
        if marker in message:
            return scope
    return None


def open_shift(
    db: Session,
    user_id: UUID,
    opening_cash: int,
    terminal_name: str,
    note: str | None = None,
    ip_address: str | None = None,
) -> Shift:
    """Open a new shift.

    Uniqueness of the ACTIVE shift per user and per terminal is enforced by
    partial unique indexes; the insert itself is the check.
    """
    terminal_name = (terminal_name or "").strip()
    if not terminal_name:
        raise errors.validation("Terminal name is required", {"field": "terminal_name"})
    if opening_cash < 0:
        raise errors.validation("Opening cash cannot be negative", {"field": "opening_cash"})

    with atomic(db):
        shift = Shift(
            user_id=user_id,
            terminal_name=terminal_name,
            status=ShiftStatus.ACTIVE,
            approval_status=ApprovalStatus.NONE,
            opening_cash=opening_cash,
            note=note,
            payment_breakdown={},
        )
        db.add(shift)
        try:
            db.flush()
        except IntegrityError as exc:
            scope = active_shift_conflict_scope(exc)
            if scope is None:
                raise
            raise errors.conflict(
                "SHIFT_ALREADY_ACTIVE",
                "An active shift already exists for this "
                + ("terminal" if scope == "terminal" else "user"),
                {"scope": scope, "terminal_name": terminal_name},
            ) from exc

        log_action(
            db,
            user_id=user_id,
            action="SHIFT_OPENED",
            resource_type="shifts",
            resource_id=str(shift.id),
            ip_address=ip_address,
            changes={"terminal_name": terminal_name, "opening_cash": opening_cash},
        )

    db.refresh(shift)
    logger.info("Shift %s opened by %s on %s", shift.id, user_id, terminal_name)
    return shift


def close_shift(
    db: Session,
    user_id: UUID,
    actual_cash: int,
    close_note: str | None = None,
    ip_address: str | None = None,
) -> tuple[Shift, ShiftTotals]:
    """Close the caller's shift, reconcile cash and freeze its aggregates."""
    if actual_cash < 0:
        raise errors.validation("Actual cash cannot be negative", {"field": "actual_cash"})

    with atomic(db):
        shift = require_active_shift(db, user_id, lock=True)

        suspended = (
            db.query(SuspendedSale).filter(SuspendedSale.cashier_id == user_id).count()
        )
        if suspended:
            raise errors.conflict(
                "PENDING_SUSPENDED_SALES",
                "Recall or discard suspended sales before closing the shift",
                {"count": suspended},
            )

        running = totals_from_shift(shift)
        live = compute_live_totals(db, shift)
        drift = find_drift(running, live)
        if drift:
            logger.warning("Shift %s counter drift at close: %s", shift.id, drift)

        expected = live.expected_cash(shift.opening_cash)
        difference = actual_cash - expected
        tolerance = to_minor(settings.SHIFT_CASH_DIFF_TOLERANCE)

        write_to_shift(shift, live)
        shift.status = ShiftStatus.CLOSED
        shift.closed_at = datetime.now(timezone.utc)
        shift.expected_cash = expected
        shift.actual_cash = actual_cash
        shift.cash_difference = difference
        shift.close_note = close_note
        shift.approval_status = (
            ApprovalStatus.PENDING if abs(difference) > tolerance else ApprovalStatus.NONE
        )

        log_action(
            db,
            user_id=user_id,
            action="SHIFT_CLOSED",
            resource_type="shifts",
            resource_id=str(shift.id),
            ip_address=ip_address,
            changes={
                "expected_cash": expected,
                "actual_cash": actual_cash,
                "cash_difference": difference,
                "approval_status": shift.approval_status.value,
            },
        )

    db.refresh(shift)
    logger.info(
        "Shift %s closed: expected=%s actual=%s difference=%s approval=%s",
        shift.id,
        expected,
        actual_cash,
        difference,
        shift.approval_status.value,
    )
    return shift, live


def _decide(
    db: Session,
    shift_id: UUID,
    approver: User,
    note: str | None,
    decision: ApprovalStatus,
    ip_address: str | None,
) -> Shift:
    if not is_supervisor(approver.role):
        raise errors.forbidden("Only supervisors or admins can review shifts")

    with atomic(db):
        shift = lock_shift(db, shift_id)
        if shift is None:
            raise errors.not_found("Shift not found", {"shift_id": str(shift_id)})
        if shift.status != ShiftStatus.CLOSED or shift.approval_status != ApprovalStatus.PENDING:
            raise errors.conflict(
                "APPROVAL_NOT_PENDING",
                "Shift is not awaiting approval",
                {
                    "status": shift.status.value,
                    "approval_status": shift.approval_status.value,
                },
            )
        shift.approval_status = decision
        shift.approved_by = approver.id
        shift.approved_at = datetime.now(timezone.utc)
        shift.approval_note = note

        log_action(
            db,
            user_id=approver.id,
            action=f"SHIFT_{decision.value}",
            resource_type="shifts",
            resource_id=str(shift.id),
            ip_address=ip_address,
            changes={"cash_difference": shift.cash_difference, "note": note},
        )

    db.refresh(shift)
    logger.info("Shift %s %s by %s", shift.id, decision.value.lower(), approver.id)
    return shift


def approve_shift(
    db: Session,
    shift_id: UUID,
    approver: User,
    note: str | None = None,
    ip_address: str | None = None,
) -> Shift:
    return _decide(db, shift_id, approver, note, ApprovalStatus.APPROVED, ip_address)


def reject_shift(
    db: Session,
    shift_id: UUID,
    approver: User,
    note: str | None = None,
    ip_address: str | None = None,
) -> Shift:
    return _decide(db, shift_id, approver, note, ApprovalStatus.REJECTED, ip_address)


# ─── Reporting ───────────────────────────────────────────────────────────────


def summary_for(db: Session, shift: Shift) -> ShiftTotals:
    """Live aggregation for an ACTIVE shift, frozen snapshot once CLOSED."""
    if shift.status == ShiftStatus.ACTIVE:
        return compute_live_totals(db, shift)
    return totals_from_shift(shift)


def _get_visible_shift(db: Session, shift_id: UUID, viewer: User) -> Shift:
    shift = db.get(Shift, shift_id)
    if shift is None:
        raise errors.not_found("Shift not found", {"shift_id": str(shift_id)})
    if shift.user_id != viewer.id and not is_supervisor(viewer.role):
        raise errors.forbidden("You can only view your own shifts")
    return shift


def get_shift_summary(
    db: Session, shift_id: UUID, viewer: User
) -> tuple[Shift, ShiftTotals]:
    shift = _get_visible_shift(db, shift_id, viewer)
    return shift, summary_for(db, shift)


def list_shifts(
    db: Session,
    *,
    status: ShiftStatus | None = None,
    approval_status: ApprovalStatus | None = None,
    user_id: UUID | None = None,
    terminal_name: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    diff_large_only: bool = False,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Shift]:
    """Return shifts matching the filters, most recent first."""
    query = db.query(Shift).join(User, User.id == Shift.user_id)
    if status is not None:
        query = query.filter(Shift.status == status)
    if approval_status is not None:
        query = query.filter(Shift.approval_status == approval_status)
    if user_id is not None:
        query = query.filter(Shift.user_id == user_id)
    if terminal_name:
        query = query.filter(Shift.terminal_name == terminal_name)
    if date_from is not None:
        query = query.filter(Shift.opened_at >= date_from)
    if date_to is not None:
        query = query.filter(Shift.opened_at <= date_to)
    if diff_large_only:
        threshold = to_minor(settings.SHIFT_CASH_DIFF_LARGE_THRESHOLD)
        query = query.filter(
            or_(Shift.cash_difference >= threshold, Shift.cash_difference <= -threshold)
        )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(Shift.terminal_name.ilike(pattern), User.username.ilike(pattern))
        )
    return (
        query.order_by(Shift.opened_at.desc(), Shift.id)
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_shift_transactions(
    db: Session, shift_id: UUID, viewer: User
) -> list[dict[str, Any]]:
    """Sales and returns recorded on a shift, newest first.

    Returns are listed with negative amounts so the column sums to the
    shift's net takings.
    """
    shift = _get_visible_shift(db, shift_id, viewer)

    rows: list[dict[str, Any]] = []
    for sale in db.query(Sale).filter(Sale.shift_id == shift.id).all():
        rows.append(
            {
                "kind": "SALE",
                "id": sale.id,
                "number": sale.invoice_no,
                "amount": sale.final_amount,
                "payment_method": sale.payment_method.value,
                "status": sale.status.value,
                "created_at": sale.created_at,
            }
        )
    for ret in db.query(Return).filter(Return.shift_id == shift.id).all():
        rows.append(
            {
                "kind": "RETURN",
                "id": ret.id,
                "number": ret.return_number,
                "amount": -ret.total_refund,
                "payment_method": ret.refund_method.value,
                "status": ret.status.value,
                "created_at": ret.created_at,
            }
        )
    rows.sort(key=lambda r: r["created_at"], reverse=True)
    return rows


# ─── Output mapping ──────────────────────────────────────────────────────────


def shift_to_out(shift: Shift) -> ActiveShiftOut | ClosedShiftOut:
    base: dict[str, Any] = {
        "id": shift.id,
        "user_id": shift.user_id,
        "username": shift.user.username if shift.user else "unknown",
        "terminal_name": shift.terminal_name,
        "opened_at": shift.opened_at.isoformat(),
        "opening_cash": str(from_minor(shift.opening_cash)),
        "note": shift.note,
    }
    if shift.status == ShiftStatus.ACTIVE:
        return ActiveShiftOut(**base)
    return ClosedShiftOut(
        **base,
        closed_at=shift.closed_at.isoformat() if shift.closed_at else "",
        expected_cash=str(from_minor(shift.expected_cash or 0)),
        actual_cash=str(from_minor(shift.actual_cash or 0)),
        cash_difference=str(from_minor(shift.cash_difference or 0)),
        close_note=shift.close_note,
        approval_status=shift.approval_status.value,
        approved_by=shift.approved_by,
        approved_at=shift.approved_at.isoformat() if shift.approved_at else None,
        approval_note=shift.approval_note,
    )


def summary_to_out(shift: Shift, totals: ShiftTotals) -> ShiftSummaryOut:
    data = totals.as_dict()
    for name in _MONEY_FIELDS:
        data[name] = str(from_minor(data[name]))
    data["payment_breakdown"] = {
        method: str(from_minor(amount)) for method, amount in totals.payment_breakdown.items()
    }
    if shift.status == ShiftStatus.CLOSED and shift.expected_cash is not None:
        expected = shift.expected_cash
    else:
        expected = totals.expected_cash(shift.opening_cash)
    data["expected_cash"] = str(from_minor(expected))
    return ShiftSummaryOut(**data)
