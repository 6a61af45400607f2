from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from shiftpos.app.api.deps import client_ip
from shiftpos.app.api.permission_deps import require_permission
from shiftpos.app.core.database import get_db
from shiftpos.app.core.money import from_minor, to_minor
from shiftpos.app.models.pos import ApprovalStatus, ShiftStatus
from shiftpos.app.models.user import User
from shiftpos.app.schemas.shifts import (
    ShiftApprovalRequest,
    ShiftCloseRequest,
    ShiftOpenRequest,
    ShiftOut,
    ShiftTransactionOut,
    ShiftWithSummaryOut,
)
from shiftpos.app.services.shifts import (
    approve_shift,
    close_shift,
    get_active_shift,
    get_shift_summary,
    get_shift_transactions,
    list_shifts,
    open_shift,
    reject_shift,
    shift_to_out,
    summary_for,
    summary_to_out,
)

router = APIRouter()


# ─── Own shift ───────────────────────────────────────────────────────────────


@router.get("/active", response_model=ShiftWithSummaryOut | None)
def get_my_active_shift(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> ShiftWithSummaryOut | None:
    shift = get_active_shift(db, current_user.id)
    if shift is None:
        return None
    totals = summary_for(db, shift)
    return ShiftWithSummaryOut(
        shift=shift_to_out(shift), summary=summary_to_out(shift, totals)
    )


@router.post("/open", response_model=ShiftOut, status_code=status.HTTP_201_CREATED)
def open_new_shift(
    payload: ShiftOpenRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> ShiftOut:
    shift = open_shift(
        db=db,
        user_id=current_user.id,
        opening_cash=to_minor(payload.opening_cash),
        terminal_name=payload.terminal_name,
        note=payload.note,
        ip_address=client_ip(request),
    )
    return shift_to_out(shift)


@router.post("/close", response_model=ShiftWithSummaryOut)
def close_current_shift(
    payload: ShiftCloseRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> ShiftWithSummaryOut:
    shift, totals = close_shift(
        db=db,
        user_id=current_user.id,
        actual_cash=to_minor(payload.actual_cash),
        close_note=payload.close_note,
        ip_address=client_ip(request),
    )
    return ShiftWithSummaryOut(
        shift=shift_to_out(shift), summary=summary_to_out(shift, totals)
    )


# ─── Approval ────────────────────────────────────────────────────────────────


@router.post("/{shift_id}/approve", response_model=ShiftOut)
def approve(
    shift_id: UUID,
    request: Request,
    payload: ShiftApprovalRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("shift:approve")),
) -> ShiftOut:
    shift = approve_shift(
        db,
        shift_id,
        current_user,
        note=payload.note if payload else None,
        ip_address=client_ip(request),
    )
    return shift_to_out(shift)


@router.post("/{shift_id}/reject", response_model=ShiftOut)
def reject(
    shift_id: UUID,
    request: Request,
    payload: ShiftApprovalRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("shift:approve")),
) -> ShiftOut:
    shift = reject_shift(
        db,
        shift_id,
        current_user,
        note=payload.note if payload else None,
        ip_address=client_ip(request),
    )
    return shift_to_out(shift)


# ─── Reporting ───────────────────────────────────────────────────────────────


@router.get("", response_model=list[ShiftOut])
def get_shifts(
    status_filter: ShiftStatus | None = Query(None, alias="status"),
    approval_status: ApprovalStatus | None = None,
    user_id: UUID | None = None,
    terminal_name: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    diff_large_only: bool = False,
    search: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("shift:list")),
) -> list[ShiftOut]:
    shifts = list_shifts(
        db,
        status=status_filter,
        approval_status=approval_status,
        user_id=user_id,
        terminal_name=terminal_name,
        date_from=date_from,
        date_to=date_to,
        diff_large_only=diff_large_only,
        search=search,
        limit=limit,
        offset=offset,
    )
    return [shift_to_out(s) for s in shifts]


@router.get("/{shift_id}/summary", response_model=ShiftWithSummaryOut)
def get_summary(
    shift_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> ShiftWithSummaryOut:
    shift, totals = get_shift_summary(db, shift_id, current_user)
    return ShiftWithSummaryOut(
        shift=shift_to_out(shift), summary=summary_to_out(shift, totals)
    )


@router.get("/{shift_id}/transactions", response_model=list[ShiftTransactionOut])
def get_transactions(
    shift_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> list[ShiftTransactionOut]:
    rows = get_shift_transactions(db, shift_id, current_user)
    return [
        ShiftTransactionOut(
            **{
                **row,
                "amount": str(from_minor(row["amount"])),
                "created_at": row["created_at"].isoformat() if row["created_at"] else "",
            }
        )
        for row in rows
    ]
