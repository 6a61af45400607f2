from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from shiftpos.app.api.deps import client_ip
from shiftpos.app.api.permission_deps import require_permission
from shiftpos.app.core.database import get_db
from shiftpos.app.models.returns import ReturnStatus
from shiftpos.app.models.user import User
from shiftpos.app.schemas.pos import SaleOut
from shiftpos.app.schemas.returns import ReturnCancelRequest, ReturnOut, ReturnRequest
from shiftpos.app.services.returns import (
    cancel_return,
    get_return,
    list_returns,
    lookup_sale,
    process_return,
)
from shiftpos.app.services.sales import return_to_out, sale_to_out

router = APIRouter()


@router.get("/lookup", response_model=SaleOut)
def lookup_invoice(
    invoice_no: str,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("returns:process")),
) -> SaleOut:
    """Find a sale by invoice number along with what is still returnable."""
    sale = lookup_sale(db, invoice_no)
    return sale_to_out(db, sale, with_returnable=True)


@router.post("", response_model=ReturnOut, status_code=status.HTTP_201_CREATED)
def create_return(
    payload: ReturnRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("returns:process")),
) -> ReturnOut:
    ret = process_return(
        db,
        current_user,
        payload.sale_id,
        [(item.product_id, item.quantity) for item in payload.items],
        refund_method=payload.refund_method,
        reason=payload.reason,
        ip_address=client_ip(request),
    )
    return return_to_out(ret)


@router.post("/{return_id}/cancel", response_model=ReturnOut)
def cancel(
    return_id: UUID,
    request: Request,
    payload: ReturnCancelRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("returns:cancel")),
) -> ReturnOut:
    ret = cancel_return(
        db,
        return_id,
        current_user,
        reason=payload.reason if payload else None,
        ip_address=client_ip(request),
    )
    return return_to_out(ret)


@router.get("", response_model=list[ReturnOut])
def get_returns(
    sale_id: UUID | None = None,
    shift_id: UUID | None = None,
    status_filter: ReturnStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("returns:process")),
) -> list[ReturnOut]:
    returns = list_returns(
        db,
        current_user,
        sale_id=sale_id,
        shift_id=shift_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    return [return_to_out(r) for r in returns]


@router.get("/{return_id}", response_model=ReturnOut)
def get_return_detail(
    return_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("returns:process")),
) -> ReturnOut:
    return return_to_out(get_return(db, return_id, current_user))
