from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from shiftpos.app.api.permission_deps import require_permission
from shiftpos.app.core.database import get_db
from shiftpos.app.models.pos import SaleStatus
from shiftpos.app.models.user import User
from shiftpos.app.schemas.pos import SaleOut
from shiftpos.app.services.sales import get_sale, list_sales, sale_to_out

router = APIRouter()


@router.get("", response_model=list[SaleOut])
def get_sales(
    shift_id: UUID | None = None,
    cashier_id: UUID | None = None,
    customer_id: UUID | None = None,
    status: SaleStatus | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("sales:read")),
) -> list[SaleOut]:
    sales = list_sales(
        db,
        current_user,
        shift_id=shift_id,
        cashier_id=cashier_id,
        customer_id=customer_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [sale_to_out(db, s) for s in sales]


@router.get("/{sale_id}", response_model=SaleOut)
def get_sale_detail(
    sale_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("sales:read")),
) -> SaleOut:
    sale = get_sale(db, sale_id, current_user)
    return sale_to_out(db, sale, with_returnable=True)
