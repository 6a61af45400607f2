from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from shiftpos.app.api.deps import client_ip
from shiftpos.app.api.permission_deps import require_permission
from shiftpos.app.core.database import get_db
from shiftpos.app.models.user import User
from shiftpos.app.schemas.pos import (
    CheckoutRequest,
    SaleOut,
    SuspendedSaleOut,
    SuspendRequest,
    VoidRequest,
)
from shiftpos.app.services.pos import (
    checkout,
    list_suspended_sales,
    recall_suspended_sale,
    suspend_sale,
    void_sale,
)
from shiftpos.app.services.sales import sale_to_out, suspended_to_out

router = APIRouter()


# ─── Checkout ────────────────────────────────────────────────────────────────


@router.post("/checkout", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    payload: CheckoutRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:sale")),
) -> SaleOut:
    sale = checkout(
        db,
        current_user,
        payload.items,
        payment_method=payload.payment_method,
        customer_id=payload.customer_id,
        redeem_points=payload.redeem_points,
        ip_address=client_ip(request),
    )
    return sale_to_out(db, sale)


@router.post("/sales/{sale_id}/void", response_model=SaleOut)
def void(
    sale_id: UUID,
    request: Request,
    payload: VoidRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("sale:void")),
) -> SaleOut:
    sale = void_sale(
        db,
        sale_id,
        current_user,
        reason=payload.reason if payload else None,
        ip_address=client_ip(request),
    )
    return sale_to_out(db, sale)


# ─── Suspended carts ─────────────────────────────────────────────────────────


@router.post(
    "/suspended", response_model=SuspendedSaleOut, status_code=status.HTTP_201_CREATED
)
def park_cart(
    payload: SuspendRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:sale")),
) -> SuspendedSaleOut:
    suspended = suspend_sale(
        db,
        current_user,
        payload.model_dump(mode="json", exclude={"note"}),
        customer_id=payload.customer_id,
        note=payload.note,
    )
    return suspended_to_out(suspended)


@router.get("/suspended", response_model=list[SuspendedSaleOut])
def get_parked_carts(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:sale")),
) -> list[SuspendedSaleOut]:
    return [suspended_to_out(s) for s in list_suspended_sales(db, current_user.id)]


@router.post("/suspended/{suspended_id}/recall")
def recall_cart(
    suspended_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:sale")),
) -> dict[str, Any]:
    return recall_suspended_sale(db, suspended_id, current_user)
