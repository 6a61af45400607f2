from fastapi import APIRouter

from shiftpos.app.api.v1.endpoints import (
    discounts,
    loyalty,
    pos,
    returns,
    sales,
    shifts,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(shifts.router, prefix="/shifts", tags=["shifts"])
api_router.include_router(pos.router, prefix="/pos", tags=["pos"])
api_router.include_router(sales.router, prefix="/sales", tags=["sales"])
api_router.include_router(returns.router, prefix="/returns", tags=["returns"])
api_router.include_router(discounts.router, prefix="/discounts", tags=["discounts"])
api_router.include_router(loyalty.router, prefix="/loyalty", tags=["loyalty"])
