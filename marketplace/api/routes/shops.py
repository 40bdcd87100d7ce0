"""
Shop API Routes - Admin Approval
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies.auth import get_current_user
from marketplace.api.routes.balances import BalanceResponse
from marketplace.db.database import get_db
from marketplace.db.models.user import User
from marketplace.domain.services.shop_service import ShopService

router = APIRouter()


class ApproveShopRequest(BaseModel):
    rate: Optional[Decimal] = None
    use_custom: bool = False


class ShopResponse(BaseModel):
    id: int
    name: str
    owner_id: int
    is_active: bool
    updated_at: datetime | None

    class Config:
        from_attributes = True


@router.post(
    "/{shop_id}/approve",
    response_model=BalanceResponse,
    summary="Approve a shop",
    description=(
        "Activates the shop, publishes its draft products and sets the commission rate "
        "on its balance: from the earnings tiers, or the given rate when use_custom is true."
    ),
)
async def approve_shop(
    shop_id: int,
    request: ApproveShopRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = ShopService(db)
    return await service.approve_shop(user, shop_id, rate=request.rate, use_custom=request.use_custom)


@router.post(
    "/{shop_id}/disapprove",
    response_model=ShopResponse,
    summary="Disapprove a shop",
    description="Deactivates the shop and returns its products to draft. The commission rate is kept.",
)
async def disapprove_shop(
    shop_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = ShopService(db)
    return await service.disapprove_shop(user, shop_id)
