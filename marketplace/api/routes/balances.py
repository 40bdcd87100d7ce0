"""
Balance API Routes
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies.auth import get_current_user
from marketplace.core.exceptions import BalanceNotFoundError, ForbiddenException
from marketplace.db.database import get_db
from marketplace.db.models.balance_ledger import BalanceEntryType
from marketplace.db.models.user import User
from marketplace.domain.services.access import owned_shop_ids
from marketplace.domain.services.balance_service import BalanceService

router = APIRouter()


class BalanceResponse(BaseModel):
    shop_id: int
    total_earnings: Decimal
    current_balance: Decimal
    withdrawn_amount: Decimal
    total_refunded: Decimal
    admin_commission_rate: Optional[Decimal]
    is_custom_commission: bool

    class Config:
        from_attributes = True


class BalanceLedgerResponse(BaseModel):
    id: int
    entry_type: BalanceEntryType
    amount: Decimal
    balance_after: Decimal
    order_id: int | None
    refund_id: int | None
    withdraw_id: int | None
    description: str | None
    created_at: datetime | None

    class Config:
        from_attributes = True


async def _ensure_can_view(db: AsyncSession, user: User, shop_id: int) -> None:
    if user.is_super_admin:
        return
    if shop_id not in await owned_shop_ids(db, user):
        raise ForbiddenException("view shop balance", user_id=user.id)


@router.get(
    "/{shop_id}",
    response_model=BalanceResponse,
    summary="Get a shop balance",
    description="Platform admins see every shop; owners and staff see their own shops.",
)
async def get_balance(
    shop_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_can_view(db, user, shop_id)
    balance = await BalanceService(db).get_balance(shop_id)
    if not balance:
        raise BalanceNotFoundError(shop_id)
    return balance


@router.get(
    "/{shop_id}/history",
    response_model=List[BalanceLedgerResponse],
    summary="Get shop balance history",
    description="Balance movements for the shop, newest first.",
)
async def get_balance_history(
    shop_id: int,
    limit: int = Query(20, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_can_view(db, user, shop_id)
    return await BalanceService(db).get_ledger_history(shop_id, limit)
