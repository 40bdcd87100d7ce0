"""
Wallet API Routes - Customer Points
"""
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies.auth import get_current_user
from marketplace.core.exceptions import ForbiddenException
from marketplace.db.database import get_db
from marketplace.db.models.user import User
from marketplace.db.models.wallet_ledger import WalletEntryType
from marketplace.domain.services.wallet_service import WalletService, points_to_money

router = APIRouter()


class WalletResponse(BaseModel):
    customer_id: int
    total_points: Decimal
    available_points: Decimal
    available_money: Decimal


class AddPointsRequest(BaseModel):
    customer_id: int
    points: Decimal


class WalletLedgerResponse(BaseModel):
    id: int
    entry_type: WalletEntryType
    points: Decimal
    available_points_after: Decimal
    refund_id: int | None
    description: str | None
    created_at: datetime | None

    class Config:
        from_attributes = True


def _ensure_can_view(user: User, customer_id: int) -> None:
    if not user.is_super_admin and user.id != customer_id:
        raise ForbiddenException("view wallet", user_id=user.id)


def _wallet_response(customer_id: int, wallet) -> WalletResponse:
    total = wallet.total_points if wallet else Decimal("0.00")
    available = wallet.available_points if wallet else Decimal("0.00")
    return WalletResponse(
        customer_id=customer_id,
        total_points=total,
        available_points=available,
        available_money=points_to_money(available),
    )


@router.get(
    "/{customer_id}",
    response_model=WalletResponse,
    summary="Get a customer wallet",
    description="A customer with no wallet yet reads as zero points.",
)
async def get_wallet(
    customer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _ensure_can_view(user, customer_id)
    wallet = await WalletService(db).get_wallet(customer_id)
    return _wallet_response(customer_id, wallet)


@router.get(
    "/{customer_id}/history",
    response_model=List[WalletLedgerResponse],
    summary="Get wallet history",
)
async def get_wallet_history(
    customer_id: int,
    limit: int = Query(20, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _ensure_can_view(user, customer_id)
    return await WalletService(db).get_ledger_history(customer_id, limit)


@router.post(
    "/points",
    response_model=WalletResponse,
    summary="Grant points",
    description="Admin only. Adds points to both the total and the available balance.",
)
async def add_points(
    request: AddPointsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    wallet = await WalletService(db).add_points(user, request.customer_id, request.points)
    return _wallet_response(request.customer_id, wallet)
