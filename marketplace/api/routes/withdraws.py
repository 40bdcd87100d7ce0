"""
Withdraw API Routes - Shop Payouts
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies.auth import get_current_user
from marketplace.db.database import get_db
from marketplace.db.models.user import User
from marketplace.db.models.withdraw import WithdrawStatus
from marketplace.domain.services.withdraw_service import WithdrawService

router = APIRouter()


class WithdrawCreateRequest(BaseModel):
    shop_id: Optional[int] = None
    amount: Decimal
    payment_method: Optional[str] = None
    details: Optional[str] = None
    note: Optional[str] = None


class WithdrawStatusRequest(BaseModel):
    status: WithdrawStatus


class WithdrawResponse(BaseModel):
    id: int
    shop_id: int
    amount: Decimal
    payment_method: str | None
    details: str | None
    note: str | None
    status: WithdrawStatus
    created_at: datetime | None

    class Config:
        from_attributes = True


@router.post(
    "",
    response_model=WithdrawResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a withdrawal",
    description="Reserves the amount from the shop balance immediately; fails when the balance is short.",
)
async def request_withdrawal(
    request: WithdrawCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = WithdrawService(db)
    return await service.request_withdrawal(
        user,
        request.shop_id,
        request.amount,
        payment_method=request.payment_method,
        details=request.details,
        note=request.note,
    )


@router.get("/{withdraw_id}", response_model=WithdrawResponse, summary="Get a withdrawal")
async def get_withdraw(
    withdraw_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WithdrawService(db).get_withdraw(user, withdraw_id)


@router.post(
    "/{withdraw_id}/status",
    response_model=WithdrawResponse,
    summary="Change withdrawal status",
    description="Admin review. Approval moves no money; rejection returns the reserved amount to the shop.",
)
async def update_withdraw_status(
    withdraw_id: int,
    request: WithdrawStatusRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WithdrawService(db).approve_withdraw(user, withdraw_id, request.status)
