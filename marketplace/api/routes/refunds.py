"""
Refund API Routes
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies.auth import get_current_user
from marketplace.db.database import get_db
from marketplace.db.models.refund import RefundStatus
from marketplace.db.models.user import User
from marketplace.domain.services.refund_service import RefundService

router = APIRouter()


class RefundCreateRequest(BaseModel):
    order_id: int
    title: Optional[str] = None
    description: Optional[str] = None


class RefundStatusRequest(BaseModel):
    status: RefundStatus


class RefundResponse(BaseModel):
    id: int
    order_id: int
    customer_id: int
    shop_id: int | None
    parent_id: int | None
    amount: Decimal
    status: RefundStatus
    title: str | None
    description: str | None
    created_at: datetime | None

    class Config:
        from_attributes = True


@router.post(
    "",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a refund",
    description="The customer of a completed order asks for its amount back.",
)
async def create_refund(
    request: RefundCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = RefundService(db)
    return await service.create_refund(user, request.order_id, request.title, request.description)


@router.get("/{refund_id}", response_model=RefundResponse, summary="Get a refund")
async def get_refund(
    refund_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await RefundService(db).get_refund(user, refund_id)


@router.put(
    "/{refund_id}",
    response_model=RefundResponse,
    summary="Approve or reject a refund",
    description=(
        "Admin only. Approval takes each child order's amount back from its shop balance "
        "and credits the customer's wallet with points. A refund is approved at most once."
    ),
)
async def update_refund(
    refund_id: int,
    request: RefundStatusRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await RefundService(db).approve_or_reject_refund(user, refund_id, request.status)
