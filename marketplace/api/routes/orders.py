"""
Order API Routes
"""
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies.auth import get_current_user
from marketplace.db.database import get_db
from marketplace.db.models.order import OrderStatus, PaymentGateway
from marketplace.db.models.user import User
from marketplace.domain.services.order_service import OrderService, ShopLine

router = APIRouter()


class ShopLineRequest(BaseModel):
    shop_id: int
    amount: Decimal
    discount: Decimal = Decimal("0.00")


class PlaceOrderRequest(BaseModel):
    lines: List[ShopLineRequest] = Field(..., min_length=1)
    delivery_fee: Decimal = Decimal("0.00")
    sales_tax: Decimal = Decimal("0.00")
    payment_gateway: PaymentGateway = PaymentGateway.CASH_ON_DELIVERY


class OrderStatusRequest(BaseModel):
    status: OrderStatus


class OrderResponse(BaseModel):
    id: int
    tracking_number: str
    parent_id: int | None
    shop_id: int | None
    customer_id: int
    amount: Decimal
    sales_tax: Decimal
    delivery_fee: Decimal
    discount: Decimal
    paid_total: Decimal
    total: Decimal
    order_status: OrderStatus
    payment_gateway: PaymentGateway
    created_at: datetime | None

    class Config:
        from_attributes = True


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    description="Creates the parent order for the calling customer and one child order per shop line.",
)
async def place_order(
    request: PlaceOrderRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = OrderService(db)
    return await service.place_order(
        user.id,
        [ShopLine(line.shop_id, line.amount, line.discount) for line in request.lines],
        delivery_fee=request.delivery_fee,
        sales_tax=request.sales_tax,
        payment_gateway=request.payment_gateway,
    )


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Change order status",
    description="Admin only. The status is copied to the child orders; completing the order settles them.",
)
async def update_order_status(
    order_id: int,
    request: OrderStatusRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService(db).update_order_status(user, order_id, request.status)
