"""
Analytics API Routes
"""
from decimal import Decimal
from typing import Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies.auth import get_current_user
from marketplace.db.database import get_db
from marketplace.db.models.user import User
from marketplace.domain.services.analytics_service import AnalyticsService

router = APIRouter()


class MonthlySale(BaseModel):
    month: str
    total: Decimal


class AnalyticsResponse(BaseModel):
    total_revenue: Decimal
    todays_revenue: Decimal
    total_refunds: Decimal
    total_orders: int
    total_shops: int
    total_vendors: int
    new_customers: int
    total_year_sale_by_month: List[MonthlySale]
    today_total_order_by_status: Dict[str, int]
    weekly_total_order_by_status: Dict[str, int]
    monthly_total_order_by_status: Dict[str, int]
    yearly_total_order_by_status: Dict[str, int]


@router.get(
    "",
    response_model=AnalyticsResponse,
    summary="Dashboard analytics",
    description="Platform-wide figures for admins; owners and staff get figures for their own shops.",
)
async def get_analytics(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AnalyticsService(db).summary(user)
