"""
Analytics Service - Dashboard Figures Read from the Ledger

Two query shapes, kept apart on purpose:
- platform admin: parent orders are the unit, delivery fee and sales tax
  are counted once per parent, platform refunds have shop_id NULL
- shop scope (owner: owned shops, staff: assigned shop): child orders of
  those shops only, shop-scoped refunds only
"""
import calendar
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Sequence

from sqlalchemy import select, func
from sqlalchemy.orm import aliased
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import ForbiddenException
from marketplace.core.logging import get_logger
from marketplace.db.compat import year_month
from marketplace.db.models.order import Order, OrderStatus
from marketplace.db.models.refund import Refund
from marketplace.db.models.shop import Shop
from marketplace.db.models.user import User, Permission
from marketplace.domain.services.access import owned_shop_ids

logger = get_logger(__name__)

ZERO = Decimal("0.00")

STATUS_KEYS = {
    OrderStatus.PENDING: "pending",
    OrderStatus.PROCESSING: "processing",
    OrderStatus.COMPLETED: "complete",
    OrderStatus.CANCELLED: "cancelled",
    OrderStatus.REFUNDED: "refunded",
    OrderStatus.FAILED: "failed",
    OrderStatus.AT_LOCAL_FACILITY: "localFacility",
    OrderStatus.OUT_FOR_DELIVERY: "outForDelivery",
}

STATUS_WINDOWS = {
    "today_total_order_by_status": 1,
    "weekly_total_order_by_status": 7,
    "monthly_total_order_by_status": 30,
    "yearly_total_order_by_status": 365,
}


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(Decimal("0.01"))


class AnalyticsService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def summary(self, actor: User) -> Dict[str, Any]:
        """Revenue, refunds and order counts visible to the actor"""
        now = datetime.utcnow()

        if actor.is_super_admin:
            data = await self._platform_summary(now)
        elif actor.permission in (Permission.STORE_OWNER, Permission.STAFF):
            shop_ids = await owned_shop_ids(self.db, actor)
            data = await self._shop_summary(shop_ids, now)
        else:
            raise ForbiddenException("view analytics", user_id=actor.id)

        logger.debug(
            "Analytics computed",
            extra_data={"user_id": actor.id, "permission": actor.permission.value},
        )
        return data

    async def _completed_children(self, since: datetime | None, until: datetime, shop_ids: Sequence[int] | None):
        parent = aliased(Order)
        query = (
            select(Order.parent_id, Order.paid_total, parent.delivery_fee, parent.sales_tax)
            .join(parent, Order.parent_id == parent.id)
            .where(
                Order.parent_id.is_not(None),
                Order.order_status == OrderStatus.COMPLETED,
                parent.order_status == OrderStatus.COMPLETED,
                Order.created_at <= until,
            )
        )
        if since is not None:
            query = query.where(Order.created_at > since)
        if shop_ids is not None:
            query = query.where(Order.shop_id.in_(shop_ids))
        result = await self.db.execute(query)
        return result.all()

    @staticmethod
    def _platform_revenue(rows) -> Decimal:
        total = sum((_dec(row.paid_total) for row in rows), ZERO)
        seen = set()
        for row in rows:
            if row.parent_id in seen:
                continue
            seen.add(row.parent_id)
            total += _dec(row.delivery_fee) + _dec(row.sales_tax)
        return total

    async def _status_counts(self, days: int, now: datetime, shop_ids: Sequence[int] | None) -> Dict[str, int]:
        query = (
            select(Order.order_status, func.count(Order.id))
            .where(Order.created_at > now - timedelta(days=days))
            .group_by(Order.order_status)
        )
        if shop_ids is None:
            query = query.where(Order.parent_id.is_(None))
        else:
            query = query.where(Order.parent_id.is_not(None), Order.shop_id.in_(shop_ids))
        result = await self.db.execute(query)
        counts = {status: count for status, count in result.all()}
        return {key: counts.get(status, 0) for status, key in STATUS_KEYS.items()}

    async def _year_sale_by_month(self, now: datetime, shop_ids: Sequence[int] | None) -> List[Dict[str, Any]]:
        start_of_year = datetime(now.year, 1, 1)
        month = year_month(Order.created_at).label("month")
        query = (
            select(month, func.sum(Order.paid_total))
            .where(
                Order.order_status == OrderStatus.COMPLETED,
                Order.created_at >= start_of_year,
                Order.created_at <= now,
            )
            .group_by(month)
        )
        if shop_ids is None:
            query = query.where(Order.parent_id.is_(None))
        else:
            query = query.where(Order.parent_id.is_not(None), Order.shop_id.in_(shop_ids))
        result = await self.db.execute(query)
        totals = {ym: _dec(total) for ym, total in result.all()}

        return [
            {
                "month": calendar.month_name[number],
                "total": totals.get(f"{now.year}-{number:02d}", ZERO),
            }
            for number in range(1, 13)
        ]

    async def _order_status_windows(self, now: datetime, shop_ids: Sequence[int] | None) -> Dict[str, Any]:
        return {
            key: await self._status_counts(days, now, shop_ids)
            for key, days in STATUS_WINDOWS.items()
        }

    async def _platform_summary(self, now: datetime) -> Dict[str, Any]:
        total_revenue = self._platform_revenue(await self._completed_children(None, now, None))
        todays_revenue = self._platform_revenue(
            await self._completed_children(now - timedelta(days=1), now, None)
        )

        total_refunds = await self.db.scalar(
            select(func.coalesce(func.sum(Refund.amount), 0)).where(Refund.shop_id.is_(None))
        )
        total_orders = await self.db.scalar(
            select(func.count(Order.id)).where(Order.parent_id.is_(None))
        )
        total_shops = await self.db.scalar(select(func.count(Shop.id)))
        total_vendors = await self.db.scalar(
            select(func.count(User.id)).where(User.permission == Permission.STORE_OWNER)
        )
        new_customers = await self.db.scalar(
            select(func.count(User.id)).where(
                User.permission == Permission.CUSTOMER,
                User.created_at > now - timedelta(days=30),
            )
        )

        return {
            "total_revenue": total_revenue,
            "todays_revenue": todays_revenue,
            "total_refunds": _dec(total_refunds),
            "total_orders": total_orders or 0,
            "total_shops": total_shops or 0,
            "total_vendors": total_vendors or 0,
            "new_customers": new_customers or 0,
            "total_year_sale_by_month": await self._year_sale_by_month(now, None),
            **await self._order_status_windows(now, None),
        }

    async def _shop_summary(self, shop_ids: List[int], now: datetime) -> Dict[str, Any]:
        total_revenue = sum(
            (_dec(row.paid_total) for row in await self._completed_children(None, now, shop_ids)),
            ZERO,
        )
        todays_revenue = sum(
            (_dec(row.paid_total) for row in await self._completed_children(now - timedelta(days=1), now, shop_ids)),
            ZERO,
        )

        total_refunds = await self.db.scalar(
            select(func.coalesce(func.sum(Refund.amount), 0)).where(Refund.shop_id.in_(shop_ids))
        )
        total_orders = await self.db.scalar(
            select(func.count(Order.id)).where(Order.parent_id.is_not(None), Order.shop_id.in_(shop_ids))
        )

        return {
            "total_revenue": total_revenue,
            "todays_revenue": todays_revenue,
            "total_refunds": _dec(total_refunds),
            "total_orders": total_orders or 0,
            "total_shops": len(shop_ids),
            "total_vendors": 0,
            "new_customers": 0,
            "total_year_sale_by_month": await self._year_sale_by_month(now, shop_ids),
            **await self._order_status_windows(now, shop_ids),
        }
