"""
Settlement Service - Crediting Shops for Completed Orders

A child order settles once: the platform commission is recorded in
platform_commissions and the net amount is credited to the shop balance.
settled_at on the child plus the unique order_id on platform_commissions
keep a repeated completion from crediting twice.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import get_logger
from marketplace.db.models.order import Order
from marketplace.db.models.platform_commission import PlatformCommission, CommissionType
from marketplace.domain import commission
from marketplace.domain.services.balance_service import BalanceService

logger = get_logger(__name__)


class SettlementService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.balance_service = BalanceService(db)

    async def settle_child_order(self, child: Order) -> Optional[PlatformCommission]:
        """Split a child order's amount and credit the shop.

        Returns None when the order was already settled. Only flushes.
        """
        if child.is_parent:
            raise ValueError(f"Order {child.id} is a parent order and cannot be settled")

        if child.settled_at is not None:
            logger.info(
                "Child order already settled, skipping",
                extra_data={"order_id": child.id, "shop_id": child.shop_id},
            )
            return None

        balance = await self.balance_service.get_or_create_balance(child.shop_id, for_update=True)
        if balance.is_custom_commission and balance.admin_commission_rate is not None:
            rate = balance.admin_commission_rate
            commission_type = CommissionType.CUSTOM
        else:
            rate = commission.rate_for(balance.total_earnings)
            commission_type = CommissionType.TIER

        commission_amount, shop_earnings = commission.split_commission(child.amount, rate)

        record = PlatformCommission(
            order_id=child.id,
            shop_id=child.shop_id,
            order_total=child.amount,
            commission_rate=rate,
            commission_amount=commission_amount,
            shop_earnings=shop_earnings,
            commission_type=commission_type,
        )
        self.db.add(record)
        child.settled_at = datetime.utcnow()
        await self.db.flush()

        if shop_earnings > 0:
            await self.balance_service.credit_settlement(child.shop_id, child.id, shop_earnings)

        logger.info(
            "Child order settled",
            extra_data={
                "order_id": child.id,
                "shop_id": child.shop_id,
                "commission_rate": str(rate),
                "commission_type": commission_type.value,
                "commission_amount": str(commission_amount),
                "shop_earnings": str(shop_earnings),
            },
        )
        return record

    async def get_commission(self, order_id: int) -> Optional[PlatformCommission]:
        result = await self.db.execute(
            select(PlatformCommission).where(PlatformCommission.order_id == order_id)
        )
        return result.scalar_one_or_none()
