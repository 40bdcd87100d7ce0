"""
Shop Service - Admin Approval of Vendor Shops
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import NotFoundException
from marketplace.core.logging import get_logger, log_ledger_operation
from marketplace.db.models.balance import Balance
from marketplace.db.models.shop import Shop, Product, ProductStatus
from marketplace.db.models.user import User
from marketplace.domain import commission
from marketplace.domain.services.access import ensure_super_admin
from marketplace.domain.services.balance_service import BalanceService

logger = get_logger(__name__)


class ShopService:
    """Activation and commission setup for shops"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.balance_service = BalanceService(db)

    async def get_shop(self, shop_id: int, for_update: bool = False) -> Optional[Shop]:
        query = select(Shop).where(Shop.id == shop_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _set_product_status(self, shop_id: int, status: ProductStatus) -> None:
        source = ProductStatus.DRAFT if status == ProductStatus.PUBLISH else ProductStatus.PUBLISH
        await self.db.execute(
            update(Product)
            .where(Product.shop_id == shop_id, Product.status == source)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )

    @log_ledger_operation("approve_shop")
    async def approve_shop(
        self,
        actor: User,
        shop_id: int,
        rate: Optional[Decimal] = None,
        use_custom: bool = False,
    ) -> Balance:
        """Activate a shop, publish its products and set its commission rate.

        With use_custom the given rate is pinned on the balance and the tier
        schedule is no longer consulted for this shop. Without it the rate
        is recomputed from the shop's lifetime earnings.
        """
        ensure_super_admin(actor, "approve shop")
        custom_rate = commission.validate_custom_rate(rate) if use_custom else None

        try:
            shop = await self.get_shop(shop_id, for_update=True)
            if not shop:
                raise NotFoundException("Shop", shop_id)

            shop.is_active = True
            await self._set_product_status(shop_id, ProductStatus.PUBLISH)

            balance = await self.balance_service.get_or_create_balance(shop_id, for_update=True)
            if use_custom:
                balance.admin_commission_rate = custom_rate
                balance.is_custom_commission = True
            else:
                balance.admin_commission_rate = commission.rate_for(balance.total_earnings)
                balance.is_custom_commission = False

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(balance)
        logger.info(
            "Shop approved",
            extra_data={
                "shop_id": shop_id,
                "actor_user_id": actor.id,
                "commission_rate": str(balance.admin_commission_rate),
                "is_custom_commission": balance.is_custom_commission,
            },
        )
        return balance

    @log_ledger_operation("disapprove_shop")
    async def disapprove_shop(self, actor: User, shop_id: int) -> Shop:
        """Deactivate a shop and send its products back to draft.

        The commission rate on the balance is left as it was.
        """
        ensure_super_admin(actor, "disapprove shop")

        try:
            shop = await self.get_shop(shop_id, for_update=True)
            if not shop:
                raise NotFoundException("Shop", shop_id)

            shop.is_active = False
            await self._set_product_status(shop_id, ProductStatus.DRAFT)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(shop)
        logger.info(
            "Shop disapproved",
            extra_data={"shop_id": shop_id, "actor_user_id": actor.id},
        )
        return shop
