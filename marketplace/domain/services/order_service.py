"""
Order Service - Placing Split Orders and Driving Their Status

A checkout becomes one parent order plus one child order per shop. The
parent carries the delivery fee and sales tax, the children carry the shop
amounts, and the parent's paid_total is exactly the children's paid totals
plus fee and tax.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import ValidationException, NotFoundException, InvalidStateTransitionError, ErrorCode
from marketplace.core.logging import get_logger, log_ledger_operation
from marketplace.db.models.order import Order, OrderStatus, PaymentGateway
from marketplace.db.models.shop import Shop
from marketplace.db.models.user import User
from marketplace.domain.services.access import ensure_super_admin
from marketplace.domain.services.settlement_service import SettlementService

logger = get_logger(__name__)

ZERO = Decimal("0.00")

# statuses an admin can no longer move an order out of
FINAL_ORDER_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
    OrderStatus.FAILED,
})


@dataclass
class ShopLine:
    """One shop's share of a checkout"""
    shop_id: int
    amount: Decimal
    discount: Decimal = ZERO


def _money(value, field: str) -> Decimal:
    amount = Decimal(str(value)).quantize(Decimal("0.01"))
    if amount < 0:
        raise ValidationException(f"{field} cannot be negative", field=field, error_code=ErrorCode.INVALID_AMOUNT)
    return amount


class OrderService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settlement_service = SettlementService(db)

    async def get_order(self, order_id: int, for_update: bool = False) -> Optional[Order]:
        query = select(Order).where(Order.id == order_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_children(self, parent_id: int, for_update: bool = False) -> List[Order]:
        query = select(Order).where(Order.parent_id == parent_id).order_by(Order.id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    @log_ledger_operation("place_order")
    async def place_order(
        self,
        customer_id: int,
        shop_lines: Sequence[ShopLine],
        delivery_fee: Decimal = ZERO,
        sales_tax: Decimal = ZERO,
        payment_gateway: PaymentGateway = PaymentGateway.CASH_ON_DELIVERY,
    ) -> Order:
        """Create the parent order and its per-shop children in one transaction"""
        if not shop_lines:
            raise ValidationException("An order needs at least one shop line", field="shop_lines")

        shop_ids = [line.shop_id for line in shop_lines]
        if len(set(shop_ids)) != len(shop_ids):
            raise ValidationException("Each shop may appear only once per order", field="shop_lines")

        delivery_fee = _money(delivery_fee, "delivery_fee")
        sales_tax = _money(sales_tax, "sales_tax")

        lines = []
        for line in shop_lines:
            amount = _money(line.amount, "amount")
            discount = _money(line.discount, "discount")
            if amount == 0:
                raise ValidationException("Line amount must be positive", field="amount", error_code=ErrorCode.INVALID_AMOUNT)
            if discount > amount:
                raise ValidationException("Discount exceeds line amount", field="discount", error_code=ErrorCode.INVALID_AMOUNT)
            lines.append((line.shop_id, amount, discount))

        customer = await self.db.get(User, customer_id)
        if not customer:
            raise NotFoundException("User", customer_id)

        result = await self.db.execute(select(Shop).where(Shop.id.in_(shop_ids)))
        shops = {shop.id: shop for shop in result.scalars().all()}
        for shop_id in shop_ids:
            shop = shops.get(shop_id)
            if not shop:
                raise NotFoundException("Shop", shop_id)
            if not shop.is_active:
                raise ValidationException(f"Shop {shop_id} is not active", field="shop_id")

        amount_total = sum((amount for _, amount, _ in lines), ZERO)
        discount_total = sum((discount for _, _, discount in lines), ZERO)
        children_paid = amount_total - discount_total

        try:
            parent = Order(
                customer_id=customer_id,
                amount=amount_total,
                discount=discount_total,
                delivery_fee=delivery_fee,
                sales_tax=sales_tax,
                paid_total=children_paid + delivery_fee + sales_tax,
                total=children_paid + delivery_fee + sales_tax,
                payment_gateway=payment_gateway,
                order_status=OrderStatus.PENDING,
            )
            self.db.add(parent)
            await self.db.flush()

            for shop_id, amount, discount in lines:
                self.db.add(Order(
                    parent_id=parent.id,
                    shop_id=shop_id,
                    customer_id=customer_id,
                    amount=amount,
                    discount=discount,
                    paid_total=amount - discount,
                    total=amount - discount,
                    payment_gateway=payment_gateway,
                    order_status=OrderStatus.PENDING,
                ))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(parent)
        logger.info(
            "Order placed",
            extra_data={
                "order_id": parent.id,
                "customer_id": customer_id,
                "shop_ids": shop_ids,
                "paid_total": str(parent.paid_total),
            },
        )
        return parent

    @log_ledger_operation("update_order_status")
    async def update_order_status(self, actor: User, order_id: int, status: OrderStatus) -> Order:
        """Move a parent order and its children to a new status.

        Entering completed settles every child order. Refunded is only
        reached through refund approval.
        """
        ensure_super_admin(actor, "update order status")

        try:
            order = await self.get_order(order_id, for_update=True)
            if not order:
                raise NotFoundException("Order", order_id)
            if not order.is_parent:
                raise ValidationException(
                    "Child order status follows its parent order",
                    field="order_id",
                    details={"parent_id": order.parent_id},
                )

            if order.order_status == status:
                # release the row lock
                await self.db.commit()
                return order

            if order.order_status in FINAL_ORDER_STATUSES or status == OrderStatus.REFUNDED:
                raise InvalidStateTransitionError("order", order.order_status.value, status.value)

            previous = order.order_status
            order.order_status = status
            children = await self.get_children(order.id, for_update=True)
            for child in children:
                child.order_status = status
                if status == OrderStatus.COMPLETED:
                    await self.settlement_service.settle_child_order(child)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        logger.info(
            "Order status updated",
            extra_data={
                "order_id": order.id,
                "actor_user_id": actor.id,
                "from_status": previous.value,
                "to_status": status.value,
                "children": len(children),
            },
        )
        return order
