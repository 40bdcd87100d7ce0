"""
Refund Service - Refund Requests and Their Ledger Reversal

Approving a platform refund, in one transaction:
1. Lock the refund row and the parent order; reject a second approval of
   the refund or of the order (ALREADY_REFUNDED)
2. Write the new status, on the refund and on its shop mirrors
3. For every child order, lock that shop's balance and take the child
   amount back out (total_earnings and current_balance down, total_refunded up)
4. Lock or create the customer's wallet and credit the amount as points

Any failure rolls back everything, the status write included.
"""
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import settings
from marketplace.core.exceptions import (
    AppException,
    AlreadyRefundedError,
    BalanceNotFoundError,
    ErrorCode,
    ForbiddenException,
    InsufficientBalanceError,
    NotFoundException,
    RefundExceedsBalanceError,
    ValidationException,
)
from marketplace.core.logging import get_logger, log_ledger_operation
from marketplace.db.models.order import Order, OrderStatus
from marketplace.db.models.refund import Refund, RefundStatus
from marketplace.db.models.user import User, Permission
from marketplace.db.models.wallet_ledger import WalletEntryType
from marketplace.domain.services.access import ensure_super_admin, owned_shop_ids
from marketplace.domain.services.balance_service import BalanceService
from marketplace.domain.services.wallet_service import WalletService, money_to_points

logger = get_logger(__name__)

OPEN_REFUND_STATUSES = (RefundStatus.PENDING, RefundStatus.PROCESSING, RefundStatus.APPROVED)


class RefundService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.balance_service = BalanceService(db)
        self.wallet_service = WalletService(db)

    async def _load_refund(self, refund_id: int, for_update: bool = False) -> Optional[Refund]:
        query = (
            select(Refund)
            .where(Refund.id == refund_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_mirrors(self, refund_id: int) -> List[Refund]:
        """Shop-scoped refunds created alongside a platform refund"""
        result = await self.db.execute(
            select(Refund).where(Refund.parent_id == refund_id).order_by(Refund.id)
        )
        return list(result.scalars().all())

    async def get_refund(self, actor: User, refund_id: int) -> Refund:
        """Read a refund the actor is allowed to see"""
        refund = await self._load_refund(refund_id)
        if not refund:
            raise NotFoundException("Refund", refund_id)

        if actor.is_super_admin or refund.customer_id == actor.id:
            return refund
        if refund.shop_id is not None and refund.shop_id in await owned_shop_ids(self.db, actor):
            return refund
        raise ForbiddenException("view refund", user_id=actor.id)

    @log_ledger_operation("create_refund")
    async def create_refund(
        self,
        actor: User,
        order_id: int,
        title: str | None = None,
        description: str | None = None,
    ) -> Refund:
        """Open a refund for a completed parent order.

        Creates the platform refund for the parent amount and one mirror
        refund per child order so each shop sees its own share.
        """
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundException("Order", order_id)
        if actor.permission != Permission.CUSTOMER or order.customer_id != actor.id:
            raise ForbiddenException("request refund", user_id=actor.id)
        if not order.is_parent:
            raise ValidationException(
                "Refunds are requested on the parent order",
                field="order_id",
                error_code=ErrorCode.REFUND_NOT_ALLOWED,
                details={"parent_id": order.parent_id},
            )
        if order.order_status != OrderStatus.COMPLETED:
            raise ValidationException(
                "Only completed orders can be refunded",
                field="order_id",
                error_code=ErrorCode.REFUND_NOT_ALLOWED,
                details={"order_status": order.order_status.value},
            )

        result = await self.db.execute(
            select(Refund.id).where(
                Refund.order_id == order_id,
                Refund.shop_id.is_(None),
                Refund.status.in_(OPEN_REFUND_STATUSES),
            )
        )
        existing_id = result.scalars().first()
        if existing_id is not None:
            raise AppException(
                message=f"A refund already exists for order {order_id}",
                error_code=ErrorCode.ALREADY_EXISTS,
                status_code=409,
                details={"order_id": order_id, "refund_id": existing_id},
            )

        try:
            refund = Refund(
                order_id=order.id,
                customer_id=actor.id,
                amount=order.amount,
                status=RefundStatus.PENDING,
                title=title,
                description=description,
            )
            self.db.add(refund)
            await self.db.flush()

            result = await self.db.execute(
                select(Order).where(Order.parent_id == order.id).order_by(Order.id)
            )
            for child in result.scalars().all():
                self.db.add(Refund(
                    order_id=child.id,
                    customer_id=actor.id,
                    shop_id=child.shop_id,
                    parent_id=refund.id,
                    amount=child.amount,
                    status=RefundStatus.PENDING,
                    title=title,
                    description=description,
                ))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(refund)
        logger.info(
            "Refund requested",
            extra_data={
                "refund_id": refund.id,
                "order_id": order_id,
                "customer_id": actor.id,
                "amount": str(refund.amount),
            },
        )
        return refund

    @log_ledger_operation("approve_or_reject_refund")
    async def approve_or_reject_refund(self, actor: User, refund_id: int, status: RefundStatus) -> Refund:
        """Change a platform refund's status; approval reverses the ledger"""
        ensure_super_admin(actor, "update refund")

        try:
            refund = await self._load_refund(refund_id, for_update=True)
            if not refund:
                raise NotFoundException("Refund", refund_id)
            if refund.status == RefundStatus.APPROVED:
                raise AlreadyRefundedError(refund_id)
            if refund.shop_id is not None:
                raise ValidationException(
                    "Shop refunds follow their platform refund",
                    field="refund_id",
                    error_code=ErrorCode.REFUND_NOT_ALLOWED,
                    details={"parent_id": refund.parent_id},
                )

            parent = None
            if status == RefundStatus.APPROVED:
                parent = await self._lock_unrefunded_order(refund)

            previous = refund.status
            refund.status = status
            await self.db.execute(
                update(Refund)
                .where(Refund.parent_id == refund.id)
                .values(status=status)
                .execution_options(synchronize_session=False)
            )

            if parent is not None:
                await self._reverse_order(refund, parent)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Refund status updated",
            extra_data={
                "refund_id": refund_id,
                "actor_user_id": actor.id,
                "from_status": previous.value,
                "to_status": status.value,
            },
        )
        return await self._load_refund(refund_id)

    async def _lock_unrefunded_order(self, refund: Refund) -> Order:
        """Lock the refunded parent order; one approved refund per order"""
        parent = await self.db.get(
            Order, refund.order_id, with_for_update=True, populate_existing=True
        )
        if not parent:
            raise NotFoundException("Order", refund.order_id)

        result = await self.db.execute(
            select(Refund.id).where(
                Refund.order_id == parent.id,
                Refund.shop_id.is_(None),
                Refund.status == RefundStatus.APPROVED,
                Refund.id != refund.id,
            )
        )
        approved_id = result.scalars().first()
        if parent.order_status == OrderStatus.REFUNDED or approved_id is not None:
            logger.warning(
                "Order already refunded",
                extra_data={
                    "refund_id": refund.id,
                    "order_id": parent.id,
                    "approved_refund_id": approved_id,
                },
            )
            raise AlreadyRefundedError(refund.id, order_id=parent.id)
        return parent

    async def _reverse_order(self, refund: Refund, parent: Order) -> None:
        result = await self.db.execute(
            select(Order).where(Order.parent_id == parent.id).with_for_update()
        )
        # lock balances in shop order so concurrent approvals cannot deadlock
        children = sorted(result.scalars().all(), key=lambda c: (c.shop_id, c.id))

        for child in children:
            child.order_status = OrderStatus.REFUNDED
            balance = await self.balance_service.get_balance(child.shop_id, for_update=True)
            if balance is None:
                if settings.REFUND_REQUIRE_SHOP_BALANCE:
                    raise BalanceNotFoundError(child.shop_id)
                logger.warning(
                    "No balance for refunded shop, skipping reversal",
                    extra_data={
                        "refund_id": refund.id,
                        "order_id": child.id,
                        "shop_id": child.shop_id,
                        "amount": str(child.amount),
                    },
                )
                continue
            try:
                await self.balance_service.reverse_for_refund(
                    child.shop_id, child.id, refund.id, child.amount
                )
            except InsufficientBalanceError as e:
                raise RefundExceedsBalanceError(e, refund_id=refund.id, order_id=child.id) from e

        parent.order_status = OrderStatus.REFUNDED

        points = money_to_points(refund.amount)
        await self.wallet_service.credit_points(
            refund.customer_id,
            points,
            WalletEntryType.REFUND_CREDIT,
            refund_id=refund.id,
            description=f"Refund #{refund.id} of order #{parent.id}",
        )
