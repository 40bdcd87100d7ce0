"""
Withdraw Service - Shop Payout Requests

Funds are reserved when the request is made, so a shop can never have more
payouts in flight than its balance. Review afterwards only changes status,
except that rejecting a request returns the reserved amount.
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import (
    ErrorCode,
    ForbiddenException,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    NotFoundException,
    ValidationException,
    WithdrawWithoutShopError,
)
from marketplace.core.logging import get_logger, log_ledger_operation
from marketplace.db.models.user import User
from marketplace.db.models.withdraw import Withdraw, WithdrawStatus, TERMINAL_WITHDRAW_STATUSES
from marketplace.domain.services.access import ensure_super_admin, ensure_shop_owner_or_admin, owned_shop_ids
from marketplace.domain.services.balance_service import BalanceService

logger = get_logger(__name__)


class WithdrawService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.balance_service = BalanceService(db)

    async def _load_withdraw(self, withdraw_id: int, for_update: bool = False) -> Optional[Withdraw]:
        query = (
            select(Withdraw)
            .where(Withdraw.id == withdraw_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_withdraw(self, actor: User, withdraw_id: int) -> Withdraw:
        withdraw = await self._load_withdraw(withdraw_id)
        if not withdraw:
            raise NotFoundException("Withdraw", withdraw_id)
        if actor.is_super_admin or withdraw.shop_id in await owned_shop_ids(self.db, actor):
            return withdraw
        raise ForbiddenException("view withdraw", user_id=actor.id)

    @log_ledger_operation("request_withdrawal")
    async def request_withdrawal(
        self,
        actor: User,
        shop_id: Optional[int],
        amount: Decimal,
        payment_method: str | None = None,
        details: str | None = None,
        note: str | None = None,
    ) -> Withdraw:
        """Create a pending payout and reserve its amount from the balance"""
        if not shop_id:
            raise WithdrawWithoutShopError()

        await ensure_shop_owner_or_admin(self.db, actor, shop_id, "request withdrawal")

        amount = Decimal(str(amount)).quantize(Decimal("0.01"))
        if amount <= 0:
            raise ValidationException(
                "Withdraw amount must be positive",
                field="amount",
                error_code=ErrorCode.INVALID_AMOUNT,
            )

        try:
            balance = await self.balance_service.get_balance(shop_id, for_update=True)
            if balance is None or amount > balance.current_balance:
                raise InsufficientBalanceError(
                    shop_id=shop_id,
                    current_balance=balance.current_balance if balance else None,
                    required_amount=amount,
                )

            withdraw = Withdraw(
                shop_id=shop_id,
                amount=amount,
                payment_method=payment_method,
                details=details,
                note=note,
                status=WithdrawStatus.PENDING,
            )
            self.db.add(withdraw)
            await self.db.flush()

            # conditional update; a concurrent debit since the read fails here
            await self.balance_service.reserve_withdrawal(shop_id, withdraw.id, amount)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(withdraw)
        logger.info(
            "Withdraw requested",
            extra_data={
                "withdraw_id": withdraw.id,
                "shop_id": shop_id,
                "amount": str(amount),
                "actor_user_id": actor.id,
            },
        )
        return withdraw

    @log_ledger_operation("approve_withdraw")
    async def approve_withdraw(self, actor: User, withdraw_id: int, status: WithdrawStatus) -> Withdraw:
        """Move a payout through review.

        Never debits again; the money left the balance at request time.
        Rejection credits the reserved amount back. Approved and rejected
        are final.
        """
        ensure_super_admin(actor, "update withdraw status")

        try:
            withdraw = await self._load_withdraw(withdraw_id, for_update=True)
            if not withdraw:
                raise NotFoundException("Withdraw", withdraw_id)

            previous = withdraw.status
            if previous == status:
                # release the row lock
                await self.db.commit()
                return withdraw
            if previous in TERMINAL_WITHDRAW_STATUSES:
                raise InvalidStateTransitionError("withdraw", previous.value, status.value)

            withdraw.status = status
            if status == WithdrawStatus.REJECTED:
                await self.balance_service.release_withdrawal(
                    withdraw.shop_id, withdraw.id, withdraw.amount
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Withdraw status updated",
            extra_data={
                "withdraw_id": withdraw_id,
                "shop_id": withdraw.shop_id,
                "actor_user_id": actor.id,
                "from_status": previous.value,
                "to_status": status.value,
            },
        )
        return await self._load_withdraw(withdraw_id)
