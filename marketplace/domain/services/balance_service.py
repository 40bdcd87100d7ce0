"""
Balance Service - Shop Balance Mutations

Every change to a Balance row goes through this service:
1. Lock the row (SELECT ... FOR UPDATE), creating it if needed
2. Apply the change as SQL arithmetic (col = col + :delta), never by
   writing back an in-memory value, so a stale copy cannot overwrite a
   concurrent change
3. Debits carry WHERE current_balance >= :amount; zero rows updated means
   the funds are not there
4. Re-read the row and append a BalanceLedger entry with balance_after

Methods here only flush. The calling workflow owns the transaction.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import InsufficientBalanceError, BalanceNotFoundError
from marketplace.core.logging import get_logger
from marketplace.db.models.balance import Balance
from marketplace.db.models.balance_ledger import BalanceLedger, BalanceEntryType

logger = get_logger(__name__)

ZERO = Decimal("0.00")


class BalanceService:
    """Locked, ledgered access to shop balances"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balance(self, shop_id: int, for_update: bool = False) -> Optional[Balance]:
        """Current balance row, always re-read from the database"""
        query = (
            select(Balance)
            .where(Balance.shop_id == shop_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_balance(self, shop_id: int, for_update: bool = False) -> Balance:
        """Get the shop's balance row or create an empty one.

        A concurrent insert for the same shop trips the unique key on flush
        and aborts the caller's transaction.
        """
        balance = await self.get_balance(shop_id, for_update=for_update)
        if balance:
            return balance

        balance = Balance(
            shop_id=shop_id,
            total_earnings=ZERO,
            current_balance=ZERO,
            withdrawn_amount=ZERO,
            total_refunded=ZERO,
            is_custom_commission=False,
        )
        self.db.add(balance)
        await self.db.flush()

        logger.info("Balance created", extra_data={"shop_id": shop_id})
        return balance

    async def _apply(
        self,
        shop_id: int,
        entry_type: BalanceEntryType,
        balance_delta: Decimal,
        earnings_delta: Decimal = ZERO,
        withdrawn_delta: Decimal = ZERO,
        refunded_delta: Decimal = ZERO,
        order_id: int | None = None,
        refund_id: int | None = None,
        withdraw_id: int | None = None,
        description: str | None = None,
    ) -> BalanceLedger:
        stmt = (
            update(Balance)
            .where(Balance.shop_id == shop_id)
            .values(
                current_balance=Balance.current_balance + balance_delta,
                total_earnings=Balance.total_earnings + earnings_delta,
                withdrawn_amount=Balance.withdrawn_amount + withdrawn_delta,
                total_refunded=Balance.total_refunded + refunded_delta,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if balance_delta < 0:
            stmt = stmt.where(Balance.current_balance >= -balance_delta)

        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            current = await self.get_balance(shop_id)
            if current is None:
                raise BalanceNotFoundError(shop_id)
            raise InsufficientBalanceError(
                shop_id=shop_id,
                current_balance=current.current_balance,
                required_amount=-balance_delta,
            )

        balance = await self.get_balance(shop_id)
        entry = BalanceLedger(
            shop_id=shop_id,
            order_id=order_id,
            refund_id=refund_id,
            withdraw_id=withdraw_id,
            entry_type=entry_type,
            amount=balance_delta,
            balance_after=balance.current_balance,
            description=description,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Balance updated",
            extra_data={
                "shop_id": shop_id,
                "entry_type": entry_type.value,
                "amount": str(balance_delta),
                "balance_after": str(balance.current_balance),
                "order_id": order_id,
                "refund_id": refund_id,
                "withdraw_id": withdraw_id,
            },
        )
        return entry

    async def credit_settlement(self, shop_id: int, order_id: int, shop_earnings: Decimal) -> BalanceLedger:
        """Credit a settled child order's net earnings"""
        await self.get_or_create_balance(shop_id, for_update=True)
        return await self._apply(
            shop_id,
            BalanceEntryType.SETTLEMENT_CREDIT,
            balance_delta=shop_earnings,
            earnings_delta=shop_earnings,
            order_id=order_id,
            description=f"Settlement of order #{order_id}",
        )

    async def reverse_for_refund(
        self, shop_id: int, order_id: int, refund_id: int, amount: Decimal
    ) -> BalanceLedger:
        """Take a refunded child order's amount back out of the shop balance.

        The caller must hold the row lock. Fails with InsufficientBalanceError
        rather than driving current_balance negative.
        """
        return await self._apply(
            shop_id,
            BalanceEntryType.REFUND_REVERSAL,
            balance_delta=-amount,
            earnings_delta=-amount,
            refunded_delta=amount,
            order_id=order_id,
            refund_id=refund_id,
            description=f"Refund #{refund_id} of order #{order_id}",
        )

    async def reserve_withdrawal(self, shop_id: int, withdraw_id: int, amount: Decimal) -> BalanceLedger:
        """Move a requested payout from current_balance to withdrawn_amount"""
        return await self._apply(
            shop_id,
            BalanceEntryType.WITHDRAWAL_DEBIT,
            balance_delta=-amount,
            withdrawn_delta=amount,
            withdraw_id=withdraw_id,
            description=f"Withdraw #{withdraw_id}",
        )

    async def release_withdrawal(self, shop_id: int, withdraw_id: int, amount: Decimal) -> BalanceLedger:
        """Undo a reservation when the payout is rejected"""
        await self.get_or_create_balance(shop_id, for_update=True)
        return await self._apply(
            shop_id,
            BalanceEntryType.WITHDRAWAL_REVERSAL,
            balance_delta=amount,
            withdrawn_delta=-amount,
            withdraw_id=withdraw_id,
            description=f"Rejected withdraw #{withdraw_id}",
        )

    async def get_ledger_history(self, shop_id: int, limit: int = 20) -> List[BalanceLedger]:
        """Most recent balance movements for a shop"""
        result = await self.db.execute(
            select(BalanceLedger)
            .where(BalanceLedger.shop_id == shop_id)
            .order_by(BalanceLedger.created_at.desc(), BalanceLedger.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
