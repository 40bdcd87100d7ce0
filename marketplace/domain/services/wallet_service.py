"""
Wallet Service - Customer Points
"""
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import settings
from marketplace.core.exceptions import ValidationException, ErrorCode, NotFoundException
from marketplace.core.logging import get_logger, log_ledger_operation
from marketplace.db.models.user import User
from marketplace.db.models.wallet import Wallet
from marketplace.db.models.wallet_ledger import WalletLedger, WalletEntryType
from marketplace.domain.services.access import ensure_super_admin

logger = get_logger(__name__)

POINT = Decimal("0.01")


def money_to_points(amount: Decimal) -> Decimal:
    """Refunded money expressed in wallet points"""
    rate = Decimal(str(settings.WALLET_POINTS_PER_CURRENCY_UNIT))
    return (Decimal(str(amount)) * rate).quantize(POINT, rounding=ROUND_HALF_UP)


def points_to_money(points: Decimal) -> Decimal:
    """Money value of points; rounds down so redeeming never creates money"""
    rate = Decimal(str(settings.WALLET_POINTS_PER_CURRENCY_UNIT))
    return (Decimal(str(points)) / rate).quantize(POINT, rounding=ROUND_DOWN)


class WalletService:
    """Service for managing customer wallets"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_wallet(self, customer_id: int, for_update: bool = False) -> Optional[Wallet]:
        query = (
            select(Wallet)
            .where(Wallet.customer_id == customer_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_wallet(self, customer_id: int, for_update: bool = False) -> Wallet:
        """Get existing wallet or create an empty one"""
        wallet = await self.get_wallet(customer_id, for_update=for_update)
        if not wallet:
            wallet = Wallet(
                customer_id=customer_id,
                total_points=Decimal("0.00"),
                available_points=Decimal("0.00"),
            )
            self.db.add(wallet)
            await self.db.flush()
            logger.info("Wallet created", extra_data={"customer_id": customer_id})
        return wallet

    async def credit_points(
        self,
        customer_id: int,
        points: Decimal,
        entry_type: WalletEntryType,
        refund_id: int | None = None,
        description: str | None = None,
    ) -> WalletLedger:
        """Add points to both totals under the wallet row lock.

        Only flushes; the caller commits.
        """
        await self.get_or_create_wallet(customer_id, for_update=True)
        await self.db.execute(
            update(Wallet)
            .where(Wallet.customer_id == customer_id)
            .values(
                total_points=Wallet.total_points + points,
                available_points=Wallet.available_points + points,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        wallet = await self.get_wallet(customer_id)

        entry = WalletLedger(
            customer_id=customer_id,
            refund_id=refund_id,
            entry_type=entry_type,
            points=points,
            available_points_after=wallet.available_points,
            description=description,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Wallet credited",
            extra_data={
                "customer_id": customer_id,
                "entry_type": entry_type.value,
                "points": str(points),
                "available_points": str(wallet.available_points),
                "refund_id": refund_id,
            },
        )
        return entry

    @log_ledger_operation("add_points")
    async def add_points(self, actor: User, customer_id: int, points: Decimal) -> Wallet:
        """Admin grant of points to a customer"""
        ensure_super_admin(actor, "add wallet points")

        points = Decimal(str(points))
        if points <= 0:
            raise ValidationException(
                "Points must be positive",
                field="points",
                error_code=ErrorCode.INVALID_AMOUNT,
            )

        customer = await self.db.get(User, customer_id)
        if not customer:
            raise NotFoundException("User", customer_id)

        try:
            await self.credit_points(
                customer_id,
                points.quantize(POINT),
                WalletEntryType.MANUAL_CREDIT,
                description=f"Granted by admin #{actor.id}",
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return await self.get_wallet(customer_id)

    async def get_ledger_history(self, customer_id: int, limit: int = 20) -> List[WalletLedger]:
        """Get points history for a customer"""
        result = await self.db.execute(
            select(WalletLedger)
            .where(WalletLedger.customer_id == customer_id)
            .order_by(WalletLedger.created_at.desc(), WalletLedger.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
