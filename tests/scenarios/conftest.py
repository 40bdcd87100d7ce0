"""
Fixtures and helpers for end-to-end ledger scenarios.

Provides:
- a second-session helper for interleaving transactions
- DB assertion helpers (shop balance, wallet points, ledger entry counts),
  always reading fresh rows from the database
"""
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.models.balance import Balance
from marketplace.db.models.balance_ledger import BalanceLedger, BalanceEntryType
from marketplace.db.models.order import Order
from marketplace.db.models.user import User
from marketplace.db.models.wallet import Wallet
from marketplace.db.models.wallet_ledger import WalletLedger


@pytest.fixture
async def other_session(session_maker):
    """Opens independent sessions on the same database, closed after the test"""
    sessions = []

    def _open() -> AsyncSession:
        session = session_maker()
        sessions.append(session)
        return session

    yield _open

    for session in sessions:
        await session.close()


async def reload_user(session: AsyncSession, user: User) -> User:
    """Same user, attached to another session"""
    return await session.get(User, user.id)


# ============================================================================
# DB assertion helpers
# ============================================================================

async def assert_balance(
    db_session: AsyncSession,
    shop_id: int,
    expected_current: Decimal,
    expected_withdrawn: Optional[Decimal] = None,
) -> Balance:
    """Check a shop's current balance with a fresh read"""
    result = await db_session.execute(
        select(Balance).where(Balance.shop_id == shop_id).execution_options(
            populate_existing=True
        )
    )
    balance = result.scalar_one()
    assert balance.current_balance == Decimal(str(expected_current)), (
        f"expected current_balance {expected_current}, got {balance.current_balance}"
    )
    if expected_withdrawn is not None:
        assert balance.withdrawn_amount == Decimal(str(expected_withdrawn)), (
            f"expected withdrawn_amount {expected_withdrawn}, got {balance.withdrawn_amount}"
        )
    return balance


async def assert_wallet_points(
    db_session: AsyncSession,
    customer_id: int,
    expected_points: Decimal,
) -> Wallet:
    """Check a customer's available points with a fresh read"""
    result = await db_session.execute(
        select(Wallet).where(Wallet.customer_id == customer_id).execution_options(
            populate_existing=True
        )
    )
    wallet = result.scalar_one()
    assert wallet.available_points == Decimal(str(expected_points)), (
        f"expected {expected_points} points, got {wallet.available_points}"
    )
    return wallet


async def assert_balance_entries(
    db_session: AsyncSession,
    shop_id: int,
    entry_type: BalanceEntryType,
    expected_count: int,
) -> None:
    """Check how many balance ledger entries of a type a shop has"""
    result = await db_session.execute(
        select(func.count(BalanceLedger.id)).where(
            BalanceLedger.shop_id == shop_id,
            BalanceLedger.entry_type == entry_type,
        )
    )
    count = result.scalar()
    assert count == expected_count, (
        f"expected {expected_count} {entry_type.value} entries, found {count}"
    )


async def assert_wallet_entries(
    db_session: AsyncSession,
    customer_id: int,
    expected_count: int,
) -> None:
    result = await db_session.execute(
        select(func.count(WalletLedger.id)).where(WalletLedger.customer_id == customer_id)
    )
    count = result.scalar()
    assert count == expected_count, (
        f"expected {expected_count} wallet entries, found {count}"
    )


async def assert_order_status(db_session: AsyncSession, order_id: int, expected_status) -> Order:
    result = await db_session.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    order = result.scalar_one()
    assert order.order_status == expected_status, (
        f"expected {expected_status}, got {order.order_status}"
    )
    return order
