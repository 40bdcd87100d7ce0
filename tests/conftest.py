"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- API client with the database dependency overridden
- Test data factories (users, shops, products, split orders, balances, wallets, refunds)
"""
# JWT_SECRET_KEY must exist before importing the app; the settings validator requires it when DEBUG=False
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import itertools
from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator, Dict, Optional
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.core.auth import create_access_token
from marketplace.core.config import settings
from marketplace.db.database import Base, get_db
from marketplace.db.models.balance import Balance
from marketplace.db.models.order import Order, OrderStatus, PaymentGateway
from marketplace.db.models.refund import Refund, RefundStatus
from marketplace.db.models.shop import Shop, Product, ProductStatus
from marketplace.db.models.user import User, Permission
from marketplace.db.models.wallet import Wallet
from marketplace.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_email_counter = itertools.count(1)


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine):
    """Session factory bound to the test engine, for tests needing a second session"""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def auth_headers(user: User) -> Dict[str, str]:
    """Bearer header for a user"""
    token = create_access_token(user.id, user.permission.value)
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating test users"""
    async def _create_user(
        name: str = "Test User",
        email: str | None = None,
        permission: Permission = Permission.CUSTOMER,
        shop_id: int | None = None,
        is_active: bool = True,
    ) -> User:
        user = User(
            name=name,
            email=email or f"user{next(_email_counter)}@example.com",
            permission=permission,
            shop_id=shop_id,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def shop_factory(db_session: AsyncSession):
    """Factory for creating test shops"""
    async def _create_shop(
        owner_id: int,
        name: str = "Test Shop",
        is_active: bool = True,
    ) -> Shop:
        shop = Shop(name=name, owner_id=owner_id, is_active=is_active)
        db_session.add(shop)
        await db_session.commit()
        await db_session.refresh(shop)
        return shop

    return _create_shop


@pytest.fixture
def product_factory(db_session: AsyncSession):
    """Factory for creating test products"""
    async def _create_product(
        shop_id: int,
        name: str = "Test Product",
        status: ProductStatus = ProductStatus.DRAFT,
    ) -> Product:
        product = Product(shop_id=shop_id, name=name, status=status)
        db_session.add(product)
        await db_session.commit()
        await db_session.refresh(product)
        return product

    return _create_product


@pytest.fixture
def balance_factory(db_session: AsyncSession):
    """Factory for creating shop balances"""
    async def _create_balance(
        shop_id: int,
        current_balance: Decimal = Decimal("0.00"),
        total_earnings: Decimal | None = None,
        withdrawn_amount: Decimal = Decimal("0.00"),
        admin_commission_rate: Decimal | None = None,
        is_custom_commission: bool = False,
    ) -> Balance:
        balance = Balance(
            shop_id=shop_id,
            current_balance=Decimal(str(current_balance)),
            total_earnings=Decimal(str(total_earnings if total_earnings is not None else current_balance)),
            withdrawn_amount=Decimal(str(withdrawn_amount)),
            total_refunded=Decimal("0.00"),
            admin_commission_rate=admin_commission_rate,
            is_custom_commission=is_custom_commission,
        )
        db_session.add(balance)
        await db_session.commit()
        await db_session.refresh(balance)
        return balance

    return _create_balance


@pytest.fixture
def wallet_factory(db_session: AsyncSession):
    """Factory for creating customer wallets"""
    async def _create_wallet(
        customer_id: int,
        total_points: Decimal = Decimal("0.00"),
        available_points: Decimal | None = None,
    ) -> Wallet:
        wallet = Wallet(
            customer_id=customer_id,
            total_points=Decimal(str(total_points)),
            available_points=Decimal(str(available_points if available_points is not None else total_points)),
        )
        db_session.add(wallet)
        await db_session.commit()
        await db_session.refresh(wallet)
        return wallet

    return _create_wallet


@pytest.fixture
def split_order_factory(db_session: AsyncSession):
    """Factory for a parent order with one child per shop.

    shop_amounts maps shop_id to the child amount. The parent's paid_total
    is the children's sum plus delivery fee and sales tax.
    """
    async def _create_order(
        customer_id: int,
        shop_amounts: Dict[int, Decimal],
        delivery_fee: Decimal = Decimal("0.00"),
        sales_tax: Decimal = Decimal("0.00"),
        status: OrderStatus = OrderStatus.COMPLETED,
        settled: bool = False,
    ) -> Order:
        amounts = {shop_id: Decimal(str(amount)) for shop_id, amount in shop_amounts.items()}
        children_total = sum(amounts.values(), Decimal("0.00"))
        parent = Order(
            customer_id=customer_id,
            amount=children_total,
            delivery_fee=Decimal(str(delivery_fee)),
            sales_tax=Decimal(str(sales_tax)),
            paid_total=children_total + Decimal(str(delivery_fee)) + Decimal(str(sales_tax)),
            total=children_total + Decimal(str(delivery_fee)) + Decimal(str(sales_tax)),
            order_status=status,
            payment_gateway=PaymentGateway.STRIPE,
        )
        db_session.add(parent)
        await db_session.flush()

        for shop_id, amount in amounts.items():
            db_session.add(Order(
                parent_id=parent.id,
                shop_id=shop_id,
                customer_id=customer_id,
                amount=amount,
                paid_total=amount,
                total=amount,
                order_status=status,
                payment_gateway=PaymentGateway.STRIPE,
                settled_at=datetime.utcnow() if settled else None,
            ))
        await db_session.commit()
        await db_session.refresh(parent)
        return parent

    return _create_order


@pytest.fixture
def refund_factory(db_session: AsyncSession):
    """Factory for a platform refund plus its per-shop mirrors"""
    async def _create_refund(
        order: Order,
        status: RefundStatus = RefundStatus.PENDING,
        amount: Optional[Decimal] = None,
    ) -> Refund:
        refund = Refund(
            order_id=order.id,
            customer_id=order.customer_id,
            amount=Decimal(str(amount)) if amount is not None else order.amount,
            status=status,
            title="Damaged item",
        )
        db_session.add(refund)
        await db_session.flush()

        children = await db_session.execute(select(Order).where(Order.parent_id == order.id))
        for child in children.scalars().all():
            db_session.add(Refund(
                order_id=child.id,
                customer_id=order.customer_id,
                shop_id=child.shop_id,
                parent_id=refund.id,
                amount=child.amount,
                status=status,
                title="Damaged item",
            ))
        await db_session.commit()
        await db_session.refresh(refund)
        return refund

    return _create_refund


# ============================================================================
# Sample Test Data
# ============================================================================

@pytest.fixture
async def admin(user_factory) -> User:
    """Platform admin"""
    return await user_factory(name="Admin", permission=Permission.SUPER_ADMIN)


@pytest.fixture
async def store_owner(user_factory) -> User:
    return await user_factory(name="Owner", permission=Permission.STORE_OWNER)


@pytest.fixture
async def customer(user_factory) -> User:
    return await user_factory(name="Customer", permission=Permission.CUSTOMER)


@pytest.fixture
async def shop(shop_factory, store_owner) -> Shop:
    """Active shop owned by store_owner"""
    return await shop_factory(owner_id=store_owner.id, name="Shop A")


# ============================================================================
# JWT secret and ledger settings
# ============================================================================

_TEST_JWT_SECRET = "test-jwt-secret-key-for-testing-only-do-not-use-in-production"


@pytest.fixture(autouse=True)
def set_jwt_secret():
    """Pin JWT settings for API tests"""
    with patch.object(settings, "JWT_SECRET_KEY", _TEST_JWT_SECRET), \
         patch.object(settings, "JWT_ALGORITHM", "HS256"), \
         patch.object(settings, "JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 480):
        yield


@pytest.fixture(autouse=True)
def ledger_settings():
    """Pin the ledger settings so a local .env cannot change test results"""
    with patch.object(settings, "DEFAULT_COMMISSION_RATE", Decimal("10.00")), \
         patch.object(settings, "COMMISSION_TIERS", ""), \
         patch.object(settings, "WALLET_POINTS_PER_CURRENCY_UNIT", Decimal("3")), \
         patch.object(settings, "REFUND_REQUIRE_SHOP_BALANCE", False):
        yield
