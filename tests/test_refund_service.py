"""
Tests for RefundService: requesting, viewing and approving refunds.
"""
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import select, func

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
from marketplace.db.models.balance import Balance
from marketplace.db.models.balance_ledger import BalanceLedger, BalanceEntryType
from marketplace.db.models.order import Order, OrderStatus
from marketplace.db.models.refund import RefundStatus
from marketplace.db.models.user import Permission
from marketplace.domain.services.balance_service import BalanceService
from marketplace.domain.services.order_service import OrderService
from marketplace.domain.services.refund_service import RefundService
from marketplace.domain.services.wallet_service import WalletService


class TestCreateRefund:

    @pytest.mark.unit
    async def test_creates_platform_refund_and_mirrors(
        self, customer, shop, store_owner, shop_factory, split_order_factory, db_session
    ):
        shop_b = await shop_factory(owner_id=store_owner.id, name="Shop B")
        order = await split_order_factory(
            customer.id, {shop.id: Decimal("60.00"), shop_b.id: Decimal("40.00")}, delivery_fee=Decimal("9.00")
        )
        service = RefundService(db_session)

        refund = await service.create_refund(customer, order.id, title="Broken", description="Arrived cracked")

        assert refund.shop_id is None
        assert refund.is_platform_refund
        assert refund.amount == Decimal("100.00")
        assert refund.status == RefundStatus.PENDING

        mirrors = await service.get_mirrors(refund.id)
        assert {m.shop_id: m.amount for m in mirrors} == {shop.id: Decimal("60.00"), shop_b.id: Decimal("40.00")}
        assert all(m.parent_id == refund.id for m in mirrors)
        assert all(m.title == "Broken" for m in mirrors)

    @pytest.mark.unit
    async def test_only_the_ordering_customer(self, customer, user_factory, shop, split_order_factory, db_session):
        other = await user_factory(name="Other", permission=Permission.CUSTOMER)
        order = await split_order_factory(customer.id, {shop.id: Decimal("10.00")})

        with pytest.raises(ForbiddenException):
            await RefundService(db_session).create_refund(other, order.id)

    @pytest.mark.unit
    async def test_order_must_be_completed(self, customer, shop, split_order_factory, db_session):
        order = await split_order_factory(customer.id, {shop.id: Decimal("10.00")}, status=OrderStatus.PROCESSING)

        with pytest.raises(ValidationException) as exc_info:
            await RefundService(db_session).create_refund(customer, order.id)
        assert exc_info.value.error_code == ErrorCode.REFUND_NOT_ALLOWED

    @pytest.mark.unit
    async def test_child_order_is_refused(self, customer, shop, split_order_factory, db_session):
        order = await split_order_factory(customer.id, {shop.id: Decimal("10.00")})
        child = (await db_session.execute(select(Order).where(Order.parent_id == order.id))).scalar_one()

        with pytest.raises(ValidationException) as exc_info:
            await RefundService(db_session).create_refund(customer, child.id)
        assert exc_info.value.error_code == ErrorCode.REFUND_NOT_ALLOWED

    @pytest.mark.unit
    async def test_one_open_refund_per_order(self, customer, shop, split_order_factory, refund_factory, db_session):
        order = await split_order_factory(customer.id, {shop.id: Decimal("10.00")})
        await refund_factory(order)

        with pytest.raises(AppException) as exc_info:
            await RefundService(db_session).create_refund(customer, order.id)
        assert exc_info.value.error_code == ErrorCode.ALREADY_EXISTS
        assert exc_info.value.status_code == 409

    @pytest.mark.unit
    async def test_new_request_after_rejection(
        self, customer, shop, split_order_factory, refund_factory, db_session
    ):
        order = await split_order_factory(customer.id, {shop.id: Decimal("10.00")})
        await refund_factory(order, status=RefundStatus.REJECTED)

        refund = await RefundService(db_session).create_refund(customer, order.id)
        assert refund.status == RefundStatus.PENDING

    @pytest.mark.unit
    async def test_unknown_order(self, customer, db_session):
        with pytest.raises(NotFoundException):
            await RefundService(db_session).create_refund(customer, 777)


class TestGetRefund:

    @pytest.mark.unit
    async def test_visibility(
        self, admin, customer, store_owner, user_factory, shop, split_order_factory, refund_factory, db_session
    ):
        order = await split_order_factory(customer.id, {shop.id: Decimal("10.00")})
        refund = await refund_factory(order)
        service = RefundService(db_session)
        mirror = (await service.get_mirrors(refund.id))[0]
        stranger = await user_factory(name="Stranger", permission=Permission.STORE_OWNER)
        staff = await user_factory(name="Staff", permission=Permission.STAFF, shop_id=shop.id)

        assert (await service.get_refund(admin, refund.id)).id == refund.id
        assert (await service.get_refund(customer, refund.id)).id == refund.id
        assert (await service.get_refund(store_owner, mirror.id)).id == mirror.id
        assert (await service.get_refund(staff, mirror.id)).id == mirror.id

        with pytest.raises(ForbiddenException):
            await service.get_refund(store_owner, refund.id)
        with pytest.raises(ForbiddenException):
            await service.get_refund(stranger, mirror.id)


class TestApproveOrRejectRefund:

    @pytest.mark.unit
    async def test_reject_moves_no_money(
        self, admin, customer, shop, balance_factory, split_order_factory, refund_factory, db_session
    ):
        await balance_factory(shop_id=shop.id, current_balance=Decimal("1000.00"))
        order = await split_order_factory(customer.id, {shop.id: Decimal("150.00")})
        refund = await refund_factory(order)
        service = RefundService(db_session)

        result = await service.approve_or_reject_refund(admin, refund.id, RefundStatus.REJECTED)

        assert result.status == RefundStatus.REJECTED
        assert [m.status for m in await service.get_mirrors(refund.id)] == [RefundStatus.REJECTED]
        balance = (await db_session.execute(
            select(Balance).where(Balance.shop_id == shop.id).execution_options(populate_existing=True)
        )).scalar_one()
        assert balance.current_balance == Decimal("1000.00")
        assert await WalletService(db_session).get_wallet(customer.id) is None

    @pytest.mark.unit
    async def test_rejected_refund_can_still_be_approved(
        self, admin, customer, shop, balance_factory, split_order_factory, refund_factory, db_session
    ):
        await balance_factory(shop_id=shop.id, current_balance=Decimal("1000.00"))
        order = await split_order_factory(customer.id, {shop.id: Decimal("150.00")})
        refund = await refund_factory(order, status=RefundStatus.REJECTED)

        result = await RefundService(db_session).approve_or_reject_refund(admin, refund.id, RefundStatus.APPROVED)

        assert result.status == RefundStatus.APPROVED

    @pytest.mark.unit
    async def test_already_approved(self, admin, customer, shop, split_order_factory, refund_factory, db_session):
        order = await split_order_factory(customer.id, {shop.id: Decimal("150.00")})
        refund = await refund_factory(order, status=RefundStatus.APPROVED)

        with pytest.raises(AlreadyRefundedError) as exc_info:
            await RefundService(db_session).approve_or_reject_refund(admin, refund.id, RefundStatus.APPROVED)
        assert exc_info.value.error_code == ErrorCode.ALREADY_REFUNDED

    @pytest.mark.unit
    async def test_mirror_cannot_be_approved_directly(
        self, admin, customer, shop, split_order_factory, refund_factory, db_session
    ):
        order = await split_order_factory(customer.id, {shop.id: Decimal("150.00")})
        refund = await refund_factory(order)
        mirror = (await RefundService(db_session).get_mirrors(refund.id))[0]

        with pytest.raises(ValidationException) as exc_info:
            await RefundService(db_session).approve_or_reject_refund(admin, mirror.id, RefundStatus.APPROVED)
        assert exc_info.value.error_code == ErrorCode.REFUND_NOT_ALLOWED

    @pytest.mark.unit
    async def test_requires_admin(self, customer, shop, split_order_factory, refund_factory, db_session):
        order = await split_order_factory(customer.id, {shop.id: Decimal("150.00")})
        refund = await refund_factory(order)

        with pytest.raises(ForbiddenException):
            await RefundService(db_session).approve_or_reject_refund(customer, refund.id, RefundStatus.APPROVED)

    @pytest.mark.unit
    async def test_unknown_refund(self, admin, db_session):
        with pytest.raises(NotFoundException):
            await RefundService(db_session).approve_or_reject_refund(admin, 31337, RefundStatus.APPROVED)

    @pytest.mark.unit
    async def test_missing_balance_is_skipped_by_default(
        self, admin, customer, shop, split_order_factory, refund_factory, db_session
    ):
        order = await split_order_factory(customer.id, {shop.id: Decimal("150.00")})
        refund = await refund_factory(order)

        result = await RefundService(db_session).approve_or_reject_refund(admin, refund.id, RefundStatus.APPROVED)

        assert result.status == RefundStatus.APPROVED
        wallet = await WalletService(db_session).get_wallet(customer.id)
        assert wallet.available_points == Decimal("450.00")

    @pytest.mark.unit
    async def test_missing_balance_fails_in_strict_mode(
        self, admin, customer, shop, split_order_factory, refund_factory, db_session
    ):
        order = await split_order_factory(customer.id, {shop.id: Decimal("150.00")})
        refund = await refund_factory(order)
        refund_id, customer_id = refund.id, customer.id
        service = RefundService(db_session)

        with patch.object(settings, "REFUND_REQUIRE_SHOP_BALANCE", True):
            with pytest.raises(BalanceNotFoundError):
                await service.approve_or_reject_refund(admin, refund_id, RefundStatus.APPROVED)

        assert (await service._load_refund(refund_id)).status == RefundStatus.PENDING
        assert await WalletService(db_session).get_wallet(customer_id) is None


class TestOneApprovalPerOrder:
    """A rejected refund revived after another refund of the same order was approved"""

    @pytest.mark.unit
    async def test_second_refund_of_order_cannot_be_approved(
        self, admin, customer, shop, balance_factory, split_order_factory, refund_factory, db_session
    ):
        await balance_factory(shop_id=shop.id, current_balance=Decimal("1000.00"))
        order = await split_order_factory(customer.id, {shop.id: Decimal("150.00")})
        rejected = await refund_factory(order, status=RefundStatus.REJECTED)
        service = RefundService(db_session)
        replacement = await service.create_refund(customer, order.id)
        await service.approve_or_reject_refund(admin, replacement.id, RefundStatus.APPROVED)
        # the rollback expires every loaded instance
        shop_id, customer_id, order_id, rejected_id = shop.id, customer.id, order.id, rejected.id

        with pytest.raises(AlreadyRefundedError) as exc_info:
            await service.approve_or_reject_refund(admin, rejected_id, RefundStatus.APPROVED)

        assert exc_info.value.error_code == ErrorCode.ALREADY_REFUNDED
        assert exc_info.value.status_code == 409
        assert exc_info.value.details["order_id"] == order_id
        assert (await service._load_refund(rejected_id)).status == RefundStatus.REJECTED

        balance = await BalanceService(db_session).get_balance(shop_id)
        assert balance.current_balance == Decimal("850.00")
        assert balance.total_refunded == Decimal("150.00")
        reversals = await db_session.scalar(
            select(func.count(BalanceLedger.id)).where(
                BalanceLedger.shop_id == shop_id,
                BalanceLedger.entry_type == BalanceEntryType.REFUND_REVERSAL,
            )
        )
        assert reversals == 1
        wallet = await WalletService(db_session).get_wallet(customer_id)
        assert wallet.available_points == Decimal("450.00")

    @pytest.mark.unit
    async def test_missing_balance_does_not_credit_the_wallet_twice(
        self, admin, customer, shop, split_order_factory, refund_factory, db_session
    ):
        order = await split_order_factory(customer.id, {shop.id: Decimal("100.00")})
        rejected = await refund_factory(order, status=RefundStatus.REJECTED)
        service = RefundService(db_session)
        replacement = await service.create_refund(customer, order.id)
        await service.approve_or_reject_refund(admin, replacement.id, RefundStatus.APPROVED)
        customer_id, rejected_id = customer.id, rejected.id

        with pytest.raises(AlreadyRefundedError):
            await service.approve_or_reject_refund(admin, rejected_id, RefundStatus.APPROVED)

        wallet = await WalletService(db_session).get_wallet(customer_id)
        assert wallet.total_points == Decimal("300.00")
        assert wallet.available_points == Decimal("300.00")

    @pytest.mark.unit
    async def test_rejecting_the_other_refund_moves_no_money(
        self, admin, customer, shop, split_order_factory, refund_factory, db_session
    ):
        order = await split_order_factory(customer.id, {shop.id: Decimal("100.00")})
        other = await refund_factory(order, status=RefundStatus.PROCESSING)
        approved = await refund_factory(order, status=RefundStatus.APPROVED)

        result = await RefundService(db_session).approve_or_reject_refund(admin, other.id, RefundStatus.REJECTED)

        assert result.status == RefundStatus.REJECTED
        assert (await RefundService(db_session)._load_refund(approved.id)).status == RefundStatus.APPROVED
        assert await WalletService(db_session).get_wallet(customer.id) is None


class TestRefundExceedingBalance:

    @pytest.mark.unit
    async def test_refund_of_only_settled_order_is_refused_as_refund_error(
        self, admin, customer, shop, split_order_factory, db_session
    ):
        order = await split_order_factory(customer.id, {shop.id: Decimal("100.00")}, status=OrderStatus.PROCESSING)
        await OrderService(db_session).update_order_status(admin, order.id, OrderStatus.COMPLETED)
        service = RefundService(db_session)
        refund = await service.create_refund(customer, order.id)
        shop_id, refund_id = shop.id, refund.id
        child_id = (await db_session.execute(select(Order.id).where(Order.parent_id == order.id))).scalar_one()

        with pytest.raises(RefundExceedsBalanceError) as exc_info:
            await service.approve_or_reject_refund(admin, refund_id, RefundStatus.APPROVED)

        error = exc_info.value
        assert isinstance(error, InsufficientBalanceError)
        assert error.error_code == ErrorCode.REFUND_EXCEEDS_BALANCE
        assert error.status_code == 400
        assert error.details["shop_id"] == shop_id
        assert error.details["refund_id"] == refund_id
        assert error.details["order_id"] == child_id
        assert error.details["current_balance"] == "90.00"
        assert error.details["required_amount"] == "100.00"
        assert f"Refund {refund_id}" in error.message

        balance = await BalanceService(db_session).get_balance(shop_id)
        assert balance.current_balance == Decimal("90.00")
        assert (await service._load_refund(refund_id)).status == RefundStatus.PENDING
