"""
Domain Services
"""
from marketplace.domain.services.balance_service import BalanceService
from marketplace.domain.services.wallet_service import WalletService
from marketplace.domain.services.shop_service import ShopService
from marketplace.domain.services.settlement_service import SettlementService
from marketplace.domain.services.order_service import OrderService
from marketplace.domain.services.refund_service import RefundService
from marketplace.domain.services.withdraw_service import WithdrawService
from marketplace.domain.services.analytics_service import AnalyticsService

__all__ = [
    "BalanceService",
    "WalletService",
    "ShopService",
    "SettlementService",
    "OrderService",
    "RefundService",
    "WithdrawService",
    "AnalyticsService",
]
