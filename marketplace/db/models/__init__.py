"""
Database Models
"""
from marketplace.db.models.user import User, Permission
from marketplace.db.models.shop import Shop, Product, ProductStatus
from marketplace.db.models.order import Order, OrderStatus, PaymentGateway
from marketplace.db.models.balance import Balance
from marketplace.db.models.balance_ledger import BalanceLedger, BalanceEntryType
from marketplace.db.models.wallet import Wallet
from marketplace.db.models.wallet_ledger import WalletLedger, WalletEntryType
from marketplace.db.models.refund import Refund, RefundStatus
from marketplace.db.models.withdraw import Withdraw, WithdrawStatus
from marketplace.db.models.platform_commission import PlatformCommission, CommissionType

__all__ = [
    "User",
    "Permission",
    "Shop",
    "Product",
    "ProductStatus",
    "Order",
    "OrderStatus",
    "PaymentGateway",
    "Balance",
    "BalanceLedger",
    "BalanceEntryType",
    "Wallet",
    "WalletLedger",
    "WalletEntryType",
    "Refund",
    "RefundStatus",
    "Withdraw",
    "WithdrawStatus",
    "PlatformCommission",
    "CommissionType",
]
