"""
Order Model - Parent and Child Orders

A checkout spanning several shops produces one parent order (payment,
delivery fee, sales tax) and one child order per contributing shop.
Children are the only orders attributed to a shop.
"""
import enum
import secrets
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Numeric, ForeignKey

from marketplace.db.database import Base


def generate_tracking_number() -> str:
    """Public order reference shown to customers"""
    return f"TN{secrets.token_hex(6).upper()}"


class OrderStatus(str, enum.Enum):
    PENDING = "order-pending"
    PROCESSING = "order-processing"
    COMPLETED = "order-completed"
    CANCELLED = "order-cancelled"
    REFUNDED = "order-refunded"
    FAILED = "order-failed"
    AT_LOCAL_FACILITY = "order-at-local-facility"
    OUT_FOR_DELIVERY = "order-out-for-delivery"


class PaymentGateway(str, enum.Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    RAZORPAY = "razorpay"
    MOLLIE = "mollie"
    CASH_ON_DELIVERY = "cash_on_delivery"
    FULL_WALLET_PAYMENT = "full_wallet_payment"


class Order(Base):
    """Customer order; parent_id is null for the customer-facing parent"""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    tracking_number = Column(String(20), unique=True, nullable=False, default=generate_tracking_number, index=True)

    parent_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    sales_tax = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    paid_total = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    order_status = Column(SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    payment_gateway = Column(SQLEnum(PaymentGateway), default=PaymentGateway.CASH_ON_DELIVERY, nullable=False)

    # set once the child's earnings have been credited to its shop
    settled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_parent(self) -> bool:
        return self.parent_id is None
