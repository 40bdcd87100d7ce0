"""
Balance Model - Shop Earnings Ledger Head

One row per shop. Only BalanceService writes here, always through
SQL-level arithmetic under a row lock.
"""
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from marketplace.db.database import Base


class Balance(Base):
    """Running balance and commission rate per shop"""

    __tablename__ = "balances"
    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="ck_balances_current_balance_non_negative"),
        CheckConstraint(
            "admin_commission_rate IS NULL OR (admin_commission_rate >= 0 AND admin_commission_rate <= 100)",
            name="ck_balances_admin_commission_rate_range",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), unique=True, nullable=False)

    total_earnings = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    current_balance = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    withdrawn_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    # monotonic; total_earnings is reduced on refund as well
    total_refunded = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    admin_commission_rate = Column(Numeric(5, 2), nullable=True)  # percent
    is_custom_commission = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    shop = relationship("Shop")
