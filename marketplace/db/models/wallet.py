"""
Wallet Model - Customer Points
"""
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, CheckConstraint

from marketplace.db.database import Base


class Wallet(Base):
    """Loyalty and refund points per customer"""

    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("available_points <= total_points", name="ck_wallets_available_within_total"),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    total_points = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    available_points = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
