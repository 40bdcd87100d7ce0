"""
Platform Commission Model - Commission Taken per Settled Child Order
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, Enum as SQLEnum

from marketplace.db.database import Base


class CommissionType(str, enum.Enum):
    TIER = "tier"
    CUSTOM = "custom"


class PlatformCommission(Base):
    """Snapshot of the split applied when a child order settled"""

    __tablename__ = "platform_commissions"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False, index=True)

    order_total = Column(Numeric(10, 2), nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    commission_amount = Column(Numeric(10, 2), nullable=False)
    shop_earnings = Column(Numeric(10, 2), nullable=False)
    commission_type = Column(SQLEnum(CommissionType), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
