"""
Wallet Ledger Model - Immutable Points History
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, String, Enum as SQLEnum, UniqueConstraint

from marketplace.db.database import Base


class WalletEntryType(str, enum.Enum):
    REFUND_CREDIT = "refund_credit"
    MANUAL_CREDIT = "manual_credit"


class WalletLedger(Base):
    """Points history preventing a refund from being credited twice"""

    __tablename__ = "wallet_ledger"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    refund_id = Column(Integer, ForeignKey("refunds.id"), nullable=True)

    entry_type = Column(SQLEnum(WalletEntryType), nullable=False)
    points = Column(Numeric(12, 2), nullable=False)
    available_points_after = Column(Numeric(12, 2), nullable=False)

    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("customer_id", "refund_id", "entry_type", name="uq_wallet_ledger_customer_refund_type"),
    )
