"""
Withdraw Model - Shop Payout Requests

The amount is reserved from the shop balance when the request is created.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey, Enum as SQLEnum, CheckConstraint

from marketplace.db.database import Base


class WithdrawStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    ON_HOLD = "on_hold"


# no further transitions once a payout is settled either way
TERMINAL_WITHDRAW_STATUSES = frozenset({WithdrawStatus.APPROVED, WithdrawStatus.REJECTED})


class Withdraw(Base):
    """Payout request from a shop"""

    __tablename__ = "withdraws"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_withdraws_amount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)

    payment_method = Column(String(100), nullable=True)
    details = Column(Text, nullable=True)
    note = Column(Text, nullable=True)

    status = Column(SQLEnum(WithdrawStatus), default=WithdrawStatus.PENDING, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
