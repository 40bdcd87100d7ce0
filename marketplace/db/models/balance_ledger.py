"""
Balance Ledger Model - Immutable Shop Money Movements

Every change to a Balance row leaves one entry here with the signed amount
and the balance it produced.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, String, Enum as SQLEnum, UniqueConstraint

from marketplace.db.database import Base


class BalanceEntryType(str, enum.Enum):
    SETTLEMENT_CREDIT = "settlement_credit"
    REFUND_REVERSAL = "refund_reversal"
    WITHDRAWAL_DEBIT = "withdrawal_debit"
    WITHDRAWAL_REVERSAL = "withdrawal_reversal"


class BalanceLedger(Base):
    """Shop balance history"""

    __tablename__ = "balance_ledger"

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    refund_id = Column(Integer, ForeignKey("refunds.id"), nullable=True)
    withdraw_id = Column(Integer, ForeignKey("withdraws.id"), nullable=True)

    entry_type = Column(SQLEnum(BalanceEntryType), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)  # positive credit, negative debit
    balance_after = Column(Numeric(10, 2), nullable=False)

    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # a child order is settled and reversed at most once, a withdraw debited and reversed at most once
    __table_args__ = (
        UniqueConstraint("shop_id", "order_id", "entry_type", name="uq_balance_ledger_shop_order_type"),
        UniqueConstraint("withdraw_id", "entry_type", name="uq_balance_ledger_withdraw_type"),
    )
