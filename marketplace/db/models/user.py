"""
User Model - Customers, Shop Owners, Staff and Platform Admins
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Boolean

from marketplace.db.database import Base


class Permission(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    STORE_OWNER = "store_owner"
    STAFF = "staff"
    CUSTOMER = "customer"


class User(Base):
    """Marketplace account; the permission decides what ledger paths it may drive"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=True)
    email = Column(String(191), unique=True, index=True, nullable=False)
    permission = Column(SQLEnum(Permission), default=Permission.CUSTOMER, nullable=False)
    is_active = Column(Boolean, default=True)

    # Staff belong to exactly one shop; owners are linked through Shop.owner_id
    shop_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_super_admin(self) -> bool:
        return self.permission == Permission.SUPER_ADMIN

    @property
    def is_store_owner(self) -> bool:
        return self.permission == Permission.STORE_OWNER
