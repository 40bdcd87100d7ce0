"""
Shop and Product Models

A shop only sells once a platform admin approves it; approval publishes its
products and disapproval sends them back to draft.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship

from marketplace.db.database import Base


class ProductStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISH = "publish"


class Shop(Base):
    """Vendor shop"""

    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # new shops wait for admin approval
    is_active = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", foreign_keys=[owner_id])


class Product(Base):
    """Catalog product; only the publish status matters to the ledger"""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    status = Column(SQLEnum(ProductStatus), default=ProductStatus.DRAFT, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
