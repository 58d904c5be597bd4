# Affiliate Commerce Models for Dexter Settlement Engine
# Fulfilled affiliate orders with their frozen commission breakdown

from sqlalchemy import Column, String, Integer, DateTime, Numeric
from sqlalchemy.sql import func
from datetime import datetime
import enum

from database.models import Base, enum_column


class CommissionTypeDB(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class AffiliateOrder(Base):
    """
    Commission computed once, at fulfillment time, and stored immutably.
    The payout posting shares the order id as its idempotency key.
    """
    __tablename__ = "affiliate_orders"

    order_id = Column(String(64), primary_key=True)
    product_id = Column(String(36), nullable=False, index=True)
    affiliate_id = Column(String(36), nullable=False, index=True)  # Influencer account id
    brand_id = Column(String(36), nullable=False, index=True)  # Brand account paying the commission

    gross_amount = Column(Integer, nullable=False)  # Sale price in cents

    commission_type = enum_column(CommissionTypeDB, "commissiontypedb", nullable=False)
    commission_rate_or_fixed = Column(Numeric(12, 2), nullable=False)  # 15.00 (%) or 500 (cents)
    platform_fee_type = enum_column(CommissionTypeDB, "platformfeetypedb", nullable=False)
    platform_fee_rate_or_fixed = Column(Numeric(12, 2), nullable=False)

    gross_commission = Column(Integer, nullable=False)  # Before platform fee
    platform_fee_amount = Column(Integer, nullable=False)
    net_commission = Column(Integer, nullable=False)  # What the affiliate receives

    payout_idempotency_key = Column(String(255), unique=True, nullable=False)

    fulfilled_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
