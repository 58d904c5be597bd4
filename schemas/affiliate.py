# Pydantic Schemas for Affiliate Commerce API

from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


# ============================================================================
# ORDER SCHEMAS
# ============================================================================

class OrderFulfill(BaseModel):
    """A confirmed sale attributed to an affiliate."""
    order_id: str = Field(..., min_length=1, max_length=64)
    product_id: str
    affiliate_id: str
    brand_id: str
    gross_amount: int = Field(..., ge=0, description="Sale price in cents")
    commission_type: CommissionType
    commission_rate_or_fixed: Decimal = Field(..., ge=0, description="Percentage, or fixed amount in cents")
    platform_fee_type: CommissionType = CommissionType.PERCENTAGE
    platform_fee_rate_or_fixed: Decimal = Field(Decimal("10.00"), ge=0, description="Platform fee on the commission")

    @validator('commission_rate_or_fixed')
    def validate_commission_rate(cls, v, values):
        if values.get('commission_type') == CommissionType.PERCENTAGE and v > 100:
            raise ValueError('Commission rate cannot exceed 100%')
        return v

    @validator('platform_fee_rate_or_fixed')
    def validate_platform_fee_rate(cls, v, values):
        if values.get('platform_fee_type') == CommissionType.PERCENTAGE and v > 100:
            raise ValueError('Platform fee rate cannot exceed 100%')
        return v


class OrderResponse(BaseModel):
    """Stored commission breakdown for a fulfilled order."""
    order_id: str
    product_id: str
    affiliate_id: str
    brand_id: str
    gross_amount: int
    commission_type: CommissionType
    commission_rate_or_fixed: Decimal
    platform_fee_type: CommissionType
    platform_fee_rate_or_fixed: Decimal
    gross_commission: int
    platform_fee_amount: int
    net_commission: int
    payout_idempotency_key: str
    fulfilled_at: Optional[datetime] = None

    class Config:
        from_attributes = True
