# Commission Calculator for Affiliate Commerce
# Pure functions: never touches the database or moves money

from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_FLOOR
from typing import Union

from database.affiliate_models import CommissionTypeDB
from core.errors import ValidationError

Rate = Union[int, Decimal, str]


@dataclass(frozen=True)
class CommissionBreakdown:
    gross_amount: int
    commission_type: CommissionTypeDB
    commission_rate_or_fixed: Decimal
    platform_fee_type: CommissionTypeDB
    platform_fee_rate_or_fixed: Decimal
    gross_commission: int
    platform_fee_amount: int
    net_commission: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["commission_type"] = self.commission_type.value
        data["platform_fee_type"] = self.platform_fee_type.value
        data["commission_rate_or_fixed"] = str(self.commission_rate_or_fixed)
        data["platform_fee_rate_or_fixed"] = str(self.platform_fee_rate_or_fixed)
        return data


def _as_decimal(value: Rate, field: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not result.is_finite() or result < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return result


def _apply(base: int, kind: CommissionTypeDB, rate_or_fixed: Decimal, field: str) -> int:
    """
    Percentage: floor(base * rate / 100). Fixed: the amount in cents.
    Either way the result is capped at `base`.
    """
    if kind == CommissionTypeDB.PERCENTAGE:
        if rate_or_fixed > 100:
            raise ValidationError(f"{field} percentage must be between 0 and 100")
        value = int((Decimal(base) * rate_or_fixed / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR))
    else:
        if rate_or_fixed != rate_or_fixed.to_integral_value():
            raise ValidationError(f"{field} fixed amount must be whole minor units")
        value = int(rate_or_fixed)
    return min(value, base)


def compute(
    gross_amount: int,
    commission_type: Union[CommissionTypeDB, str],
    rate_or_fixed: Rate,
    fee_type: Union[CommissionTypeDB, str],
    fee_rate_or_fixed: Rate,
) -> CommissionBreakdown:
    """
    Compute the affiliate payout for one sale.

    The platform fee is taken from the gross commission, not the sale price.
    All percentage math floors, so the net payout is never negative and the
    gross commission never exceeds the sale price.
    """
    if isinstance(gross_amount, bool) or not isinstance(gross_amount, int) or gross_amount < 0:
        raise ValidationError("gross_amount must be a non-negative integer amount in cents")
    try:
        commission_type = CommissionTypeDB(commission_type)
        fee_type = CommissionTypeDB(fee_type)
    except ValueError as e:
        raise ValidationError(str(e))

    commission_rate = _as_decimal(rate_or_fixed, "commission_rate_or_fixed")
    fee_rate = _as_decimal(fee_rate_or_fixed, "platform_fee_rate_or_fixed")

    gross_commission = _apply(gross_amount, commission_type, commission_rate, "commission")
    platform_fee_amount = _apply(gross_commission, fee_type, fee_rate, "platform_fee")
    net_commission = max(gross_commission - platform_fee_amount, 0)

    return CommissionBreakdown(
        gross_amount=gross_amount,
        commission_type=commission_type,
        commission_rate_or_fixed=commission_rate,
        platform_fee_type=fee_type,
        platform_fee_rate_or_fixed=fee_rate,
        gross_commission=gross_commission,
        platform_fee_amount=platform_fee_amount,
        net_commission=net_commission,
    )


def percentage_of(amount: int, percent: int) -> int:
    """floor(amount * percent / 100) in integer arithmetic."""
    return amount * percent // 100
