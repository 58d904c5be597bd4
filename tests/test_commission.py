from decimal import Decimal

import pytest

from core.commission import compute, percentage_of
from core.errors import ValidationError
from database.affiliate_models import CommissionTypeDB

PCT = CommissionTypeDB.PERCENTAGE
FIXED = CommissionTypeDB.FIXED


def test_percentage_commission_with_percentage_fee():
    result = compute(5_000, PCT, 15, PCT, 10)

    assert result.gross_commission == 750
    assert result.platform_fee_amount == 75
    assert result.net_commission == 675


def test_percentages_floor():
    result = compute(999, PCT, "12.5", PCT, 10)

    # 999 * 12.5% = 124.875 -> 124; 10% of 124 = 12.4 -> 12
    assert (result.gross_commission, result.platform_fee_amount, result.net_commission) == (124, 12, 112)


def test_fixed_commission_is_capped_at_sale_price():
    result = compute(300, FIXED, 500, PCT, 10)

    assert result.gross_commission == 300
    assert result.platform_fee_amount == 30


def test_fixed_fee_is_capped_at_commission():
    result = compute(5_000, PCT, 10, FIXED, 2_000)

    assert result.gross_commission == 500
    assert result.platform_fee_amount == 500
    assert result.net_commission == 0


def test_string_types_are_accepted():
    result = compute(10_000, "fixed", "250", "percentage", "0")

    assert result.commission_type == FIXED
    assert result.platform_fee_type == PCT
    assert (result.gross_commission, result.platform_fee_amount, result.net_commission) == (250, 0, 250)


def test_zero_sale_pays_nothing():
    result = compute(0, PCT, 50, PCT, 10)
    assert (result.gross_commission, result.platform_fee_amount, result.net_commission) == (0, 0, 0)


@pytest.mark.parametrize("args", [
    (-1, PCT, 10, PCT, 10),
    (1.5, PCT, 10, PCT, 10),
    (1_000, PCT, 101, PCT, 10),
    (1_000, PCT, 10, PCT, 150),
    (1_000, PCT, -5, PCT, 10),
    (1_000, "tiered", 10, PCT, 10),
    (1_000, FIXED, "12.5", PCT, 10),
    (1_000, PCT, "ten", PCT, 10),
    (1_000, PCT, "NaN", PCT, 10),
])
def test_invalid_inputs(args):
    with pytest.raises(ValidationError):
        compute(*args)


def test_breakdown_serializes_rates_as_strings():
    data = compute(5_000, PCT, Decimal("15"), PCT, 10).to_dict()

    assert data["commission_type"] == "percentage"
    assert data["commission_rate_or_fixed"] == "15"
    assert data["net_commission"] == 675


def test_net_never_exceeds_gross_or_goes_negative():
    for gross in (0, 1, 7, 99, 1_000, 123_457):
        for rate in (0, 1, 33, 100):
            for fee in (0, 1, 50, 100):
                result = compute(gross, PCT, rate, PCT, fee)
                assert 0 <= result.net_commission <= result.gross_commission <= gross
                assert result.net_commission + result.platform_fee_amount == result.gross_commission


def test_percentage_of_floors():
    assert percentage_of(10_000, 10) == 1_000
    assert percentage_of(999, 10) == 99
    assert percentage_of(1, 99) == 0
