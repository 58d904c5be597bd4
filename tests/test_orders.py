from decimal import Decimal

import pytest

from core.errors import InsufficientFunds, NotFound, UnknownAccount, ValidationError
from database.affiliate_models import AffiliateOrder, CommissionTypeDB
from database.models import TransactionTypeDB
from services.order_service import OrderService

from tests.conftest import BRAND, INFLUENCER


@pytest.fixture
def orders(db, ledger):
    return OrderService(db, ledger)


def fulfill(orders, order_id="order-1", gross=5_000, rate=15, fee=10, **overrides):
    kwargs = dict(
        order_id=order_id,
        product_id="product-1",
        affiliate_id=INFLUENCER,
        brand_id=BRAND,
        gross_amount=gross,
        commission_type=CommissionTypeDB.PERCENTAGE,
        commission_rate_or_fixed=rate,
        platform_fee_type=CommissionTypeDB.PERCENTAGE,
        platform_fee_rate_or_fixed=fee,
    )
    kwargs.update(overrides)
    return orders.fulfill_order(**kwargs)


def test_fulfill_pays_commission_legs(orders, ledger, fund):
    fund(BRAND, 10_000)

    order = fulfill(orders)

    assert (order.gross_commission, order.platform_fee_amount, order.net_commission) == (750, 75, 675)
    assert order.commission_rate_or_fixed == Decimal("15")
    assert ledger.get_account(BRAND).available_balance == 9_250
    assert ledger.get_account(INFLUENCER).available_balance == 675
    assert ledger.platform_account().available_balance == 75

    rows = ledger.find_posting(order.payout_idempotency_key)
    assert [r.type for r in rows] == [
        TransactionTypeDB.AFFILIATE_COMMISSION,
        TransactionTypeDB.AFFILIATE_COMMISSION,
        TransactionTypeDB.PLATFORM_FEE,
    ]
    assert {r.related_entity_id for r in rows} == {"order-1"}


def test_refulfilling_returns_stored_record(orders, ledger, fund):
    fund(BRAND, 10_000)
    first = fulfill(orders)

    second = fulfill(orders, rate=50)

    assert second is first
    assert second.gross_commission == 750
    assert ledger.get_account(INFLUENCER).available_balance == 675


def test_zero_commission_posts_nothing(orders, ledger, fund, db):
    fund(BRAND, 10_000)

    order = fulfill(orders, rate=0)

    assert order.net_commission == 0
    assert ledger.find_posting(order.payout_idempotency_key) == []
    assert ledger.get_account(BRAND).available_balance == 10_000
    assert db.get(AffiliateOrder, "order-1") is not None


def test_fee_swallowing_commission_pays_platform_only(orders, ledger, fund):
    fund(BRAND, 10_000)

    order = fulfill(orders, platform_fee_type=CommissionTypeDB.FIXED, fee=5_000)

    assert (order.gross_commission, order.platform_fee_amount, order.net_commission) == (750, 750, 0)
    assert ledger.platform_account().available_balance == 750
    assert len(ledger.find_posting(order.payout_idempotency_key)) == 2


def test_brand_must_cover_commission(orders, ledger, fund, db):
    fund(BRAND, 100)

    with pytest.raises(InsufficientFunds):
        fulfill(orders)
    assert db.get(AffiliateOrder, "order-1") is None


def test_brand_account_must_exist(orders):
    with pytest.raises(UnknownAccount):
        fulfill(orders)


def test_affiliate_cannot_be_the_brand(orders, fund):
    fund(BRAND, 10_000)
    with pytest.raises(ValidationError):
        fulfill(orders, affiliate_id=BRAND)


def test_get_order(orders, fund):
    fund(BRAND, 10_000)
    fulfill(orders)

    assert orders.get_order("order-1").net_commission == 675
    with pytest.raises(NotFound):
        orders.get_order("order-2")
