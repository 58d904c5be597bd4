import pytest

from core.errors import InsufficientFunds, InvalidHoldState, NotFound, ValidationError
from database.marketplace_models import EscrowStatusDB
from database.models import PartyTypeDB
from services.escrow import EscrowService

from tests.conftest import BRAND, INFLUENCER


@pytest.fixture
def escrow(db, ledger):
    return EscrowService(db, ledger)


@pytest.fixture
def hold(escrow, fund):
    fund(BRAND, 50_000)
    return escrow.lock("campaign-1", BRAND, 10_000, idempotency_key="lock:campaign-1")


def balances(ledger, account_id):
    account = ledger.get_account(account_id)
    return account.available_balance, account.held_balance


def test_lock_moves_available_to_held(ledger, hold):
    assert hold.status == EscrowStatusDB.ACTIVE
    assert hold.amount == 10_000
    assert balances(ledger, BRAND) == (40_000, 10_000)


def test_lock_replay_returns_same_hold(escrow, ledger, hold):
    again = escrow.lock("campaign-1", BRAND, 10_000, idempotency_key="lock:campaign-1")

    assert again.id == hold.id
    assert balances(ledger, BRAND) == (40_000, 10_000)


def test_lock_key_reused_for_other_hold(escrow, hold):
    with pytest.raises(ValidationError):
        escrow.lock("campaign-1", BRAND, 12_000, idempotency_key="lock:campaign-1")


def test_lock_needs_funds(escrow, ledger, fund):
    fund(BRAND, 5_000)

    with pytest.raises(InsufficientFunds):
        escrow.lock("campaign-1", BRAND, 10_000, idempotency_key="lock:campaign-1")
    assert balances(ledger, BRAND) == (5_000, 0)


def test_release_pays_payee_net_of_fee(escrow, ledger, hold):
    rows = escrow.release(hold.id, INFLUENCER, platform_fee=1_000)

    assert hold.status == EscrowStatusDB.RELEASED
    assert hold.payee_account_id == INFLUENCER
    assert balances(ledger, BRAND) == (40_000, 0)
    assert balances(ledger, INFLUENCER) == (9_000, 0)
    assert ledger.platform_account().available_balance == 1_000
    assert len(rows) == 3
    assert ledger.get_account(INFLUENCER).party_type == PartyTypeDB.INFLUENCER


def test_release_without_fee_has_no_platform_leg(escrow, ledger, hold):
    rows = escrow.release(hold.id, INFLUENCER, platform_fee=0)

    assert len(rows) == 2
    assert balances(ledger, INFLUENCER) == (10_000, 0)


@pytest.mark.parametrize("fee", [-1, 10_001])
def test_release_fee_out_of_range(escrow, hold, fee):
    with pytest.raises(ValidationError):
        escrow.release(hold.id, INFLUENCER, platform_fee=fee)
    assert hold.status == EscrowStatusDB.ACTIVE


def test_refund_returns_everything_to_payer(escrow, ledger, hold):
    escrow.refund(hold.id)

    assert hold.status == EscrowStatusDB.REFUNDED
    assert balances(ledger, BRAND) == (50_000, 0)


def test_split_seventy_thirty(escrow, ledger, hold):
    escrow.split(hold.id, INFLUENCER, payee_pct=70, payer_refund_pct=30)

    assert hold.status == EscrowStatusDB.SPLIT
    assert balances(ledger, INFLUENCER) == (7_000, 0)
    assert balances(ledger, BRAND) == (43_000, 0)


@pytest.mark.parametrize("payee_pct,refund_pct", [(60, 30), (101, -1), (50, 50.5)])
def test_split_rejects_bad_percentages(escrow, hold, payee_pct, refund_pct):
    with pytest.raises(ValidationError):
        escrow.split(hold.id, INFLUENCER, payee_pct, refund_pct)
    assert hold.status == EscrowStatusDB.ACTIVE


def test_split_allocates_whole_amount_for_every_percentage(escrow, ledger, fund):
    fund(BRAND, 999 * 101)

    for pct in range(101):
        hold = escrow.lock(f"campaign-{pct}", BRAND, 999, idempotency_key=f"lock:{pct}")
        escrow.split(hold.id, INFLUENCER, payee_pct=pct, payer_refund_pct=100 - pct)

        refund = 999 * (100 - pct) // 100
        rows = ledger.find_posting(f"escrow_split:{hold.id}")
        paid = sum(r.available_delta for r in rows if r.account_id == INFLUENCER)
        returned = sum(r.available_delta for r in rows if r.account_id == BRAND)
        assert (paid, returned) == (999 - refund, refund)

    assert ledger.get_account(BRAND).held_balance == 0
    ledger.reconcile(BRAND)
    ledger.reconcile(INFLUENCER)


@pytest.mark.parametrize("first", ["release", "refund", "split"])
@pytest.mark.parametrize("second", ["release", "refund", "split"])
def test_terminal_operations_happen_once(escrow, hold, first, second):
    operations = {
        "release": lambda key=None: escrow.release(hold.id, INFLUENCER, 500, idempotency_key=key),
        "refund": lambda key=None: escrow.refund(hold.id, idempotency_key=key),
        "split": lambda key=None: escrow.split(hold.id, INFLUENCER, 50, 50, idempotency_key=key),
    }
    operations[first]()

    with pytest.raises(InvalidHoldState):
        operations[second](key="a-different-key")


def test_terminal_replay_returns_original_rows(escrow, ledger, hold):
    rows = escrow.release(hold.id, INFLUENCER, 1_000)
    replay = escrow.release(hold.id, INFLUENCER, 1_000)

    assert [r.id for r in replay] == [r.id for r in rows]
    assert balances(ledger, INFLUENCER) == (9_000, 0)


def test_refund_replay(escrow, ledger, hold):
    first = escrow.refund(hold.id, idempotency_key="refund-1")
    second = escrow.refund(hold.id, idempotency_key="refund-1")

    assert first.id == second.id
    assert balances(ledger, BRAND) == (50_000, 0)


def test_money_is_conserved_across_escrow_operations(escrow, ledger, fund):
    fund(BRAND, 30_000)
    fund("brand-2", 20_000)
    total = ledger.total_balance()

    a = escrow.lock("c-a", BRAND, 10_000, idempotency_key="lock:a")
    b = escrow.lock("c-b", BRAND, 10_000, idempotency_key="lock:b")
    c = escrow.lock("c-c", "brand-2", 15_000, idempotency_key="lock:c")
    escrow.release(a.id, INFLUENCER, 1_000)
    escrow.refund(b.id)
    escrow.split(c.id, INFLUENCER, 33, 67)

    assert ledger.total_balance() == total
    for account_id in (BRAND, "brand-2", INFLUENCER):
        ledger.reconcile(account_id)


def test_unknown_hold(escrow):
    with pytest.raises(NotFound):
        escrow.refund("missing")


def test_holds_for_account_covers_payer_payee_and_assigned_influencer(escrow, hold, accepted_campaign):
    campaign = accepted_campaign()
    escrow.release(hold.id, "influencer-2", platform_fee=0)

    assert {h.id for h in escrow.holds_for_account(BRAND)} == {hold.id, campaign.escrow_hold_id}
    assert [h.id for h in escrow.holds_for_account(INFLUENCER)] == [campaign.escrow_hold_id]
    assert [h.id for h in escrow.holds_for_account("influencer-2")] == [hold.id]
    assert [h.id for h in escrow.holds_for_account(BRAND, EscrowStatusDB.ACTIVE)] == [campaign.escrow_hold_id]
    assert escrow.holds_for_account(INFLUENCER, EscrowStatusDB.RELEASED) == []
    assert escrow.holds_for_account("stranger") == []
