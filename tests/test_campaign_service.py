import pytest

from core.errors import InsufficientFunds, InvalidTransition, PermissionDenied, ValidationError
from database.marketplace_models import BidStatusDB, CampaignStatusDB, EscrowHold, EscrowStatusDB
from services.notification_service import NotificationService, NotificationType

from tests.conftest import ADMIN, BRAND, INFLUENCER


def test_create_campaign_starts_open(campaigns):
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000, description="Two posts")

    assert campaign.status == CampaignStatusDB.OPEN
    assert campaign.escrow_hold_id is None
    assert campaign.influencer_id is None


@pytest.mark.parametrize("budget", [0, -100, True])
def test_create_campaign_needs_positive_budget(campaigns, budget):
    with pytest.raises(ValidationError):
        campaigns.create_campaign(BRAND, "Spring drop", budget=budget)


def test_first_bid_moves_campaign_to_pending(campaigns, db):
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    bid = campaigns.place_bid(campaign.id, INFLUENCER, 15_000, proposal="Reel plus story")

    assert bid.status == BidStatusDB.PENDING
    assert campaign.status == CampaignStatusDB.PENDING

    notes = NotificationService(db).for_user(BRAND)
    assert [n.type for n in notes] == [NotificationType.BID_RECEIVED.value]


def test_bid_validation(campaigns):
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)

    with pytest.raises(ValidationError):
        campaigns.place_bid(campaign.id, INFLUENCER, 25_000)
    with pytest.raises(ValidationError):
        campaigns.place_bid(campaign.id, INFLUENCER, 0)
    with pytest.raises(PermissionDenied):
        campaigns.place_bid(campaign.id, BRAND, 1_000)

    campaigns.place_bid(campaign.id, INFLUENCER, 10_000)
    with pytest.raises(ValidationError):
        campaigns.place_bid(campaign.id, INFLUENCER, 9_000)


def test_accept_locks_escrow_and_rejects_siblings(campaigns, ledger, fund, db):
    fund(BRAND, 50_000)
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    bids = [campaigns.place_bid(campaign.id, f"influencer-{i}", 10_000 + i * 1_000) for i in range(4)]

    campaigns.accept_bid(bids[2].id, BRAND)

    assert [b.status for b in bids] == [
        BidStatusDB.REJECTED, BidStatusDB.REJECTED, BidStatusDB.ACCEPTED, BidStatusDB.REJECTED,
    ]
    assert campaign.status == CampaignStatusDB.ACCEPTED
    assert campaign.influencer_id == "influencer-2"
    assert campaign.agreed_amount == 12_000

    hold = db.get(EscrowHold, campaign.escrow_hold_id)
    assert hold.status == EscrowStatusDB.ACTIVE
    assert hold.amount == 12_000
    assert hold.auto_release_at > hold.locked_at
    brand = ledger.get_account(BRAND)
    assert (brand.available_balance, brand.held_balance) == (38_000, 12_000)


def test_only_one_bid_per_campaign_is_accepted(campaigns, fund, db):
    fund(BRAND, 50_000)
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    first = campaigns.place_bid(campaign.id, "influencer-a", 10_000)
    second = campaigns.place_bid(campaign.id, "influencer-b", 11_000)
    campaigns.accept_bid(first.id, BRAND)

    with pytest.raises(InvalidTransition):
        campaigns.accept_bid(second.id, BRAND)
    assert db.query(EscrowHold).filter(EscrowHold.campaign_id == campaign.id).count() == 1


def test_accept_without_funds_changes_nothing(campaigns, ledger, fund):
    fund(BRAND, 5_000)
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    winner = campaigns.place_bid(campaign.id, "influencer-a", 10_000)
    other = campaigns.place_bid(campaign.id, "influencer-b", 4_000)

    with pytest.raises(InsufficientFunds):
        campaigns.accept_bid(winner.id, BRAND)

    assert (winner.status, other.status) == (BidStatusDB.PENDING, BidStatusDB.PENDING)
    assert campaign.status == CampaignStatusDB.PENDING
    assert campaign.escrow_hold_id is None
    assert ledger.get_account(BRAND).available_balance == 5_000


def test_only_owner_accepts_bids(campaigns, fund):
    fund(BRAND, 50_000)
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    bid = campaigns.place_bid(campaign.id, INFLUENCER, 10_000)

    with pytest.raises(PermissionDenied):
        campaigns.accept_bid(bid.id, "brand-2")
    campaigns.accept_bid(bid.id, ADMIN, is_admin=True)
    assert bid.status == BidStatusDB.ACCEPTED


def test_invite_is_accepted_by_the_influencer(campaigns, fund):
    fund(BRAND, 50_000)
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    offer = campaigns.invite(campaign.id, BRAND, INFLUENCER, 8_000)

    assert offer.invited
    with pytest.raises(PermissionDenied):
        campaigns.accept_bid(offer.id, BRAND)
    campaigns.accept_bid(offer.id, INFLUENCER)
    assert campaign.status == CampaignStatusDB.ACCEPTED


def test_only_the_owner_invites(campaigns):
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    with pytest.raises(PermissionDenied):
        campaigns.invite(campaign.id, "brand-2", INFLUENCER, 8_000)


def test_campaign_reopens_when_last_bid_leaves(campaigns):
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    first = campaigns.place_bid(campaign.id, "influencer-a", 10_000)
    second = campaigns.place_bid(campaign.id, "influencer-b", 10_000)

    campaigns.withdraw_bid(first.id, "influencer-a")
    assert campaign.status == CampaignStatusDB.PENDING

    campaigns.reject_bid(second.id, BRAND)
    assert campaign.status == CampaignStatusDB.OPEN
    assert (first.status, second.status) == (BidStatusDB.WITHDRAWN, BidStatusDB.REJECTED)


def test_withdraw_rules(campaigns):
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    bid = campaigns.place_bid(campaign.id, INFLUENCER, 10_000)

    with pytest.raises(PermissionDenied):
        campaigns.withdraw_bid(bid.id, "influencer-2")
    campaigns.withdraw_bid(bid.id, INFLUENCER)
    with pytest.raises(InvalidTransition):
        campaigns.withdraw_bid(bid.id, INFLUENCER)


def test_full_lifecycle_pays_influencer_minus_fee(campaigns, ledger, published_campaign, db):
    campaign = published_campaign(amount=10_000, deposit=50_000)
    hold_id = campaign.escrow_hold_id

    campaigns.complete(campaign.id, BRAND)

    assert campaign.status == CampaignStatusDB.COMPLETED
    assert campaign.escrow_hold_id is None
    assert db.get(EscrowHold, hold_id).status == EscrowStatusDB.RELEASED
    assert ledger.get_account(INFLUENCER).available_balance == 9_000
    assert ledger.platform_account().available_balance == 1_000
    brand = ledger.get_account(BRAND)
    assert (brand.available_balance, brand.held_balance) == (40_000, 0)
    for stamp in ("accepted_at", "started_at", "draft_submitted_at", "draft_approved_at",
                  "published_at", "completed_at"):
        assert getattr(campaign, stamp) is not None


def test_revision_loop(campaigns, accepted_campaign):
    campaign = accepted_campaign()
    campaigns.start(campaign.id, INFLUENCER)
    campaigns.submit_draft(campaign.id, INFLUENCER)
    campaigns.request_revision(campaign.id, BRAND)
    assert campaign.status == CampaignStatusDB.REVISION_REQUESTED

    campaigns.submit_draft(campaign.id, INFLUENCER)
    assert campaign.status == CampaignStatusDB.DRAFT_SUBMITTED


def test_lifecycle_roles_are_enforced(campaigns, accepted_campaign):
    campaign = accepted_campaign()

    with pytest.raises(PermissionDenied):
        campaigns.start(campaign.id, BRAND)
    campaigns.start(campaign.id, INFLUENCER)
    campaigns.submit_draft(campaign.id, INFLUENCER)
    with pytest.raises(PermissionDenied):
        campaigns.approve_draft(campaign.id, INFLUENCER)


def test_complete_requires_published(campaigns, accepted_campaign, ledger):
    campaign = accepted_campaign()

    with pytest.raises(InvalidTransition):
        campaigns.complete(campaign.id, BRAND)
    assert ledger.get_account(BRAND).held_balance == 10_000


def test_cancel_accepted_campaign_refunds_escrow(campaigns, accepted_campaign, ledger, db):
    campaign = accepted_campaign(amount=10_000, deposit=50_000)
    hold_id = campaign.escrow_hold_id

    campaigns.cancel(campaign.id, BRAND)

    assert campaign.status == CampaignStatusDB.CANCELLED
    assert db.get(EscrowHold, hold_id).status == EscrowStatusDB.REFUNDED
    brand = ledger.get_account(BRAND)
    assert (brand.available_balance, brand.held_balance) == (50_000, 0)


def test_cancel_pending_campaign_rejects_bids(campaigns):
    campaign = campaigns.create_campaign(BRAND, "Spring drop", budget=20_000)
    bid = campaigns.place_bid(campaign.id, INFLUENCER, 10_000)

    campaigns.cancel(campaign.id, BRAND)

    assert campaign.status == CampaignStatusDB.CANCELLED
    assert bid.status == BidStatusDB.REJECTED


def test_cannot_cancel_work_in_progress(campaigns, accepted_campaign):
    campaign = accepted_campaign()
    campaigns.start(campaign.id, INFLUENCER)

    with pytest.raises(InvalidTransition):
        campaigns.cancel(campaign.id, BRAND)


def test_closed_campaign_takes_no_bids(campaigns, accepted_campaign):
    campaign = accepted_campaign()
    with pytest.raises(InvalidTransition):
        campaigns.place_bid(campaign.id, "influencer-late", 1_000)
