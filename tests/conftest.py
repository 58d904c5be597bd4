import os

# Must be set before any project module builds the default engine
os.environ["DATABASE_URL"] = "sqlite://"

import itertools

import pytest
from sqlalchemy.orm import sessionmaker

from database.config import build_engine, init_db
from database.models import PartyTypeDB
from services.campaign_service import CampaignService
from services.engine import SettlementEngine
from services.ledger import LedgerService

BRAND = "brand-1"
INFLUENCER = "influencer-1"
ADMIN = "admin-1"


class FakeGateway:
    """Stands in for PaystackService; records calls and returns canned responses."""

    def __init__(self):
        self.calls = []
        self.verify_status = "success"
        self.verify_amount = None
        self.transfer_error = None
        self._counter = itertools.count(1)

    def initialize_transaction(self, email, amount, callback_url=None, metadata=None):
        reference = f"dep_{next(self._counter)}"
        self.calls.append(("initialize_transaction", email, amount, metadata))
        return {
            "status": True,
            "data": {
                "authorization_url": f"https://checkout.paystack.test/{reference}",
                "reference": reference,
            },
        }

    def verify_transaction(self, reference):
        self.calls.append(("verify_transaction", reference))
        data = {"reference": reference, "status": self.verify_status}
        if self.verify_amount is not None:
            data["amount"] = self.verify_amount
        return {"status": True, "data": data}

    def initiate_transfer(self, amount, recipient_code, reason="Wallet withdrawal", reference=None):
        reference = reference or f"wd_{next(self._counter)}"
        self.calls.append(("initiate_transfer", amount, recipient_code, reference))
        if self.transfer_error:
            raise self.transfer_error
        return {"status": True, "data": {"reference": reference, "status": "pending"}}


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'settlement.db'}")
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def ledger(db):
    return LedgerService(db)


@pytest.fixture
def campaigns(db, ledger):
    return CampaignService(db)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def engine(session_factory, gateway):
    return SettlementEngine(session_factory, gateway=gateway)


@pytest.fixture
def fund(ledger):
    """Open an account and deposit into it."""
    counter = itertools.count(1)

    def _fund(account_id, amount, party_type=PartyTypeDB.BRAND):
        account = ledger.open_account(account_id, party_type)
        if amount:
            ledger.deposit(account_id, amount, idempotency_key=f"seed:{account_id}:{next(counter)}")
        return account

    return _fund


@pytest.fixture
def accepted_campaign(campaigns, fund):
    """A campaign whose bid was accepted: the agreed amount is held in escrow."""

    def _build(amount=10_000, deposit=50_000, brand=BRAND, influencer=INFLUENCER):
        fund(brand, deposit)
        campaign = campaigns.create_campaign(brand, "Product launch", budget=amount)
        bid = campaigns.place_bid(campaign.id, influencer, amount)
        campaigns.accept_bid(bid.id, brand)
        return campaign

    return _build


@pytest.fixture
def published_campaign(campaigns, accepted_campaign):
    def _build(**kwargs):
        campaign = accepted_campaign(**kwargs)
        influencer = campaign.influencer_id
        campaigns.start(campaign.id, influencer)
        campaigns.submit_draft(campaign.id, influencer)
        campaigns.approve_draft(campaign.id, campaign.brand_id)
        campaigns.publish(campaign.id, influencer)
        return campaign

    return _build
