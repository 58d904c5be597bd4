# Settlement Engine for Dexter Marketplace
# Entry point for every command: one call, one database transaction

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from config.app_config import MAX_CONFLICT_RETRIES
from core.errors import SettlementError
from core.paystack_service import PaymentGatewayError, PaystackService
from core.unit_of_work import run_in_transaction
from database.config import SessionLocal
from database.models import PartyTypeDB
from database.marketplace_models import Campaign, CampaignStatusDB, DisputeStatusDB, EscrowStatusDB
from services.campaign_service import SYSTEM_ACTOR, CampaignService
from services.dispute_service import DisputeService, ResolutionPolicy
from services.escrow import EscrowService
from services.ledger import LedgerService
from services.notification_service import NotificationService
from services.order_service import OrderService
from services.payment_service import PaymentService

logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Facade over the settlement services.

    Each public method opens a session, runs the matching service call,
    commits, and retries the whole call on optimistic-lock conflicts.
    Returned ORM objects are detached but keep their loaded columns.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        gateway: Optional[PaystackService] = None,
        policy: Optional[ResolutionPolicy] = None,
        retries: int = MAX_CONFLICT_RETRIES,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.policy = policy
        self.retries = retries

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _service(self, service_cls, db: Session):
        if service_cls is DisputeService:
            return DisputeService(db, policy=self.policy)
        if service_cls is PaymentService:
            return PaymentService(db, gateway=self.gateway)
        return service_cls(db)

    def _call(self, service_cls, method: str, *args, **kwargs):
        def command(db: Session):
            return getattr(self._service(service_cls, db), method)(*args, **kwargs)
        command.__name__ = method
        return run_in_transaction(self.session_factory, command, retries=self.retries)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def open_account(self, account_id: str, party_type: PartyTypeDB = PartyTypeDB.BRAND):
        return self._call(LedgerService, "open_account", account_id, party_type)

    def get_wallet(self, account_id: str):
        return self._call(LedgerService, "get_account", account_id)

    def history(self, account_id: str, limit: int = 50, offset: int = 0):
        return self._call(LedgerService, "history", account_id, limit, offset)

    def reconcile(self, account_id: str) -> dict:
        return self._call(LedgerService, "reconcile", account_id)

    def post(self, request):
        return self._call(LedgerService, "post", request)

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    def get_hold(self, hold_id: str):
        return self._call(EscrowService, "get_hold", hold_id)

    def campaign_hold(self, campaign_id: str):
        return self._call(EscrowService, "hold_for", campaign_id)

    def account_holds(self, account_id: str, status: Optional[EscrowStatusDB] = None):
        return self._call(EscrowService, "holds_for_account", account_id, status)

    # ------------------------------------------------------------------
    # Campaigns and bids
    # ------------------------------------------------------------------

    def get_campaign(self, campaign_id: str):
        return self._call(CampaignService, "get_campaign", campaign_id)

    def get_bid(self, bid_id: str):
        return self._call(CampaignService, "get_bid", bid_id)

    def pending_bids(self, campaign_id: str):
        return self._call(CampaignService, "pending_bids", campaign_id)

    def create_campaign(self, brand_id: str, title: str, budget: int, description: Optional[str] = None):
        return self._call(CampaignService, "create_campaign", brand_id, title, budget, description)

    def place_bid(self, campaign_id: str, influencer_id: str, amount: int, proposal: Optional[str] = None):
        return self._call(CampaignService, "place_bid", campaign_id, influencer_id, amount, proposal)

    def invite(self, campaign_id: str, brand_id: str, influencer_id: str, amount: int,
               proposal: Optional[str] = None, is_admin: bool = False):
        return self._call(CampaignService, "invite", campaign_id, brand_id, influencer_id, amount, proposal, is_admin)

    def accept_bid(self, bid_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "accept_bid", bid_id, acting_id, is_admin)

    def reject_bid(self, bid_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "reject_bid", bid_id, acting_id, is_admin)

    def withdraw_bid(self, bid_id: str, influencer_id: str):
        return self._call(CampaignService, "withdraw_bid", bid_id, influencer_id)

    def start(self, campaign_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "start", campaign_id, acting_id, is_admin)

    def submit_draft(self, campaign_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "submit_draft", campaign_id, acting_id, is_admin)

    def request_revision(self, campaign_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "request_revision", campaign_id, acting_id, is_admin)

    def approve_draft(self, campaign_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "approve_draft", campaign_id, acting_id, is_admin)

    def publish(self, campaign_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "publish", campaign_id, acting_id, is_admin)

    def complete(self, campaign_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "complete", campaign_id, acting_id, is_admin)

    def cancel(self, campaign_id: str, acting_id: str, is_admin: bool = False):
        return self._call(CampaignService, "cancel", campaign_id, acting_id, is_admin)

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    def get_dispute(self, dispute_id: str):
        return self._call(DisputeService, "get_dispute", dispute_id)

    def list_disputes(self, status: Optional[DisputeStatusDB] = None, limit: int = 50, offset: int = 0):
        return self._call(DisputeService, "list_disputes", status, limit, offset)

    def raise_dispute(self, campaign_id: str, raised_by: str, reason: str, is_admin: bool = False):
        return self._call(DisputeService, "raise_dispute", campaign_id, raised_by, reason, is_admin)

    def start_review(self, dispute_id: str, admin_id: str):
        return self._call(DisputeService, "start_review", dispute_id, admin_id)

    def resolve_dispute(self, dispute_id: str, resolution: str, refund_percentage: int,
                        resolved_in_favor_of: str, resolved_by: str):
        return self._call(DisputeService, "resolve", dispute_id, resolution, refund_percentage,
                          resolved_in_favor_of, resolved_by)

    def close_dispute(self, dispute_id: str, reason: str, closed_by: str):
        return self._call(DisputeService, "close", dispute_id, reason, closed_by)

    # ------------------------------------------------------------------
    # Affiliate orders
    # ------------------------------------------------------------------

    def get_order(self, order_id: str):
        return self._call(OrderService, "get_order", order_id)

    def fulfill_order(self, order_id: str, product_id: str, affiliate_id: str, brand_id: str,
                      gross_amount: int, commission_type, commission_rate_or_fixed,
                      platform_fee_type, platform_fee_rate_or_fixed):
        return self._call(
            OrderService, "fulfill_order", order_id, product_id, affiliate_id, brand_id, gross_amount,
            commission_type, commission_rate_or_fixed, platform_fee_type, platform_fee_rate_or_fixed,
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def initiate_deposit(self, account_id: str, amount: int, email: str,
                         party_type: PartyTypeDB = PartyTypeDB.BRAND, callback_url: Optional[str] = None) -> dict:
        return self._call(PaymentService, "initiate_deposit", account_id, amount, email, party_type, callback_url)

    def confirm_deposit(self, account_id: str, amount: int, external_ref: str):
        return self._call(PaymentService, "on_deposit_confirmed", account_id, amount, external_ref)

    def verify_deposit(self, reference: str):
        return self._call(PaymentService, "verify_deposit", reference)

    def get_withdrawal(self, withdrawal_id: str):
        return self._call(PaymentService, "get_withdrawal", withdrawal_id)

    def pending_withdrawals(self, limit: int = 50, offset: int = 0):
        return self._call(PaymentService, "pending_withdrawals", limit, offset)

    def withdrawals_for(self, account_id: str, limit: int = 50, offset: int = 0):
        return self._call(PaymentService, "withdrawals_for", account_id, limit, offset)

    def initiate_withdrawal(self, account_id: str, amount: int, recipient_code: str):
        return self._call(PaymentService, "initiate_withdrawal", account_id, amount, recipient_code)

    def approve_withdrawal(self, withdrawal_id: str, admin_id: str):
        """
        Approve a queued withdrawal, then send the transfer.

        The transfer goes out after the approval commits, outside the retry
        loop, so a conflict retry can never send it twice. Its reference is
        fixed per withdrawal; if the gateway call fails the withdrawal stays
        processing and approving it again resends the same transfer.
        """
        withdrawal = self._call(PaymentService, "approve_withdrawal", withdrawal_id, admin_id)
        gateway = self.gateway or PaystackService()
        try:
            gateway.initiate_transfer(
                amount=withdrawal.amount,
                recipient_code=withdrawal.recipient_code,
                reason="Wallet withdrawal",
                reference=withdrawal.payout_ref,
            )
        except PaymentGatewayError:
            logger.error(f"Transfer for withdrawal {withdrawal.id} (ref {withdrawal.payout_ref}) was not sent")
            raise
        logger.info(f"Transfer of {withdrawal.amount} sent for withdrawal {withdrawal.id} (ref {withdrawal.payout_ref})")
        return withdrawal

    def reject_withdrawal(self, withdrawal_id: str, admin_id: str, reason: str):
        return self._call(PaymentService, "reject_withdrawal", withdrawal_id, admin_id, reason)

    def confirm_withdrawal(self, payout_ref: str):
        return self._call(PaymentService, "on_withdrawal_confirmed", payout_ref)

    def fail_withdrawal(self, payout_ref: str, reason: Optional[str] = None):
        return self._call(PaymentService, "on_withdrawal_failed", payout_ref, reason)

    def handle_gateway_event(self, event: dict):
        return self._call(PaymentService, "handle_gateway_event", event)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notifications(self, user_id: str, unread_only: bool = False, limit: int = 50):
        return self._call(NotificationService, "for_user", user_id, unread_only, limit)

    def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        return self._call(NotificationService, "mark_read", notification_id, user_id)

    # ------------------------------------------------------------------
    # Scheduled jobs
    # ------------------------------------------------------------------

    def run_auto_release(self, now: Optional[datetime] = None) -> List[str]:
        """
        Complete published campaigns whose escrow deadline has passed.

        Each hold is settled in its own transaction so one failure does not
        block the rest of the sweep. Returns the completed campaign ids.
        """
        now = now or datetime.utcnow()
        due = self._call(EscrowService, "due_for_release", now)
        logger.info(f"Auto-release sweep at {now.isoformat()}: {len(due)} holds past their deadline")

        completed = []
        for hold in due:
            try:
                campaign = run_in_transaction(
                    self.session_factory, _auto_release_hold, hold.id, now, retries=self.retries
                )
            except SettlementError as e:
                logger.error(f"Auto-release failed for hold {hold.id}: {e.detail}")
                continue
            if campaign is not None:
                completed.append(campaign.id)
        logger.info(f"Auto-release sweep finished: {len(completed)} campaigns completed")
        return completed


def _auto_release_hold(db: Session, hold_id: str, now: datetime) -> Optional[Campaign]:
    campaigns = CampaignService(db)
    hold = campaigns.escrow.get_hold(hold_id)
    if hold.status != EscrowStatusDB.ACTIVE or hold.auto_release_at is None or hold.auto_release_at > now:
        return None

    campaign = db.get(Campaign, hold.campaign_id)
    if campaign is None or campaign.escrow_hold_id != hold.id:
        logger.warning(f"Hold {hold.id} has no campaign to auto-release")
        return None
    if campaign.status != CampaignStatusDB.PUBLISHED:
        # Work not delivered yet, or frozen by a dispute
        logger.info(f"Skipping auto-release of campaign {campaign.id} in status '{campaign.status.value}'")
        return None

    return campaigns.complete(campaign.id, SYSTEM_ACTOR, is_admin=True)


def get_engine() -> SettlementEngine:
    """
    FastAPI dependency for the settlement engine.
    Usage: engine: SettlementEngine = Depends(get_engine)
    """
    return SettlementEngine()
