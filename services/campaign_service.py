# Campaign & Bid Service for Dexter Marketplace
# Drives campaign lifecycle transitions and the escrow commands they imply

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from config.app_config import ESCROW_AUTO_RELEASE_DAYS, PLATFORM_FEE_PERCENT
from core.campaign_state import TERMINAL_STATUSES, CampaignAction, next_status
from core.commission import percentage_of
from core.errors import ConcurrentModification, InvalidTransition, NotFound, PermissionDenied, ValidationError
from database.models import PartyTypeDB
from database.marketplace_models import (
    Bid, BidStatusDB, Campaign, CampaignStatusDB, EscrowStatusDB,
)
from services.escrow import EscrowService
from services.ledger import LedgerService
from services.notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)

# Timestamp column stamped when a campaign enters each status
STATUS_TIMESTAMPS = {
    CampaignStatusDB.ACCEPTED: "accepted_at",
    CampaignStatusDB.IN_PROGRESS: "started_at",
    CampaignStatusDB.DRAFT_SUBMITTED: "draft_submitted_at",
    CampaignStatusDB.DRAFT_APPROVED: "draft_approved_at",
    CampaignStatusDB.PUBLISHED: "published_at",
    CampaignStatusDB.DISPUTED: "disputed_at",
    CampaignStatusDB.COMPLETED: "completed_at",
    CampaignStatusDB.CANCELLED: "cancelled_at",
}

SYSTEM_ACTOR = "system"


class CampaignService:
    """
    Service for campaign and bid commands.
    Every method runs inside the caller's transaction; nothing here commits.
    """

    def __init__(self, db: Session, escrow: Optional[EscrowService] = None,
                 notifications: Optional[NotificationService] = None):
        self.db = db
        self.ledger = escrow.ledger if escrow else LedgerService(db)
        self.escrow = escrow or EscrowService(db, self.ledger)
        self.notifications = notifications or NotificationService(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_campaign(self, campaign_id: str) -> Campaign:
        campaign = self.db.get(Campaign, campaign_id)
        if not campaign:
            raise NotFound(f"Campaign {campaign_id} not found")
        return campaign

    def get_bid(self, bid_id: str) -> Bid:
        bid = self.db.get(Bid, bid_id)
        if not bid:
            raise NotFound(f"Bid {bid_id} not found")
        return bid

    def pending_bids(self, campaign_id: str, exclude_id: Optional[str] = None) -> List[Bid]:
        query = self.db.query(Bid).filter(
            Bid.campaign_id == campaign_id,
            Bid.status == BidStatusDB.PENDING,
        )
        if exclude_id:
            query = query.filter(Bid.id != exclude_id)
        return query.all()

    # ------------------------------------------------------------------
    # Campaigns and bids
    # ------------------------------------------------------------------

    def create_campaign(self, brand_id: str, title: str, budget: int, description: Optional[str] = None) -> Campaign:
        if isinstance(budget, bool) or not isinstance(budget, int) or budget <= 0:
            raise ValidationError("Budget must be a positive integer amount in cents")

        campaign = Campaign(
            brand_id=brand_id,
            title=title,
            description=description,
            budget=budget,
            status=CampaignStatusDB.OPEN,
        )
        self.db.add(campaign)
        self.db.flush()
        logger.info(f"Campaign {campaign.id} opened by {brand_id} with budget {budget}")
        return campaign

    def place_bid(self, campaign_id: str, influencer_id: str, amount: int,
                  proposal: Optional[str] = None, invited: bool = False) -> Bid:
        """Create a pending bid. The first bid moves an open campaign to pending."""
        campaign = self.get_campaign(campaign_id)

        if campaign.status not in (CampaignStatusDB.OPEN, CampaignStatusDB.PENDING):
            raise InvalidTransition(f"Campaign is not accepting bids (status '{campaign.status.value}')")
        if influencer_id == campaign.brand_id:
            raise PermissionDenied("A brand cannot bid on its own campaign")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Bid amount must be a positive integer amount in cents")
        if amount > campaign.budget:
            raise ValidationError(f"Bid amount {amount} exceeds the campaign budget {campaign.budget}")

        existing_bid = self.db.query(Bid).filter(
            Bid.campaign_id == campaign_id,
            Bid.influencer_id == influencer_id,
            Bid.status == BidStatusDB.PENDING,
        ).first()
        if existing_bid:
            raise ValidationError("You already have a pending bid on this campaign")

        bid = Bid(
            campaign_id=campaign_id,
            influencer_id=influencer_id,
            amount=amount,
            proposal=proposal or "",
            invited=invited,
            status=BidStatusDB.PENDING,
        )
        self.db.add(bid)

        if campaign.status == CampaignStatusDB.OPEN:
            self.transition(campaign, CampaignAction.RECEIVE_BID)
        self.db.flush()

        if invited:
            self.notifications.create(
                influencer_id, NotificationType.BID_RECEIVED, "New Campaign Invite",
                f"You have been invited to '{campaign.title}'",
                {"campaign_id": campaign.id, "bid_id": bid.id, "amount": amount},
            )
        else:
            self.notifications.create(
                campaign.brand_id, NotificationType.BID_RECEIVED, "New Bid Received",
                f"A bid of {amount} was placed on your campaign '{campaign.title}'",
                {"campaign_id": campaign.id, "bid_id": bid.id, "amount": amount},
            )
        return bid

    def invite(self, campaign_id: str, brand_id: str, influencer_id: str, amount: int,
               proposal: Optional[str] = None, is_admin: bool = False) -> Bid:
        """Brand-initiated direct offer, accepted by the influencer."""
        campaign = self.get_campaign(campaign_id)
        self._require_brand(campaign, brand_id, is_admin)
        return self.place_bid(campaign_id, influencer_id, amount, proposal, invited=True)

    def accept_bid(self, bid_id: str, acting_id: str, is_admin: bool = False) -> Bid:
        """
        Accept one bid as a single unit: lock escrow for the bid amount,
        accept the bid, reject every sibling pending bid and move the
        campaign to accepted. Any failure leaves all of it untouched.
        """
        bid = self.get_bid(bid_id)
        campaign = self.get_campaign(bid.campaign_id)

        acceptor = bid.influencer_id if bid.invited else campaign.brand_id
        if not is_admin and acting_id != acceptor:
            raise PermissionDenied("Only the invited influencer can accept this offer" if bid.invited
                                   else "Only the campaign owner can accept bids")
        if bid.status != BidStatusDB.PENDING:
            raise InvalidTransition(f"Bid is not in pending status (status '{bid.status.value}')")
        target = next_status(campaign.status, CampaignAction.ACCEPT)

        lock_key = f"escrow_lock:{campaign.id}"
        if self.escrow.find_hold(lock_key):
            # Another acceptance committed after this campaign was read
            raise ConcurrentModification(f"Campaign {campaign.id} was funded by another request")

        now = datetime.utcnow()
        self.ledger.open_account(campaign.brand_id, PartyTypeDB.BRAND)
        hold = self.escrow.lock(
            campaign_id=campaign.id,
            payer=campaign.brand_id,
            amount=bid.amount,
            idempotency_key=lock_key,
            auto_release_at=now + timedelta(days=ESCROW_AUTO_RELEASE_DAYS),
        )

        bid.status = BidStatusDB.ACCEPTED
        bid.accepted_at = now

        siblings = self.pending_bids(campaign.id, exclude_id=bid.id)
        for sibling in siblings:
            sibling.status = BidStatusDB.REJECTED
            sibling.rejected_at = now

        campaign.influencer_id = bid.influencer_id
        campaign.agreed_amount = bid.amount
        campaign.escrow_hold_id = hold.id
        self._set_status(campaign, target, now)
        self.db.flush()

        logger.info(f"Bid {bid.id} accepted on campaign {campaign.id}; {len(siblings)} sibling bids rejected")
        self.notifications.create_batch(
            [bid.influencer_id, campaign.brand_id], NotificationType.CAMPAIGN_ACCEPTED, "Bid Accepted!",
            f"The bid on '{campaign.title}' has been accepted and {bid.amount} is held in escrow",
            {"campaign_id": campaign.id, "bid_id": bid.id, "escrow_hold_id": hold.id},
        )
        for sibling in siblings:
            self.notifications.create(
                sibling.influencer_id, NotificationType.BID_REJECTED, "Bid Not Selected",
                f"Your bid on '{campaign.title}' was not selected",
                {"campaign_id": campaign.id, "bid_id": sibling.id},
            )
        return bid

    def reject_bid(self, bid_id: str, acting_id: str, is_admin: bool = False) -> Bid:
        bid = self.get_bid(bid_id)
        campaign = self.get_campaign(bid.campaign_id)
        if bid.invited:
            # The invited influencer declines the offer
            if not is_admin and acting_id != bid.influencer_id:
                raise PermissionDenied("Only the invited influencer can decline this offer")
        else:
            self._require_brand(campaign, acting_id, is_admin)
        if bid.status != BidStatusDB.PENDING:
            raise InvalidTransition(f"Bid is not in pending status (status '{bid.status.value}')")

        bid.status = BidStatusDB.REJECTED
        bid.rejected_at = datetime.utcnow()
        self._reopen_if_idle(campaign, bid.id)
        self.db.flush()

        self.notifications.create(
            bid.influencer_id if not bid.invited else campaign.brand_id,
            NotificationType.BID_REJECTED, "Bid Not Selected",
            f"The bid on '{campaign.title}' was rejected",
            {"campaign_id": campaign.id, "bid_id": bid.id},
        )
        return bid

    def withdraw_bid(self, bid_id: str, influencer_id: str) -> Bid:
        bid = self.get_bid(bid_id)
        if bid.influencer_id != influencer_id:
            raise PermissionDenied("You can only withdraw your own bids")
        if bid.status != BidStatusDB.PENDING:
            raise InvalidTransition("Can only withdraw pending bids")

        campaign = self.get_campaign(bid.campaign_id)
        bid.status = BidStatusDB.WITHDRAWN
        bid.withdrawn_at = datetime.utcnow()
        self._reopen_if_idle(campaign, bid.id)
        self.db.flush()

        self.notifications.create(
            campaign.brand_id, NotificationType.BID_WITHDRAWN, "Bid Withdrawn",
            f"A bid on '{campaign.title}' was withdrawn",
            {"campaign_id": campaign.id, "bid_id": bid.id},
        )
        return bid

    # ------------------------------------------------------------------
    # Work lifecycle
    # ------------------------------------------------------------------

    def start(self, campaign_id: str, acting_id: str, is_admin: bool = False) -> Campaign:
        campaign = self.get_campaign(campaign_id)
        self._require_influencer(campaign, acting_id, is_admin)
        self.transition(campaign, CampaignAction.START)
        self._notify(campaign, NotificationType.CAMPAIGN_STARTED, "Work Started",
                     f"Work has started on '{campaign.title}'")
        return campaign

    def submit_draft(self, campaign_id: str, acting_id: str, is_admin: bool = False) -> Campaign:
        campaign = self.get_campaign(campaign_id)
        self._require_influencer(campaign, acting_id, is_admin)
        self.transition(campaign, CampaignAction.SUBMIT_DRAFT)
        self._notify(campaign, NotificationType.DRAFT_SUBMITTED, "Draft Submitted",
                     f"A draft was submitted for '{campaign.title}'")
        return campaign

    def request_revision(self, campaign_id: str, acting_id: str, is_admin: bool = False) -> Campaign:
        campaign = self.get_campaign(campaign_id)
        self._require_brand(campaign, acting_id, is_admin)
        self.transition(campaign, CampaignAction.REQUEST_REVISION)
        self._notify(campaign, NotificationType.REVISION_REQUESTED, "Revision Requested",
                     f"Changes were requested on '{campaign.title}'")
        return campaign

    def approve_draft(self, campaign_id: str, acting_id: str, is_admin: bool = False) -> Campaign:
        campaign = self.get_campaign(campaign_id)
        self._require_brand(campaign, acting_id, is_admin)
        self.transition(campaign, CampaignAction.APPROVE_DRAFT)
        self._notify(campaign, NotificationType.DRAFT_APPROVED, "Draft Approved",
                     f"The draft for '{campaign.title}' was approved")
        return campaign

    def publish(self, campaign_id: str, acting_id: str, is_admin: bool = False) -> Campaign:
        campaign = self.get_campaign(campaign_id)
        self._require_influencer(campaign, acting_id, is_admin)
        self.transition(campaign, CampaignAction.PUBLISH)
        self._notify(campaign, NotificationType.CAMPAIGN_PUBLISHED, "Content Published",
                     f"Content for '{campaign.title}' is live")
        return campaign

    def complete(self, campaign_id: str, acting_id: str, is_admin: bool = False) -> Campaign:
        """Release escrow to the influencer (minus the platform fee) and complete the campaign."""
        campaign = self.get_campaign(campaign_id)
        self._require_brand(campaign, acting_id, is_admin)
        target = next_status(campaign.status, CampaignAction.COMPLETE)

        hold = self._active_hold(campaign)
        fee = percentage_of(hold.amount, PLATFORM_FEE_PERCENT)
        self.escrow.release(hold.id, campaign.influencer_id, fee, idempotency_key=f"escrow_release:{campaign.id}")

        self._set_status(campaign, target)
        self.db.flush()

        logger.info(f"Campaign {campaign.id} completed by {acting_id}; released {hold.amount - fee} (fee {fee})")
        self._notify(campaign, NotificationType.CAMPAIGN_COMPLETED, "Campaign Completed",
                     f"'{campaign.title}' is complete and {hold.amount - fee} was paid out",
                     {"amount": hold.amount - fee, "platform_fee": fee})
        return campaign

    def cancel(self, campaign_id: str, acting_id: str, is_admin: bool = False) -> Campaign:
        """Cancel before work starts. Refunds the hold if one exists and rejects pending bids."""
        campaign = self.get_campaign(campaign_id)
        self._require_brand(campaign, acting_id, is_admin)
        target = next_status(campaign.status, CampaignAction.CANCEL)

        now = datetime.utcnow()
        refunded = 0
        if campaign.escrow_hold_id:
            hold = self._active_hold(campaign)
            self.escrow.refund(hold.id, idempotency_key=f"escrow_refund:{campaign.id}")
            refunded = hold.amount

        for bid in self.pending_bids(campaign.id):
            bid.status = BidStatusDB.REJECTED
            bid.rejected_at = now

        self._set_status(campaign, target, now)
        self.db.flush()

        logger.info(f"Campaign {campaign.id} cancelled by {acting_id}; refunded {refunded}")
        self._notify(campaign, NotificationType.CAMPAIGN_CANCELLED, "Campaign Cancelled",
                     f"'{campaign.title}' was cancelled", {"refunded": refunded})
        return campaign

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def transition(self, campaign: Campaign, action: CampaignAction, restore_to=None) -> Campaign:
        target = next_status(campaign.status, action, restore_to)
        self._set_status(campaign, target)
        self.db.flush()
        return campaign

    def _set_status(self, campaign: Campaign, target: CampaignStatusDB, now: Optional[datetime] = None):
        previous = campaign.status
        campaign.status = target
        column = STATUS_TIMESTAMPS.get(target)
        if column:
            setattr(campaign, column, now or datetime.utcnow())
        if target in TERMINAL_STATUSES:
            # The hold is terminal by now; it stays findable through its campaign_id
            campaign.escrow_hold_id = None
        logger.info(f"Campaign {campaign.id}: {previous.value} -> {target.value}")

    def _active_hold(self, campaign: Campaign):
        if not campaign.escrow_hold_id:
            raise InvalidTransition(f"Campaign {campaign.id} has no escrow hold")
        hold = self.escrow.get_hold(campaign.escrow_hold_id)
        if hold.status != EscrowStatusDB.ACTIVE:
            raise InvalidTransition(f"Escrow hold for campaign {campaign.id} is already {hold.status.value}")
        return hold

    def _reopen_if_idle(self, campaign: Campaign, leaving_bid_id: str):
        self.db.flush()
        if campaign.status == CampaignStatusDB.PENDING and not self.pending_bids(campaign.id, exclude_id=leaving_bid_id):
            self.transition(campaign, CampaignAction.REOPEN)

    def _notify(self, campaign: Campaign, type: NotificationType, title: str, message: str,
                extra: Optional[dict] = None):
        data = {"campaign_id": campaign.id, "status": campaign.status.value}
        data.update(extra or {})
        self.notifications.create_batch([campaign.brand_id, campaign.influencer_id], type, title, message, data)

    @staticmethod
    def _require_brand(campaign: Campaign, acting_id: str, is_admin: bool = False):
        if not is_admin and acting_id != campaign.brand_id:
            raise PermissionDenied("Only the campaign owner can perform this action")

    @staticmethod
    def _require_influencer(campaign: Campaign, acting_id: str, is_admin: bool = False):
        if not is_admin and (campaign.influencer_id is None or acting_id != campaign.influencer_id):
            raise PermissionDenied("Only the assigned influencer can perform this action")
