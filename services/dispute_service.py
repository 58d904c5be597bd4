# Dispute Resolver for Dexter Marketplace
# Takes direct control of a disputed campaign's escrow hold and settles it by percentage

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from config.app_config import MIN_DISPUTE_REASON_LENGTH, MIN_RESOLUTION_LENGTH
from core.campaign_state import CampaignAction
from core.errors import InvalidHoldState, InvalidTransition, NotFound, PermissionDenied, ValidationError
from database.marketplace_models import (
    Campaign, CampaignStatusDB, Dispute, DisputeStatusDB, EscrowStatusDB,
)
from services.campaign_service import CampaignService
from services.notification_service import NotificationType

logger = logging.getLogger(__name__)

# (dispute, campaign, refund_percentage) -> terminal campaign status
ResolutionPolicy = Callable[[Dispute, Campaign, int], CampaignStatusDB]


def default_resolution_policy(dispute: Dispute, campaign: Campaign, refund_percentage: int) -> CampaignStatusDB:
    """A full refund cancels the campaign; any payout to the influencer completes it."""
    if refund_percentage == 100:
        return CampaignStatusDB.CANCELLED
    return CampaignStatusDB.COMPLETED


RESOLVE_ACTIONS = {
    CampaignStatusDB.COMPLETED: CampaignAction.RESOLVE_COMPLETED,
    CampaignStatusDB.CANCELLED: CampaignAction.RESOLVE_CANCELLED,
}

OPEN_DISPUTE_STATUSES = (DisputeStatusDB.OPEN, DisputeStatusDB.UNDER_REVIEW)


class DisputeService:
    def __init__(self, db: Session, campaigns: Optional[CampaignService] = None,
                 policy: Optional[ResolutionPolicy] = None):
        self.db = db
        self.campaigns = campaigns or CampaignService(db)
        self.escrow = self.campaigns.escrow
        self.notifications = self.campaigns.notifications
        self.policy = policy or default_resolution_policy

    def get_dispute(self, dispute_id: str) -> Dispute:
        dispute = self.db.get(Dispute, dispute_id)
        if not dispute:
            raise NotFound(f"Dispute {dispute_id} not found")
        return dispute

    def list_disputes(self, status: Optional[DisputeStatusDB] = None,
                      limit: int = 50, offset: int = 0) -> List[Dispute]:
        """Admin queue, oldest first so the longest-frozen escrow is handled first."""
        query = self.db.query(Dispute)
        if status is not None:
            query = query.filter(Dispute.status == status)
        return query.order_by(Dispute.created_at.asc()).offset(offset).limit(limit).all()

    def raise_dispute(self, campaign_id: str, raised_by: str, reason: str, is_admin: bool = False) -> Dispute:
        """Either party freezes a funded campaign; the hold stays active until resolution."""
        campaign = self.campaigns.get_campaign(campaign_id)
        if not is_admin and raised_by not in (campaign.brand_id, campaign.influencer_id):
            raise PermissionDenied("Only the brand or the assigned influencer can raise a dispute")
        if not reason or len(reason.strip()) < MIN_DISPUTE_REASON_LENGTH:
            raise ValidationError(f"Dispute reason must be at least {MIN_DISPUTE_REASON_LENGTH} characters")

        previous = campaign.status
        self.campaigns.transition(campaign, CampaignAction.DISPUTE)
        campaign.status_before_dispute = previous.value

        dispute = Dispute(
            campaign_id=campaign.id,
            raised_by=raised_by,
            reason=reason.strip(),
            status=DisputeStatusDB.OPEN,
        )
        self.db.add(dispute)
        self.db.flush()

        logger.info(f"Dispute {dispute.id} raised on campaign {campaign.id} by {raised_by}")
        self.notifications.create_batch(
            [campaign.brand_id, campaign.influencer_id], NotificationType.CAMPAIGN_DISPUTED,
            "Dispute Opened", f"A dispute was raised on '{campaign.title}'",
            {"campaign_id": campaign.id, "dispute_id": dispute.id},
        )
        return dispute

    def start_review(self, dispute_id: str, admin_id: str) -> Dispute:
        dispute = self.get_dispute(dispute_id)
        if dispute.status != DisputeStatusDB.OPEN:
            raise InvalidTransition("Dispute is not in open state")

        dispute.status = DisputeStatusDB.UNDER_REVIEW
        self.db.flush()

        campaign = self.campaigns.get_campaign(dispute.campaign_id)
        logger.info(f"Dispute {dispute.id} under review by {admin_id}")
        self.notifications.create_batch(
            [campaign.brand_id, campaign.influencer_id], NotificationType.DISPUTE_UNDER_REVIEW,
            "Dispute Under Review", f"The dispute on '{campaign.title}' is being reviewed",
            {"campaign_id": campaign.id, "dispute_id": dispute.id},
        )
        return dispute

    def resolve(
        self,
        dispute_id: str,
        resolution: str,
        refund_percentage: int,
        resolved_in_favor_of: str,
        resolved_by: str,
    ) -> Dispute:
        """
        Split the escrow hold, record the decision and move the campaign to
        the terminal status chosen by the resolution policy.
        """
        dispute = self.get_dispute(dispute_id)
        if dispute.status not in OPEN_DISPUTE_STATUSES:
            raise InvalidTransition(f"Dispute is already {dispute.status.value}")
        if not resolution or len(resolution.strip()) < MIN_RESOLUTION_LENGTH:
            raise ValidationError(f"Resolution must be at least {MIN_RESOLUTION_LENGTH} characters")
        if isinstance(refund_percentage, bool) or not isinstance(refund_percentage, int) \
                or not 0 <= refund_percentage <= 100:
            raise ValidationError("Refund percentage must be an integer between 0 and 100")

        campaign = self.campaigns.get_campaign(dispute.campaign_id)
        if resolved_in_favor_of not in (campaign.brand_id, campaign.influencer_id):
            raise ValidationError("Invalid user for resolution")
        if campaign.status != CampaignStatusDB.DISPUTED:
            raise InvalidTransition(f"Campaign is not disputed (status '{campaign.status.value}')")
        if not campaign.escrow_hold_id:
            raise InvalidHoldState(f"Campaign {campaign.id} has no escrow hold to settle")
        hold = self.escrow.get_hold(campaign.escrow_hold_id)
        if hold.status != EscrowStatusDB.ACTIVE:
            raise InvalidHoldState(f"Escrow hold {hold.id} is already {hold.status.value}")

        target = self.policy(dispute, campaign, refund_percentage)
        if target not in RESOLVE_ACTIONS:
            raise InvalidTransition(f"Resolution policy returned non-terminal status '{target}'")

        self.escrow.split(
            hold.id, campaign.influencer_id, 100 - refund_percentage, refund_percentage,
            idempotency_key=f"escrow_split:{dispute.id}",
        )

        now = datetime.utcnow()
        dispute.status = DisputeStatusDB.RESOLVED
        dispute.resolution = resolution.strip()
        dispute.refund_percentage = refund_percentage
        dispute.resolved_in_favor_of = resolved_in_favor_of
        dispute.resolved_by = resolved_by
        dispute.resolved_at = now

        self.campaigns.transition(campaign, RESOLVE_ACTIONS[target])
        campaign.status_before_dispute = None
        self.db.flush()

        logger.info(
            f"Dispute {dispute.id} resolved by {resolved_by}: {refund_percentage}% refunded to brand, "
            f"campaign {campaign.id} -> {target.value}"
        )
        self.notifications.create_batch(
            [campaign.brand_id, campaign.influencer_id], NotificationType.DISPUTE_RESOLVED, "Dispute Resolved",
            f"Dispute resolved. {refund_percentage}% refunded to brand, "
            f"{100 - refund_percentage}% released to influencer.",
            {"campaign_id": campaign.id, "dispute_id": dispute.id, "refund_percentage": refund_percentage},
        )
        return dispute

    def close(self, dispute_id: str, reason: str, closed_by: str) -> Dispute:
        """
        Close an invalid or withdrawn dispute without touching escrow.
        The campaign returns to the status it had before the dispute.
        """
        dispute = self.get_dispute(dispute_id)
        if dispute.status not in OPEN_DISPUTE_STATUSES:
            raise InvalidTransition(f"Dispute is already {dispute.status.value}")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to close a dispute")

        campaign = self.campaigns.get_campaign(dispute.campaign_id)
        restore_to = CampaignStatusDB(campaign.status_before_dispute) if campaign.status_before_dispute else None
        self.campaigns.transition(campaign, CampaignAction.CLOSE_DISPUTE, restore_to)
        campaign.status_before_dispute = None

        dispute.status = DisputeStatusDB.CLOSED
        dispute.resolution = f"Closed: {reason.strip()}"
        dispute.resolved_by = closed_by
        dispute.resolved_at = datetime.utcnow()
        self.db.flush()

        logger.info(f"Dispute {dispute.id} closed by {closed_by}; campaign {campaign.id} back to {campaign.status.value}")
        self.notifications.create_batch(
            [campaign.brand_id, campaign.influencer_id], NotificationType.DISPUTE_CLOSED, "Dispute Closed",
            f"The dispute on '{campaign.title}' was closed",
            {"campaign_id": campaign.id, "dispute_id": dispute.id},
        )
        return dispute
