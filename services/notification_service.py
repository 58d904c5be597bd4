# Notification Service for Dexter Marketplace
# Writes fire-and-forget events to the notification outbox in the caller's transaction

import logging
from sqlalchemy.orm import Session
from typing import Optional, List
from enum import Enum

from database.marketplace_models import Notification

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Events emitted on state transitions."""
    BID_RECEIVED = "campaign.bid_received"
    BID_REJECTED = "bid.rejected"
    BID_WITHDRAWN = "bid.withdrawn"
    CAMPAIGN_ACCEPTED = "campaign.accepted"
    CAMPAIGN_STARTED = "campaign.started"
    DRAFT_SUBMITTED = "campaign.draft_submitted"
    REVISION_REQUESTED = "campaign.revision_requested"
    DRAFT_APPROVED = "campaign.draft_approved"
    CAMPAIGN_PUBLISHED = "campaign.published"
    CAMPAIGN_COMPLETED = "campaign.completed"
    CAMPAIGN_CANCELLED = "campaign.cancelled"
    CAMPAIGN_DISPUTED = "campaign.disputed"
    ESCROW_LOCKED = "escrow.locked"
    ESCROW_RELEASED = "escrow.released"
    ESCROW_REFUNDED = "escrow.refunded"
    DISPUTE_UNDER_REVIEW = "dispute.under_review"
    DISPUTE_RESOLVED = "dispute.resolved"
    DISPUTE_CLOSED = "dispute.closed"
    COMMISSION_PAID = "order.commission_paid"
    DEPOSIT_COMPLETED = "wallet.deposit_completed"
    WITHDRAWAL_COMPLETED = "wallet.withdrawal_completed"
    WITHDRAWAL_FAILED = "wallet.withdrawal_failed"
    WITHDRAWAL_REJECTED = "wallet.withdrawal_rejected"


class NotificationService:
    """
    Service for emitting user notifications.
    The engine only records events; delivery is someone else's job.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Notification:
        """
        Create a new notification for a user.

        Args:
            user_id: The account to notify
            type: Event name
            title: Short notification title
            message: Full notification message
            data: Optional additional data as JSON

        Returns:
            The created Notification object
        """
        notification = Notification(
            user_id=user_id,
            type=NotificationType(type).value,
            title=title,
            message=message,
            data=data or {},
        )
        self.db.add(notification)
        self.db.flush()  # Get the ID without committing
        logger.debug(f"Emitted {notification.type} for {user_id}")
        return notification

    def create_batch(
        self,
        user_ids: List[Optional[str]],
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> List[Notification]:
        """Create the same notification for several users, skipping empty ids and duplicates."""
        notifications = []
        seen = set()
        for user_id in user_ids:
            if not user_id or user_id in seen:
                continue
            seen.add(user_id)
            notifications.append(self.create(user_id, type, title, message, data))
        return notifications

    def for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return query.order_by(Notification.created_at.desc()).limit(limit).all()

    def mark_read(self, notification_id: str, user_id: str) -> bool:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if not notification:
            return False
        notification.read = True
        self.db.flush()
        return True
