# Marketplace Models for Dexter Settlement Engine
# Escrow holds, campaigns, bids, disputes and the notification outbox

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, JSON, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime
import enum

# Use the same Base from the ledger models
from database.models import Base, generate_uuid, enum_column


# ============================================================================
# ENUMS
# ============================================================================

class EscrowStatusDB(str, enum.Enum):
    ACTIVE = "active"
    RELEASED = "released"
    REFUNDED = "refunded"
    SPLIT = "split"


class CampaignStatusDB(str, enum.Enum):
    OPEN = "open"              # Open for bids
    PENDING = "pending"        # Bids / invites awaiting the brand
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    DRAFT_SUBMITTED = "draft_submitted"
    REVISION_REQUESTED = "revision_requested"
    DRAFT_APPROVED = "draft_approved"
    PUBLISHED = "published"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class BidStatusDB(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class DisputeStatusDB(str, enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


# ============================================================================
# ESCROW
# ============================================================================

class EscrowHold(Base):
    """Funds reserved against one campaign or order."""
    __tablename__ = "escrow_holds"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), nullable=False, index=True)  # Campaign or order id
    payer_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    payee_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True)  # Set on release / split

    amount = Column(Integer, nullable=False)  # In cents
    status = enum_column(EscrowStatusDB, "escrowstatusdb", nullable=False, default=EscrowStatusDB.ACTIVE)

    idempotency_key = Column(String(255), unique=True, nullable=False)
    terminal_idempotency_key = Column(String(255), unique=True, nullable=True)

    locked_at = Column(DateTime)
    auto_release_at = Column(DateTime, index=True)  # ESCROW_AUTO_RELEASE_DAYS from locked_at
    terminated_at = Column(DateTime)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}


# ============================================================================
# CAMPAIGN
# ============================================================================

class Campaign(Base):
    """Marketing campaign between a brand and an influencer."""
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    brand_id = Column(String(36), nullable=False, index=True)  # Brand account id
    influencer_id = Column(String(36), nullable=True, index=True)  # Set when a bid is accepted
    escrow_hold_id = Column(String(36), ForeignKey("escrow_holds.id"), nullable=True)

    title = Column(String(255))
    description = Column(Text)
    budget = Column(Integer, nullable=False, default=0)  # Total budget in cents
    agreed_amount = Column(Integer)  # Accepted bid amount, locked in escrow

    status = enum_column(CampaignStatusDB, "campaignstatusdb", nullable=False, default=CampaignStatusDB.OPEN)
    status_before_dispute = Column(String(30))  # Restored when a dispute is closed

    accepted_at = Column(DateTime)
    started_at = Column(DateTime)
    draft_submitted_at = Column(DateTime)
    draft_approved_at = Column(DateTime)
    published_at = Column(DateTime)
    disputed_at = Column(DateTime)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    bids = relationship("Bid", back_populates="campaign", order_by="Bid.created_at")
    disputes = relationship("Dispute", back_populates="campaign")
    escrow_hold = relationship("EscrowHold", foreign_keys=[escrow_hold_id])

    __mapper_args__ = {"version_id_col": version}


# ============================================================================
# BID
# ============================================================================

class Bid(Base):
    """Influencer bids (or brand invites) on campaigns."""
    __tablename__ = "bids"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    influencer_id = Column(String(36), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # Bid amount in cents
    proposal = Column(Text)  # Cover letter / pitch
    invited = Column(Boolean, default=False)  # Created by the brand as a direct offer

    status = enum_column(BidStatusDB, "bidstatusdb", nullable=False, default=BidStatusDB.PENDING)

    accepted_at = Column(DateTime)
    rejected_at = Column(DateTime)
    withdrawn_at = Column(DateTime)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    campaign = relationship("Campaign", back_populates="bids")

    __mapper_args__ = {"version_id_col": version}


# ============================================================================
# DISPUTE
# ============================================================================

class Dispute(Base):
    """Dispute raised against a funded campaign."""
    __tablename__ = "disputes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    raised_by = Column(String(36), nullable=False)

    reason = Column(Text, nullable=False)
    status = enum_column(DisputeStatusDB, "disputestatusdb", nullable=False, default=DisputeStatusDB.OPEN)

    resolution = Column(Text)
    refund_percentage = Column(Integer)  # 0 = full release, 100 = full refund
    resolved_in_favor_of = Column(String(36), nullable=True)
    resolved_by = Column(String(36), nullable=True)  # Admin
    resolved_at = Column(DateTime)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    campaign = relationship("Campaign", back_populates="disputes")

    __mapper_args__ = {"version_id_col": version}


# ============================================================================
# NOTIFICATION
# ============================================================================

class Notification(Base):
    """Outbox of emitted events. Delivery happens outside the engine."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=False, index=True)

    type = Column(String(50), nullable=False)  # campaign.accepted, dispute.resolved, etc.
    title = Column(String(200), nullable=False)
    message = Column(Text)
    data = Column(JSON)  # Additional context (campaign_id, amount, etc.)

    read = Column(Boolean, default=False)
    delivered_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
