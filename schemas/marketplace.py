# Pydantic Schemas for the Settlement API
# Wallets, campaigns, bids, disputes and notifications

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class PartyType(str, Enum):
    BRAND = "brand"
    INFLUENCER = "influencer"
    PLATFORM = "platform"


class CampaignStatus(str, Enum):
    OPEN = "open"
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    DRAFT_SUBMITTED = "draft_submitted"
    REVISION_REQUESTED = "revision_requested"
    DRAFT_APPROVED = "draft_approved"
    PUBLISHED = "published"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class BidStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ESCROW_LOCK = "escrow_lock"
    ESCROW_RELEASE = "escrow_release"
    ESCROW_REFUND = "escrow_refund"
    PLATFORM_FEE = "platform_fee"
    AFFILIATE_COMMISSION = "affiliate_commission"
    WITHDRAWAL_HOLD = "withdrawal_hold"
    WITHDRAWAL_RELEASE = "withdrawal_release"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class EscrowStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"
    REFUNDED = "refunded"
    SPLIT = "split"


class DisputeStatus(str, Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


# ============================================================================
# WALLET SCHEMAS
# ============================================================================

class WalletResponse(BaseModel):
    """Schema for wallet (ledger account) response."""
    id: str
    party_type: PartyType
    available_balance: int
    held_balance: int
    total_earned: int
    total_spent: int
    currency: str

    class Config:
        from_attributes = True


class DepositRequest(BaseModel):
    """Schema for deposit request."""
    amount: int = Field(..., gt=0)  # In cents
    email: str
    callback_url: Optional[str] = None


class DepositInitResponse(BaseModel):
    authorization_url: str
    reference: str


class WithdrawRequest(BaseModel):
    """Schema for withdrawal request."""
    amount: int = Field(..., gt=0)  # In cents
    recipient_code: str  # Paystack transfer recipient (M-Pesa or bank)


class WithdrawalResponse(BaseModel):
    """Schema for a payout request and its review state."""
    id: str
    account_id: str
    amount: int
    recipient_code: str
    payout_ref: str
    status: WithdrawalStatus
    rejection_reason: Optional[str] = None
    failure_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    requested_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WithdrawalReject(BaseModel):
    """Schema for rejecting a pending withdrawal (admin only)."""
    reason: str = Field(..., min_length=1, max_length=2000)


class WithdrawalListResponse(BaseModel):
    withdrawals: List[WithdrawalResponse]
    total: int


class TransactionResponse(BaseModel):
    """Schema for one ledger row."""
    id: str
    account_id: str
    type: TransactionType
    status: TransactionStatus
    amount: int
    available_delta: int
    held_delta: int
    idempotency_key: str
    leg: int
    related_entity_id: Optional[str] = None
    external_ref: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EscrowHoldResponse(BaseModel):
    id: str
    campaign_id: str
    payer_account_id: str
    payee_account_id: Optional[str] = None
    amount: int
    status: EscrowStatus
    locked_at: Optional[datetime] = None
    auto_release_at: Optional[datetime] = None
    terminated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EscrowHoldListResponse(BaseModel):
    escrow_holds: List[EscrowHoldResponse]
    total_held: int  # Sum of active holds, in cents


# ============================================================================
# CAMPAIGN SCHEMAS
# ============================================================================

class CampaignCreate(BaseModel):
    """Schema for opening a campaign to bids."""
    title: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    budget: int = Field(..., gt=0)  # In cents


class CampaignResponse(BaseModel):
    """Schema for campaign response."""
    id: str
    brand_id: str
    influencer_id: Optional[str] = None
    escrow_hold_id: Optional[str] = None

    title: str
    description: Optional[str] = None
    budget: int
    agreed_amount: Optional[int] = None

    status: CampaignStatus

    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    draft_submitted_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# BID SCHEMAS
# ============================================================================

class BidCreate(BaseModel):
    """Schema for an influencer's bid on an open campaign."""
    amount: int = Field(..., gt=0)  # In cents
    proposal: Optional[str] = Field(None, max_length=2000)


class InviteCreate(BaseModel):
    """Schema for a brand inviting an influencer with a direct offer."""
    influencer_id: str
    amount: int = Field(..., gt=0)
    proposal: Optional[str] = Field(None, max_length=2000)


class BidResponse(BaseModel):
    id: str
    campaign_id: str
    influencer_id: str
    amount: int
    proposal: Optional[str] = None
    invited: bool = False
    status: BidStatus
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# DISPUTE SCHEMAS
# ============================================================================

class DisputeCreate(BaseModel):
    """Schema for creating a dispute."""
    campaign_id: str
    reason: str = Field(..., min_length=20, max_length=2000)


class DisputeResponse(BaseModel):
    """Schema for dispute response."""
    id: str
    campaign_id: str
    raised_by: str
    reason: str
    status: DisputeStatus
    resolution: Optional[str] = None
    refund_percentage: Optional[int] = None
    resolved_in_favor_of: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DisputeResolve(BaseModel):
    """Schema for resolving a dispute (admin only)."""
    resolution: str = Field(..., min_length=20, max_length=2000)
    resolved_in_favor_of: str  # account id of brand or influencer
    refund_percentage: int = Field(0, ge=0, le=100)  # 0 = full release, 100 = full refund


class DisputeClose(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class DisputeListResponse(BaseModel):
    disputes: List[DisputeResponse]
    total: int


# ============================================================================
# NOTIFICATION SCHEMAS
# ============================================================================

class NotificationResponse(BaseModel):
    """Schema for notification response."""
    id: str
    type: str
    title: str
    message: str
    data: Optional[dict] = None
    read: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BidListResponse(BaseModel):
    bids: List[BidResponse]
    total: int

    class Config:
        from_attributes = True
