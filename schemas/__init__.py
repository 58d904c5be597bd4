# Schemas module for Dexter Settlement API
# Organizes all Pydantic schemas in a modular structure

from schemas.marketplace import (
    # Enums
    PartyType,
    CampaignStatus,
    BidStatus,
    TransactionType,
    TransactionStatus,
    EscrowStatus,
    DisputeStatus,
    WithdrawalStatus,

    # Wallet schemas
    WalletResponse,
    DepositRequest,
    DepositInitResponse,
    WithdrawRequest,
    WithdrawalResponse,
    WithdrawalReject,
    WithdrawalListResponse,
    TransactionResponse,
    EscrowHoldResponse,
    EscrowHoldListResponse,

    # Campaign schemas
    CampaignCreate,
    CampaignResponse,

    # Bid schemas
    BidCreate,
    InviteCreate,
    BidResponse,
    BidListResponse,

    # Dispute schemas
    DisputeCreate,
    DisputeResponse,
    DisputeResolve,
    DisputeClose,
    DisputeListResponse,

    # Notification schemas
    NotificationResponse,
)

from schemas.affiliate import (
    CommissionType,
    OrderFulfill,
    OrderResponse,
)

__all__ = [
    # Enums
    "PartyType",
    "CampaignStatus",
    "BidStatus",
    "TransactionType",
    "TransactionStatus",
    "EscrowStatus",
    "DisputeStatus",
    "WithdrawalStatus",
    "CommissionType",

    # Wallet
    "WalletResponse",
    "DepositRequest",
    "DepositInitResponse",
    "WithdrawRequest",
    "WithdrawalResponse",
    "WithdrawalReject",
    "WithdrawalListResponse",
    "TransactionResponse",
    "EscrowHoldResponse",
    "EscrowHoldListResponse",

    # Campaign
    "CampaignCreate",
    "CampaignResponse",

    # Bid
    "BidCreate",
    "InviteCreate",
    "BidResponse",
    "BidListResponse",

    # Dispute
    "DisputeCreate",
    "DisputeResponse",
    "DisputeResolve",
    "DisputeClose",
    "DisputeListResponse",

    # Notification
    "NotificationResponse",

    # Affiliate
    "OrderFulfill",
    "OrderResponse",
]
