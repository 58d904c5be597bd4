# Campaigns Router for Dexter Marketplace
# Open campaigns, bidding and the work lifecycle that moves escrowed money

from fastapi import APIRouter, Depends, status

from auth.decorators import AuthError, require_permission, require_user_type
from auth.dependencies import Caller, get_current_caller
from auth.roles import Permission, UserType
from schemas.marketplace import (
    BidCreate,
    BidListResponse,
    BidResponse,
    CampaignCreate,
    CampaignResponse,
    EscrowHoldResponse,
    InviteCreate,
)
from services.engine import SettlementEngine, get_engine

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


# ============================================================================
# CAMPAIGNS
# ============================================================================

@router.post("", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    campaign_data: CampaignCreate,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.MANAGE_CAMPAIGNS)),
):
    """Open a campaign for influencer bids. No money moves until a bid is accepted."""
    return engine.create_campaign(caller.id, campaign_data.title, campaign_data.budget, campaign_data.description)


@router.get("/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(get_current_caller),
):
    return engine.get_campaign(campaign_id)


# ============================================================================
# BIDDING
# ============================================================================

@router.post("/{campaign_id}/bids", response_model=BidResponse, status_code=status.HTTP_201_CREATED)
async def place_bid(
    campaign_id: str,
    bid_data: BidCreate,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.PLACE_BIDS)),
):
    """Submit a bid on an open campaign."""
    return engine.place_bid(campaign_id, caller.id, bid_data.amount, bid_data.proposal)


@router.post("/{campaign_id}/invites", response_model=BidResponse, status_code=status.HTTP_201_CREATED)
async def invite_influencer(
    campaign_id: str,
    invite_data: InviteCreate,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.MANAGE_CAMPAIGNS)),
):
    """Send a direct offer; the influencer accepts or declines it."""
    return engine.invite(
        campaign_id, caller.id, invite_data.influencer_id, invite_data.amount,
        invite_data.proposal, caller.is_admin,
    )


@router.get("/{campaign_id}/bids", response_model=BidListResponse)
async def get_pending_bids(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.MANAGE_CAMPAIGNS)),
):
    """Pending bids on a campaign (owner or admin)."""
    campaign = engine.get_campaign(campaign_id)
    if not caller.is_admin and campaign.brand_id != caller.id:
        raise AuthError("You can only view bids on your own campaigns")
    bids = engine.pending_bids(campaign_id)
    return {"bids": bids, "total": len(bids)}


@router.get("/{campaign_id}/escrow", response_model=EscrowHoldResponse)
async def get_campaign_escrow(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(get_current_caller),
):
    """The escrow hold funding a campaign, including settled ones."""
    campaign = engine.get_campaign(campaign_id)
    if not caller.is_admin and caller.id not in (campaign.brand_id, campaign.influencer_id):
        raise AuthError("You don't have access to this campaign's escrow")
    return engine.campaign_hold(campaign_id)


# ============================================================================
# WORK LIFECYCLE
# ============================================================================

@router.post("/{campaign_id}/start", response_model=CampaignResponse)
async def start_work(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_user_type(UserType.INFLUENCER)),
):
    return engine.start(campaign_id, caller.id, caller.is_admin)


@router.post("/{campaign_id}/submit-draft", response_model=CampaignResponse)
async def submit_draft(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.SUBMIT_DELIVERABLES)),
):
    return engine.submit_draft(campaign_id, caller.id, caller.is_admin)


@router.post("/{campaign_id}/request-revision", response_model=CampaignResponse)
async def request_revision(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.MANAGE_CAMPAIGNS)),
):
    return engine.request_revision(campaign_id, caller.id, caller.is_admin)


@router.post("/{campaign_id}/approve-draft", response_model=CampaignResponse)
async def approve_draft(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.MANAGE_CAMPAIGNS)),
):
    return engine.approve_draft(campaign_id, caller.id, caller.is_admin)


@router.post("/{campaign_id}/publish", response_model=CampaignResponse)
async def publish(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.SUBMIT_DELIVERABLES)),
):
    return engine.publish(campaign_id, caller.id, caller.is_admin)


@router.post("/{campaign_id}/complete", response_model=CampaignResponse)
async def complete_campaign(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.MANAGE_CAMPAIGNS)),
):
    """Approve the published work and release escrow to the influencer."""
    return engine.complete(campaign_id, caller.id, caller.is_admin)


@router.post("/{campaign_id}/cancel", response_model=CampaignResponse)
async def cancel_campaign(
    campaign_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.MANAGE_CAMPAIGNS)),
):
    """Cancel before work starts; any escrow is refunded in full."""
    return engine.cancel(campaign_id, caller.id, caller.is_admin)
