# Bids Router for Dexter Marketplace
# Accepting a bid locks the agreed amount in escrow

from fastapi import APIRouter, Depends

from auth.decorators import require_permission
from auth.dependencies import Caller, get_current_caller
from auth.roles import Permission
from schemas.marketplace import BidResponse
from services.engine import SettlementEngine, get_engine

router = APIRouter(prefix="/bids", tags=["Bids"])


@router.get("/{bid_id}", response_model=BidResponse)
async def get_bid(
    bid_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(get_current_caller),
):
    return engine.get_bid(bid_id)


@router.post("/{bid_id}/accept", response_model=BidResponse)
async def accept_bid(
    bid_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(get_current_caller),
):
    """
    Accept a bid (brand) or an invite (influencer).
    Locks the bid amount from the brand's wallet and rejects the other pending bids.
    """
    return engine.accept_bid(bid_id, caller.id, caller.is_admin)


@router.post("/{bid_id}/reject", response_model=BidResponse)
async def reject_bid(
    bid_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(get_current_caller),
):
    return engine.reject_bid(bid_id, caller.id, caller.is_admin)


@router.post("/{bid_id}/withdraw", response_model=BidResponse)
async def withdraw_bid(
    bid_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.PLACE_BIDS)),
):
    return engine.withdraw_bid(bid_id, caller.id)
