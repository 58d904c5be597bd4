# Disputes Router for Dexter Marketplace
# Handles dispute resolution for campaigns

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from auth.decorators import require_admin, require_permission
from auth.dependencies import Caller, get_current_caller
from auth.roles import Permission
from database.marketplace_models import DisputeStatusDB
from schemas.marketplace import (
    DisputeClose,
    DisputeCreate,
    DisputeListResponse,
    DisputeResolve,
    DisputeResponse,
)
from services.engine import SettlementEngine, get_engine

router = APIRouter(prefix="/disputes", tags=["Disputes"])


# ============================================================================
# USER ENDPOINTS
# ============================================================================

@router.post("", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def create_dispute(
    dispute_data: DisputeCreate,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.RAISE_DISPUTES)),
):
    """
    Raise a dispute for a campaign.
    Escrow stays frozen until an admin resolves or closes it.
    """
    return engine.raise_dispute(dispute_data.campaign_id, caller.id, dispute_data.reason, caller.is_admin)


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(get_current_caller),
):
    return engine.get_dispute(dispute_id)


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@router.get("", response_model=DisputeListResponse)
async def list_disputes(
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_admin()),
    status_filter: Optional[DisputeStatusDB] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Admin dispute queue, oldest first."""
    disputes = engine.list_disputes(status_filter, limit, offset)
    return {"disputes": disputes, "total": len(disputes)}


@router.post("/{dispute_id}/review", response_model=DisputeResponse)
async def start_review(
    dispute_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_admin()),
):
    """Mark dispute as under review."""
    return engine.start_review(dispute_id, caller.id)


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: str,
    resolve_data: DisputeResolve,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_admin()),
):
    """
    Resolve a dispute.
    Splits the escrow: refund_percentage to the brand, the rest to the influencer.
    """
    return engine.resolve_dispute(
        dispute_id,
        resolve_data.resolution,
        resolve_data.refund_percentage,
        resolve_data.resolved_in_favor_of,
        caller.id,
    )


@router.post("/{dispute_id}/close", response_model=DisputeResponse)
async def close_dispute(
    dispute_id: str,
    close_data: DisputeClose,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_admin()),
):
    """Close a dispute without resolution (e.g., invalid dispute)."""
    return engine.close_dispute(dispute_id, close_data.reason, caller.id)
