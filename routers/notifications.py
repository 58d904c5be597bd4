# Notifications Router for Dexter Marketplace
# Read side of the notification outbox

from fastapi import APIRouter, Depends, Query
from typing import List

from auth.decorators import require_permission
from auth.dependencies import Caller
from auth.roles import Permission
from core.errors import NotFound
from schemas.marketplace import NotificationResponse
from services.engine import SettlementEngine, get_engine

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def get_notifications(
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.VIEW_NOTIFICATIONS)),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
):
    """Get the current user's notifications, newest first."""
    return engine.notifications(caller.id, unread_only, limit)


@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.VIEW_NOTIFICATIONS)),
):
    """Mark a single notification as read."""
    if not engine.mark_notification_read(notification_id, caller.id):
        raise NotFound(f"Notification {notification_id} not found")
    return {"message": "Notification marked as read"}
