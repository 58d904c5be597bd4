# Orders Router for Affiliate Commerce
# Pays affiliate commissions for fulfilled orders

from fastapi import APIRouter, Depends

from auth.decorators import AuthError, require_permission
from auth.dependencies import Caller, get_current_caller
from auth.roles import Permission
from schemas.affiliate import OrderFulfill, OrderResponse
from services.engine import SettlementEngine, get_engine

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("/fulfill", response_model=OrderResponse)
async def fulfill_order(
    order_data: OrderFulfill,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.FULFILL_ORDERS)),
):
    """
    Mark an order fulfilled and pay the affiliate commission from the brand's wallet.
    Calling this again for the same order returns the original breakdown.
    """
    if not caller.is_admin and order_data.brand_id != caller.id:
        raise AuthError("You can only fulfill orders for your own products")

    return engine.fulfill_order(
        order_data.order_id,
        order_data.product_id,
        order_data.affiliate_id,
        order_data.brand_id,
        order_data.gross_amount,
        order_data.commission_type.value,
        order_data.commission_rate_or_fixed,
        order_data.platform_fee_type.value,
        order_data.platform_fee_rate_or_fixed,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(get_current_caller),
):
    order = engine.get_order(order_id)
    if not caller.is_admin and caller.id not in (order.brand_id, order.affiliate_id):
        raise AuthError("You don't have access to this order")
    return order
