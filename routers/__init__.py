# Settlement Routers Module
# Exports all modular API routers for the settlement engine

from routers.wallet import router as wallet_router
from routers.campaigns import router as campaigns_router
from routers.bids import router as bids_router
from routers.disputes import router as disputes_router
from routers.orders import router as orders_router
from routers.notifications import router as notifications_router

__all__ = [
    'wallet_router',
    'campaigns_router',
    'bids_router',
    'disputes_router',
    'orders_router',
    'notifications_router',
]
