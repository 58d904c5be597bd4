# FastAPI Server for the Dexter Settlement Engine

import logging
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.app_config import AUTO_RELEASE_IN_API, AUTO_RELEASE_INTERVAL_MINUTES
from core.errors import SettlementError
from core.paystack_service import PaymentGatewayError
from database.config import init_db

# Import settlement routers
from routers import (
    wallet_router,
    campaigns_router,
    bids_router,
    disputes_router,
    orders_router,
    notifications_router,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Dexter Settlement API",
    description="Wallets, escrow, campaign payouts, disputes and affiliate commissions",
    version="1.0.0"
)


@app.on_event("startup")
def startup_event():
    # Initialize database tables using SQLAlchemy create_all
    # Alembic migrations remain the source of truth in production
    init_db()

    if not AUTO_RELEASE_IN_API:
        return

    # Initialize Scheduler for escrow auto-release
    from apscheduler.schedulers.background import BackgroundScheduler
    from services.engine import SettlementEngine

    def scheduled_auto_release():
        logger.info("Running scheduled escrow auto-release...")
        try:
            SettlementEngine().run_auto_release()
        except Exception:
            logger.exception("Scheduled escrow auto-release failed")

    scheduler = BackgroundScheduler()
    scheduler.add_job(scheduled_auto_release, 'interval', minutes=AUTO_RELEASE_INTERVAL_MINUTES)
    scheduler.start()
    logger.info(f"Scheduler started: escrow auto-release every {AUTO_RELEASE_INTERVAL_MINUTES} minutes")


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} ({exc.detail})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PaymentGatewayError)
async def gateway_error_handler(request: Request, exc: PaymentGatewayError):
    logger.error(f"{request.method} {request.url.path} gateway failure: {exc}")
    return JSONResponse(status_code=502, content={"error": "payment_gateway_error", "detail": str(exc)})


# CORS Setup - Allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Required when using "*"
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SETTLEMENT ROUTERS (v2 API)
# ============================================================================
app.include_router(wallet_router, prefix="/api/v2")
app.include_router(campaigns_router, prefix="/api/v2")
app.include_router(bids_router, prefix="/api/v2")
app.include_router(disputes_router, prefix="/api/v2")
app.include_router(orders_router, prefix="/api/v2")
app.include_router(notifications_router, prefix="/api/v2")


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
