# Wallet Router for Dexter Marketplace
# Handles wallet balances, deposits, withdrawals, and transaction history

import json
import logging

from fastapi import APIRouter, Depends, Header, Query, Request, status
from typing import List, Optional

from auth.decorators import AuthError, require_admin, require_permission
from auth.dependencies import Caller, get_current_caller
from auth.roles import Permission, UserType
from config.app_config import PAYSTACK_SECRET_KEY
from core.paystack_service import PaystackWebhookHandler
from database.marketplace_models import EscrowStatusDB
from database.models import PartyTypeDB
from schemas.marketplace import (
    WalletResponse,
    DepositRequest,
    DepositInitResponse,
    WithdrawRequest,
    WithdrawalResponse,
    WithdrawalReject,
    WithdrawalListResponse,
    TransactionResponse,
    EscrowHoldListResponse,
)
from services.engine import SettlementEngine, get_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallet", tags=["Wallet"])

PARTY_FOR_ROLE = {
    UserType.BRAND: PartyTypeDB.BRAND,
    UserType.INFLUENCER: PartyTypeDB.INFLUENCER,
}


# ============================================================================
# WALLET ENDPOINTS
# ============================================================================

@router.get("", response_model=WalletResponse)
async def get_wallet(
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.VIEW_OWN_WALLET)),
):
    """
    Get current user's wallet balance and stats.
    Creates wallet if it doesn't exist.
    """
    return engine.open_account(caller.id, PARTY_FOR_ROLE.get(caller.user_type, PartyTypeDB.BRAND))


@router.get("/transactions", response_model=List[TransactionResponse])
async def get_transactions(
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.VIEW_OWN_TRANSACTIONS)),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Ledger rows for the current user's account, newest first."""
    return engine.history(caller.id, limit, offset)


@router.get("/reconcile")
async def reconcile_wallet(
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.VIEW_OWN_WALLET)),
    account_id: Optional[str] = Query(None, description="Admin only: account to check"),
):
    """Rebuild the balance from the ledger and compare it with the stored one."""
    target = caller.id
    if account_id and account_id != caller.id:
        if not caller.is_admin:
            raise AuthError("Only admins can reconcile other accounts")
        target = account_id
    return engine.reconcile(target)


@router.get("/escrow", response_model=EscrowHoldListResponse)
async def get_escrow_holds(
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.VIEW_OWN_WALLET)),
    status_filter: Optional[EscrowStatusDB] = Query(None, alias="status"),
):
    """Escrow holds the current user funds or is owed from."""
    holds = engine.account_holds(caller.id, status_filter)
    total_held = sum(h.amount for h in holds if h.status == EscrowStatusDB.ACTIVE)
    return {"escrow_holds": holds, "total_held": total_held}


# ============================================================================
# DEPOSITS
# ============================================================================

@router.post("/deposit", response_model=DepositInitResponse)
async def initiate_deposit(
    deposit_data: DepositRequest,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.DEPOSIT_FUNDS)),
):
    """
    Initiate a deposit to wallet via Paystack.
    Returns Paystack authorization URL.
    """
    return engine.initiate_deposit(
        caller.id,
        deposit_data.amount,
        deposit_data.email,
        PARTY_FOR_ROLE.get(caller.user_type, PartyTypeDB.BRAND),
        deposit_data.callback_url,
    )


@router.get("/deposit/verify/{reference}")
async def verify_deposit(
    reference: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(get_current_caller),
):
    """Check a deposit with Paystack and credit the wallet if it succeeded."""
    row = engine.verify_deposit(reference)
    if row is None:
        return {"status": "failed", "reference": reference}
    return {"status": "success", "reference": reference, "transaction_id": row.id, "amount": row.amount}


@router.post("/webhook/paystack", status_code=status.HTTP_200_OK)
async def paystack_webhook(
    request: Request,
    engine: SettlementEngine = Depends(get_engine),
    x_paystack_signature: Optional[str] = Header(None),
):
    """Receive charge and transfer events from Paystack."""
    payload = await request.body()
    if not PaystackWebhookHandler.verify_webhook(payload, x_paystack_signature, PAYSTACK_SECRET_KEY):
        logger.warning("Rejected Paystack webhook with an invalid signature")
        raise AuthError("Invalid signature", status_code=status.HTTP_400_BAD_REQUEST)

    engine.handle_gateway_event(json.loads(payload))
    return {"status": "ok"}


# ============================================================================
# WITHDRAWALS
# ============================================================================

@router.post("/withdraw", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
async def initiate_withdrawal(
    withdraw_data: WithdrawRequest,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.WITHDRAW_FUNDS)),
):
    """
    Request a payout of available funds.
    The amount is reserved in the held balance until an admin approves or rejects it.
    """
    return engine.initiate_withdrawal(caller.id, withdraw_data.amount, withdraw_data.recipient_code)


@router.get("/withdrawals", response_model=WithdrawalListResponse)
async def get_withdrawals(
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_permission(Permission.VIEW_OWN_TRANSACTIONS)),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """The current user's payout requests, newest first."""
    withdrawals = engine.withdrawals_for(caller.id, limit, offset)
    return {"withdrawals": withdrawals, "total": len(withdrawals)}


# ============================================================================
# ADMIN WITHDRAWAL QUEUE
# ============================================================================

@router.get("/admin/pending-withdrawals", response_model=WithdrawalListResponse)
async def get_pending_withdrawals(
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_admin()),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Withdrawals waiting for review, oldest first."""
    withdrawals = engine.pending_withdrawals(limit, offset)
    return {"withdrawals": withdrawals, "total": len(withdrawals)}


@router.post("/admin/withdrawals/{withdrawal_id}/approve", response_model=WithdrawalResponse)
async def approve_withdrawal(
    withdrawal_id: str,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_admin()),
):
    """
    Approve a pending withdrawal and send the Paystack transfer.
    Approving a withdrawal that is already processing resends the same transfer.
    """
    return engine.approve_withdrawal(withdrawal_id, caller.id)


@router.post("/admin/withdrawals/{withdrawal_id}/reject", response_model=WithdrawalResponse)
async def reject_withdrawal(
    withdrawal_id: str,
    reject_data: WithdrawalReject,
    engine: SettlementEngine = Depends(get_engine),
    caller: Caller = Depends(require_admin()),
):
    """Reject a pending withdrawal and return the reserved funds to the wallet."""
    return engine.reject_withdrawal(withdrawal_id, caller.id, reject_data.reason)
