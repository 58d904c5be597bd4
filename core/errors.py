# Settlement Errors for Dexter Marketplace
# Typed business errors raised by the services and mapped to HTTP responses in server.py

import logging
from typing import List, Optional

logger = logging.getLogger(__name__)


class SettlementError(Exception):
    """Base class for every error the settlement engine surfaces to callers."""

    code = "settlement_error"
    status_code = 400

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail}


class InsufficientFunds(SettlementError):
    code = "insufficient_funds"
    status_code = 400

    def __init__(self, account_id: str, available: int, requested: int):
        super().__init__(
            f"Insufficient balance on account {account_id}. "
            f"Available: {available}, requested: {requested}"
        )
        self.account_id = account_id
        self.available = available
        self.requested = requested


class UnknownAccount(SettlementError):
    code = "unknown_account"
    status_code = 404

    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class NotFound(SettlementError):
    code = "not_found"
    status_code = 404


class InvalidTransition(SettlementError):
    code = "invalid_transition"
    status_code = 409


class InvalidHoldState(SettlementError):
    code = "invalid_hold_state"
    status_code = 409


class DuplicateTransaction(SettlementError):
    """
    An idempotency key was replayed.
    Not a failure: callers return `transactions` as the original result.
    """

    code = "duplicate_transaction"
    status_code = 200

    def __init__(self, idempotency_key: str, transactions: Optional[List] = None):
        super().__init__(f"Idempotency key {idempotency_key} already posted")
        self.idempotency_key = idempotency_key
        self.transactions = transactions or []


class ConcurrentModification(SettlementError):
    code = "concurrent_modification"
    status_code = 409


class ValidationError(SettlementError):
    code = "validation_error"
    status_code = 422


class PermissionDenied(SettlementError):
    code = "permission_denied"
    status_code = 403


class LedgerInvariantViolation(SettlementError):
    """Negative balance or unbalanced posting. Aborts the unit of work; never persisted."""

    code = "ledger_invariant_violation"
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        logger.critical(f"LEDGER INVARIANT VIOLATION: {detail}")
