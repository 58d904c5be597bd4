# Ledger Service for Dexter Marketplace
# Single source of truth for money: every balance change goes through post()

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from config.app_config import PLATFORM_ACCOUNT_ID, CURRENCY
from core.errors import (
    DuplicateTransaction, InsufficientFunds, LedgerInvariantViolation,
    UnknownAccount, ValidationError,
)
from database.models import (
    Account, Transaction, PartyTypeDB, TransactionTypeDB, TransactionStatusDB,
)

logger = logging.getLogger(__name__)

# Postings that only move money between accounts (or between one account's
# available and held balances) and must net to zero
INTERNAL_TYPES = frozenset({
    TransactionTypeDB.ESCROW_LOCK,
    TransactionTypeDB.ESCROW_RELEASE,
    TransactionTypeDB.ESCROW_REFUND,
    TransactionTypeDB.PLATFORM_FEE,
    TransactionTypeDB.AFFILIATE_COMMISSION,
    TransactionTypeDB.WITHDRAWAL_HOLD,
    TransactionTypeDB.WITHDRAWAL_RELEASE,
})


@dataclass
class Entry:
    """One leg of a posting: the change to a single account."""
    account_id: str
    available_delta: int = 0
    held_delta: int = 0
    type: Optional[TransactionTypeDB] = None  # Defaults to the request type
    amount: Optional[int] = None  # Only needed for zero-effect pending/failed rows

    @property
    def moved(self) -> int:
        if self.amount is not None:
            return self.amount
        return max(abs(self.available_delta), abs(self.held_delta))


@dataclass
class TransactionRequest:
    type: TransactionTypeDB
    idempotency_key: str
    entries: List[Entry] = field(default_factory=list)
    related_entity_id: Optional[str] = None
    description: Optional[str] = None
    external_ref: Optional[str] = None
    status: TransactionStatusDB = TransactionStatusDB.SUCCESS


class LedgerService:
    """
    Owns account balances and the append-only transaction log.

    All writes happen in the caller's session; the unit of work commits.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def open_account(self, account_id: str, party_type: PartyTypeDB = PartyTypeDB.BRAND) -> Account:
        """Get or create an account. Accounts appear on first financial activity."""
        account = self.db.get(Account, account_id)
        if account:
            return account

        account = Account(
            id=account_id,
            party_type=party_type,
            available_balance=0,
            held_balance=0,
            total_earned=0,
            total_spent=0,
            currency=CURRENCY,
        )
        self.db.add(account)
        self.db.flush()
        logger.info(f"Opened {party_type.value} account {account_id}")
        return account

    def platform_account(self) -> Account:
        return self.open_account(PLATFORM_ACCOUNT_ID, PartyTypeDB.PLATFORM)

    def get_account(self, account_id: str) -> Account:
        account = self.db.get(Account, account_id)
        if not account:
            raise UnknownAccount(account_id)
        return account

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def find_posting(self, idempotency_key: str) -> List[Transaction]:
        return self.db.query(Transaction).filter(
            Transaction.idempotency_key == idempotency_key
        ).order_by(Transaction.leg).all()

    def post(self, request: TransactionRequest) -> List[Transaction]:
        """
        Atomically validate and apply one posting.

        Writes one immutable Transaction per leg and updates the affected
        balances in the same flush. Returns the legs in order.

        Raises:
            DuplicateTransaction: the key was already posted with the same legs
                (carries the original rows; callers treat it as success)
            ValidationError: malformed request, or key reused with other legs
            UnknownAccount: a leg references a missing account
            InsufficientFunds: a debit would make available_balance negative
            LedgerInvariantViolation: unbalanced posting or negative held balance
        """
        if not request.idempotency_key:
            raise ValidationError("An idempotency key is required for every posting")

        existing = self.find_posting(request.idempotency_key)
        if existing:
            if self._matches(existing, request):
                raise DuplicateTransaction(request.idempotency_key, existing)
            raise ValidationError(
                f"Idempotency key {request.idempotency_key} was already used for a different transaction"
            )

        self._validate_shape(request)
        accounts = OrderedDict((e.account_id, self.get_account(e.account_id)) for e in request.entries)

        if request.status == TransactionStatusDB.SUCCESS:
            self._check_balanced(request)
            self._apply(request, accounts)

        rows = []
        for leg, entry in enumerate(request.entries):
            row = Transaction(
                account_id=entry.account_id,
                type=entry.type or request.type,
                status=request.status,
                amount=entry.moved,
                available_delta=entry.available_delta if request.status == TransactionStatusDB.SUCCESS else 0,
                held_delta=entry.held_delta if request.status == TransactionStatusDB.SUCCESS else 0,
                idempotency_key=request.idempotency_key,
                leg=leg,
                related_entity_id=request.related_entity_id,
                external_ref=request.external_ref,
                description=request.description,
            )
            self.db.add(row)
            rows.append(row)

        self.db.flush()
        logger.info(
            f"Posted {request.type.value} [{request.status.value}] key={request.idempotency_key} "
            f"legs={[(r.account_id, r.available_delta, r.held_delta) for r in rows]}"
        )
        return rows

    def post_or_replay(self, request: TransactionRequest) -> List[Transaction]:
        """post(), returning the original rows when the key was already applied."""
        try:
            return self.post(request)
        except DuplicateTransaction as dup:
            logger.info(f"Replayed idempotency key {dup.idempotency_key}")
            return dup.transactions

    def _validate_shape(self, request: TransactionRequest):
        if not request.entries:
            raise ValidationError("A posting needs at least one entry")
        for entry in request.entries:
            for value in (entry.available_delta, entry.held_delta):
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValidationError("Amounts must be integer minor currency units")
            if entry.moved <= 0:
                raise ValidationError("Every entry must move a positive amount")

    def _check_balanced(self, request: TransactionRequest):
        net = sum(e.available_delta + e.held_delta for e in request.entries)

        if request.type in INTERNAL_TYPES:
            if net != 0:
                raise LedgerInvariantViolation(
                    f"Unbalanced {request.type.value} posting {request.idempotency_key}: net {net}"
                )
            return

        if len({e.account_id for e in request.entries}) != 1:
            raise LedgerInvariantViolation(
                f"{request.type.value} posting {request.idempotency_key} must touch exactly one account"
            )
        if request.type == TransactionTypeDB.DEPOSIT:
            if any(e.held_delta for e in request.entries) or net <= 0:
                raise LedgerInvariantViolation(f"Deposit {request.idempotency_key} must credit the available balance")
        elif request.type == TransactionTypeDB.WITHDRAWAL:
            # Reserved payouts settle out of the held balance
            if any(e.available_delta > 0 or e.held_delta > 0 for e in request.entries) or net >= 0:
                raise LedgerInvariantViolation(f"Withdrawal {request.idempotency_key} must debit the account")

    def _apply(self, request: TransactionRequest, accounts: Dict[str, Account]):
        deltas = OrderedDict()
        for entry in request.entries:
            available, held = deltas.get(entry.account_id, (0, 0))
            deltas[entry.account_id] = (available + entry.available_delta, held + entry.held_delta)

        # Validate every account before touching any of them
        for account_id, (available, held) in deltas.items():
            account = accounts[account_id]
            if account.available_balance + available < 0:
                raise InsufficientFunds(account_id, account.available_balance, -available)
            if account.held_balance + held < 0:
                raise LedgerInvariantViolation(
                    f"Posting {request.idempotency_key} would leave held balance of {account_id} negative"
                )

        for account_id, (available, held) in deltas.items():
            account = accounts[account_id]
            account.available_balance += available
            account.held_balance += held

            if request.type in INTERNAL_TYPES and request.type != TransactionTypeDB.ESCROW_LOCK:
                net = available + held
                if net > 0 and request.type != TransactionTypeDB.ESCROW_REFUND:
                    account.total_earned += net
                elif net < 0:
                    account.total_spent += -net

    @staticmethod
    def _matches(existing: List[Transaction], request: TransactionRequest) -> bool:
        if len(existing) != len(request.entries):
            return False
        for row, entry in zip(existing, request.entries):
            if row.account_id != entry.account_id or row.amount != entry.moved:
                return False
            if row.type != (entry.type or request.type):
                return False
        return True

    # ------------------------------------------------------------------
    # Deposits / withdrawals
    # ------------------------------------------------------------------

    def deposit(self, account_id: str, amount: int, idempotency_key: str, external_ref: str = None) -> Transaction:
        return self.post_or_replay(TransactionRequest(
            type=TransactionTypeDB.DEPOSIT,
            idempotency_key=idempotency_key,
            entries=[Entry(account_id, available_delta=amount)],
            external_ref=external_ref,
            description=f"Wallet deposit of {amount}",
        ))[0]

    def withdraw(self, account_id: str, amount: int, idempotency_key: str, external_ref: str = None) -> Transaction:
        return self.post_or_replay(TransactionRequest(
            type=TransactionTypeDB.WITHDRAWAL,
            idempotency_key=idempotency_key,
            entries=[Entry(account_id, available_delta=-amount)],
            external_ref=external_ref,
            description=f"Wallet withdrawal of {amount}",
        ))[0]

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def history(self, account_id: str, limit: int = 50, offset: int = 0) -> List[Transaction]:
        self.get_account(account_id)
        return self.db.query(Transaction).filter(
            Transaction.account_id == account_id
        ).order_by(Transaction.created_at.desc(), Transaction.leg.desc()).offset(offset).limit(limit).all()

    def reconcile(self, account_id: str) -> dict:
        """Rebuild balances from successful rows; raise if they disagree with the account."""
        account = self.get_account(account_id)
        available, held = self.db.query(
            func.coalesce(func.sum(Transaction.available_delta), 0),
            func.coalesce(func.sum(Transaction.held_delta), 0),
        ).filter(
            Transaction.account_id == account_id,
            Transaction.status == TransactionStatusDB.SUCCESS,
        ).one()

        if int(available) != account.available_balance or int(held) != account.held_balance:
            raise LedgerInvariantViolation(
                f"Account {account_id} does not reconcile: ledger ({available}, {held}) "
                f"vs balance ({account.available_balance}, {account.held_balance})"
            )
        return {"account_id": account_id, "available_balance": int(available), "held_balance": int(held)}

    def total_balance(self) -> int:
        """Sum of all balances on every account."""
        available, held = self.db.query(
            func.coalesce(func.sum(Account.available_balance), 0),
            func.coalesce(func.sum(Account.held_balance), 0),
        ).one()
        return int(available) + int(held)
