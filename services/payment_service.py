# Payment Service for Dexter Marketplace
# Bridges gateway events (deposits, payouts) to ledger postings

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from config.app_config import MIN_DEPOSIT_AMOUNT_CENTS, MIN_WITHDRAWAL_AMOUNT_CENTS
from core.errors import InvalidTransition, NotFound, ValidationError
from core.paystack_service import PaystackService, PaystackWebhookHandler
from database.models import (
    PartyTypeDB, Transaction, TransactionStatusDB, TransactionTypeDB,
    Withdrawal, WithdrawalStatusDB, generate_uuid,
)
from services.ledger import Entry, LedgerService, TransactionRequest
from services.notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Deposits and withdrawals against the external processor.

    Deposit initiation only records a zero-effect pending row; the money
    arrives when the gateway confirms, keyed by the gateway reference so
    webhook retries are safe. A withdrawal reserves its amount in the held
    balance at request time and leaves it there until the transfer settles,
    fails, or an admin rejects the request.
    """

    def __init__(self, db: Session, gateway: Optional[PaystackService] = None,
                 ledger: Optional[LedgerService] = None):
        self.db = db
        self.gateway = gateway or PaystackService()
        self.ledger = ledger or LedgerService(db)
        self.notifications = NotificationService(db)

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    def initiate_deposit(self, account_id: str, amount: int, email: str,
                         party_type: PartyTypeDB = PartyTypeDB.BRAND,
                         callback_url: Optional[str] = None) -> dict:
        self._validate_amount(amount, MIN_DEPOSIT_AMOUNT_CENTS, "deposit")
        account = self.ledger.open_account(account_id, party_type)

        response = self.gateway.initialize_transaction(
            email=email,
            amount=amount,
            callback_url=callback_url,
            metadata={"type": "wallet_deposit", "account_id": account.id, "amount": amount},
        )
        reference = response["data"]["reference"]

        self.ledger.post(TransactionRequest(
            type=TransactionTypeDB.DEPOSIT,
            idempotency_key=f"deposit_initiated:{reference}",
            entries=[Entry(account.id, amount=amount)],
            external_ref=reference,
            status=TransactionStatusDB.PENDING,
            description=f"Wallet deposit of {PaystackService.format_amount(amount)} initiated",
        ))
        logger.info(f"Deposit of {amount} initiated for {account_id} (ref {reference})")
        return {
            "authorization_url": response["data"]["authorization_url"],
            "reference": reference,
        }

    def on_deposit_confirmed(self, account_id: str, amount: int, external_ref: str) -> Transaction:
        """Gateway confirmed the charge: credit the available balance exactly once."""
        self._validate_amount(amount, 1, "deposit")
        replay = self.ledger.find_posting(f"deposit:{external_ref}")
        if replay:
            return replay[0]
        self.ledger.open_account(account_id)
        row = self.ledger.deposit(account_id, amount, idempotency_key=f"deposit:{external_ref}",
                                  external_ref=external_ref)
        self.notifications.create(
            account_id, NotificationType.DEPOSIT_COMPLETED, "Deposit Received",
            f"{PaystackService.format_amount(amount)} was added to your wallet",
            {"amount": amount, "reference": external_ref, "transaction_id": row.id},
        )
        return row

    def verify_deposit(self, reference: str) -> Optional[Transaction]:
        """Poll the gateway for a deposit the webhook has not confirmed yet."""
        pending = self._initiated_deposit(reference)
        if not pending:
            raise ValidationError(f"No deposit was initiated with reference {reference}")

        verification = self.gateway.verify_transaction(reference)
        data = verification.get("data") or {}
        if verification.get("status") and data.get("status") == "success":
            amount = self._charged_amount(pending, data.get("amount"))
            return self.on_deposit_confirmed(pending.account_id, amount, reference)

        self.ledger.post_or_replay(TransactionRequest(
            type=TransactionTypeDB.DEPOSIT,
            idempotency_key=f"deposit_failed:{reference}",
            entries=[Entry(pending.account_id, amount=pending.amount)],
            external_ref=reference,
            status=TransactionStatusDB.FAILED,
            description="Payment verification failed",
        ))
        logger.warning(f"Deposit {reference} for {pending.account_id} failed verification")
        return None

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    def get_withdrawal(self, withdrawal_id: str) -> Withdrawal:
        withdrawal = self.db.get(Withdrawal, withdrawal_id)
        if not withdrawal:
            raise NotFound(f"Withdrawal {withdrawal_id} not found")
        return withdrawal

    def withdrawal_by_ref(self, payout_ref: str) -> Optional[Withdrawal]:
        return self.db.query(Withdrawal).filter(Withdrawal.payout_ref == payout_ref).first()

    def pending_withdrawals(self, limit: int = 50, offset: int = 0) -> List[Withdrawal]:
        """Review queue for admins, oldest request first."""
        return self.db.query(Withdrawal).filter(
            Withdrawal.status == WithdrawalStatusDB.PENDING
        ).order_by(Withdrawal.requested_at.asc()).offset(offset).limit(limit).all()

    def withdrawals_for(self, account_id: str, limit: int = 50, offset: int = 0) -> List[Withdrawal]:
        return self.db.query(Withdrawal).filter(
            Withdrawal.account_id == account_id
        ).order_by(Withdrawal.requested_at.desc()).offset(offset).limit(limit).all()

    def initiate_withdrawal(self, account_id: str, amount: int, recipient_code: str) -> Withdrawal:
        """
        Reserve a payout and queue it for admin approval.

        The amount moves from available to held right away, so it cannot be
        withdrawn twice or locked in escrow while the request is open. The
        payout reference is fixed here and reused for every transfer attempt.
        """
        self._validate_amount(amount, MIN_WITHDRAWAL_AMOUNT_CENTS, "withdrawal")
        if not recipient_code or not recipient_code.strip():
            raise ValidationError("A transfer recipient is required for withdrawals")

        withdrawal_id = generate_uuid()
        payout_ref = f"wd_{withdrawal_id.replace('-', '')}"

        # Raises InsufficientFunds before anything is written
        self.ledger.post(TransactionRequest(
            type=TransactionTypeDB.WITHDRAWAL_HOLD,
            idempotency_key=f"withdrawal_initiated:{payout_ref}",
            entries=[Entry(account_id, available_delta=-amount, held_delta=amount)],
            related_entity_id=withdrawal_id,
            external_ref=payout_ref,
            description=f"Withdrawal of {PaystackService.format_amount(amount)} requested",
        ))

        withdrawal = Withdrawal(
            id=withdrawal_id,
            account_id=account_id,
            amount=amount,
            recipient_code=recipient_code,
            payout_ref=payout_ref,
            status=WithdrawalStatusDB.PENDING,
            requested_at=datetime.utcnow(),
        )
        self.db.add(withdrawal)
        self.db.flush()

        logger.info(f"Withdrawal of {amount} requested by {account_id} (ref {payout_ref})")
        return withdrawal

    def approve_withdrawal(self, withdrawal_id: str, admin_id: str) -> Withdrawal:
        """
        Mark a reserved withdrawal for payout. The engine sends the transfer
        after this commits; approving a request that is already processing
        lets an admin resend it with the same reference.
        """
        withdrawal = self.get_withdrawal(withdrawal_id)
        if withdrawal.status == WithdrawalStatusDB.PROCESSING:
            logger.info(f"Withdrawal {withdrawal.id} already approved, resending transfer")
            return withdrawal
        self._require_status(withdrawal, WithdrawalStatusDB.PENDING, "approve")

        withdrawal.status = WithdrawalStatusDB.PROCESSING
        withdrawal.reviewed_by = admin_id
        withdrawal.reviewed_at = datetime.utcnow()
        self.db.flush()

        logger.info(f"Withdrawal {withdrawal.id} approved by {admin_id}")
        return withdrawal

    def reject_withdrawal(self, withdrawal_id: str, admin_id: str, reason: str) -> Withdrawal:
        """Decline a queued withdrawal and return the reserved amount."""
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reject a withdrawal")
        withdrawal = self.get_withdrawal(withdrawal_id)
        self._require_status(withdrawal, WithdrawalStatusDB.PENDING, "reject")

        self._release_reservation(withdrawal, f"withdrawal_rejected:{withdrawal.payout_ref}", "Withdrawal rejected")
        withdrawal.status = WithdrawalStatusDB.REJECTED
        withdrawal.rejection_reason = reason.strip()
        withdrawal.reviewed_by = admin_id
        withdrawal.reviewed_at = datetime.utcnow()
        self.db.flush()

        self.notifications.create(
            withdrawal.account_id, NotificationType.WITHDRAWAL_REJECTED, "Withdrawal Rejected",
            f"Your withdrawal request was rejected. Reason: {withdrawal.rejection_reason}. "
            f"Funds have been returned to your wallet.",
            {"amount": withdrawal.amount, "withdrawal_id": withdrawal.id},
        )
        logger.info(f"Withdrawal {withdrawal.id} rejected by {admin_id}")
        return withdrawal

    def on_withdrawal_confirmed(self, payout_ref: str) -> Transaction:
        """Payout settled: debit the reserved amount from the held balance, once."""
        withdrawal = self._withdrawal_for_event(payout_ref)
        key = f"withdrawal:{payout_ref}"
        if withdrawal.status == WithdrawalStatusDB.COMPLETED:
            return self.ledger.find_posting(key)[0]
        self._require_status(withdrawal, WithdrawalStatusDB.PROCESSING, "complete")

        rows = self.ledger.post(TransactionRequest(
            type=TransactionTypeDB.WITHDRAWAL,
            idempotency_key=key,
            entries=[Entry(withdrawal.account_id, held_delta=-withdrawal.amount)],
            related_entity_id=withdrawal.id,
            external_ref=payout_ref,
            description=f"Wallet withdrawal of {PaystackService.format_amount(withdrawal.amount)}",
        ))
        withdrawal.status = WithdrawalStatusDB.COMPLETED
        withdrawal.completed_at = datetime.utcnow()
        self.db.flush()

        self.notifications.create(
            withdrawal.account_id, NotificationType.WITHDRAWAL_COMPLETED, "Withdrawal Completed",
            f"{PaystackService.format_amount(withdrawal.amount)} was sent to your account",
            {"amount": withdrawal.amount, "reference": payout_ref, "transaction_id": rows[0].id},
        )
        logger.info(f"Withdrawal {withdrawal.id} completed (ref {payout_ref})")
        return rows[0]

    def on_withdrawal_failed(self, payout_ref: str, reason: Optional[str] = None) -> Transaction:
        """The transfer failed or was reversed: return the reserved amount, once."""
        withdrawal = self._withdrawal_for_event(payout_ref)
        key = f"withdrawal_failed:{payout_ref}"
        if withdrawal.status == WithdrawalStatusDB.FAILED:
            return self.ledger.find_posting(key)[0]
        self._require_status(withdrawal, WithdrawalStatusDB.PROCESSING, "fail")

        rows = self._release_reservation(withdrawal, key, "Payout failed")
        withdrawal.status = WithdrawalStatusDB.FAILED
        withdrawal.failure_reason = reason
        self.db.flush()

        logger.warning(f"Withdrawal {payout_ref} for {withdrawal.account_id} failed: {reason}")
        self.notifications.create(
            withdrawal.account_id, NotificationType.WITHDRAWAL_FAILED, "Withdrawal Failed",
            f"Your withdrawal of {PaystackService.format_amount(withdrawal.amount)} could not be completed. "
            f"Funds have been returned to your wallet.",
            {"amount": withdrawal.amount, "reference": payout_ref},
        )
        return rows[0]

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def handle_gateway_event(self, event: dict) -> Optional[Transaction]:
        """
        Apply a verified Paystack webhook. Unknown references, unsupported
        events and events that do not fit the payout's state are logged
        and ignored.
        """
        parsed = PaystackWebhookHandler.parse_event(event)
        name, reference = parsed["event"], parsed["reference"]
        if name not in PaystackWebhookHandler.SUPPORTED_EVENTS or not reference:
            logger.info(f"Ignoring gateway event {name}")
            return None

        if name == "charge.success":
            pending = self._initiated_deposit(reference)
            if not pending:
                logger.warning(f"charge.success for unknown deposit reference {reference}")
                return None
            amount = self._charged_amount(pending, parsed["amount"])
            return self.on_deposit_confirmed(pending.account_id, amount, reference)

        withdrawal = self.withdrawal_by_ref(reference)
        if not withdrawal:
            logger.warning(f"{name} for unknown payout reference {reference}")
            return None
        if parsed["amount"] is not None and parsed["amount"] != withdrawal.amount:
            logger.warning(
                f"{name} for {reference} reports {parsed['amount']} but {withdrawal.amount} was reserved; "
                f"settling the reserved amount"
            )

        if name == "transfer.success":
            if withdrawal.status not in (WithdrawalStatusDB.PROCESSING, WithdrawalStatusDB.COMPLETED):
                logger.warning(f"Ignoring {name} for withdrawal {withdrawal.id} in status '{withdrawal.status.value}'")
                return None
            return self.on_withdrawal_confirmed(reference)

        if withdrawal.status not in (WithdrawalStatusDB.PROCESSING, WithdrawalStatusDB.FAILED):
            # A reversal after completion needs a manual correction
            logger.warning(f"Ignoring {name} for withdrawal {withdrawal.id} in status '{withdrawal.status.value}'")
            return None
        return self.on_withdrawal_failed(reference, reason=name)

    # ------------------------------------------------------------------

    def _initiated_deposit(self, reference: str) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(
            Transaction.idempotency_key == f"deposit_initiated:{reference}"
        ).first()

    def _withdrawal_for_event(self, payout_ref: str) -> Withdrawal:
        withdrawal = self.withdrawal_by_ref(payout_ref)
        if not withdrawal:
            raise NotFound(f"No withdrawal with payout reference {payout_ref}")
        return withdrawal

    def _release_reservation(self, withdrawal: Withdrawal, key: str, description: str) -> List[Transaction]:
        return self.ledger.post(TransactionRequest(
            type=TransactionTypeDB.WITHDRAWAL_RELEASE,
            idempotency_key=key,
            entries=[Entry(withdrawal.account_id, available_delta=withdrawal.amount, held_delta=-withdrawal.amount)],
            related_entity_id=withdrawal.id,
            external_ref=withdrawal.payout_ref,
            description=description,
        ))

    @staticmethod
    def _charged_amount(pending: Transaction, charged) -> int:
        """Credit what the gateway actually collected; flag it when that differs from the request."""
        if charged is None or charged == pending.amount:
            return pending.amount
        logger.warning(
            f"Deposit {pending.external_ref} was initiated for {pending.amount} "
            f"but the gateway charged {charged}; crediting the charged amount"
        )
        return charged

    @staticmethod
    def _require_status(withdrawal: Withdrawal, expected: WithdrawalStatusDB, operation: str):
        if withdrawal.status != expected:
            raise InvalidTransition(
                f"Cannot {operation} withdrawal {withdrawal.id} in status '{withdrawal.status.value}'"
            )

    @staticmethod
    def _validate_amount(amount: int, minimum: int, kind: str):
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError(f"The {kind} amount must be an integer amount in cents")
        if amount < minimum:
            raise ValidationError(f"Minimum {kind} is {PaystackService.format_amount(minimum)}")
