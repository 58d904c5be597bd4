# Escrow Manager for Dexter Marketplace
# Locks, releases, refunds and splits funds held against a campaign or order

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.errors import InvalidHoldState, NotFound, ValidationError
from database.models import PartyTypeDB, Transaction, TransactionTypeDB, generate_uuid
from database.marketplace_models import Campaign, EscrowHold, EscrowStatusDB
from services.ledger import Entry, LedgerService, TransactionRequest

logger = logging.getLogger(__name__)


class EscrowService:
    """
    Every terminal operation is allowed exactly once per hold. Replaying the
    same idempotency key returns the original ledger rows instead of failing.
    """

    def __init__(self, db: Session, ledger: Optional[LedgerService] = None):
        self.db = db
        self.ledger = ledger or LedgerService(db)

    def get_hold(self, hold_id: str) -> EscrowHold:
        hold = self.db.get(EscrowHold, hold_id)
        if not hold:
            raise NotFound(f"Escrow hold {hold_id} not found")
        return hold

    def find_hold(self, idempotency_key: str) -> Optional[EscrowHold]:
        return self.db.query(EscrowHold).filter(EscrowHold.idempotency_key == idempotency_key).first()

    def hold_for(self, campaign_id: str) -> EscrowHold:
        """Most recent hold locked against a campaign or order, terminal or not."""
        hold = self.db.query(EscrowHold).filter(
            EscrowHold.campaign_id == campaign_id
        ).order_by(EscrowHold.locked_at.desc()).first()
        if not hold:
            raise NotFound(f"No escrow hold for {campaign_id}")
        return hold

    def holds_for_account(self, account_id: str, status: Optional[EscrowStatusDB] = None) -> List[EscrowHold]:
        """
        Holds an account pays into or is paid from: the payer, the payee of a
        settled hold, or the influencer assigned to the funded campaign.
        """
        query = self.db.query(EscrowHold).outerjoin(
            Campaign, Campaign.id == EscrowHold.campaign_id
        ).filter(or_(
            EscrowHold.payer_account_id == account_id,
            EscrowHold.payee_account_id == account_id,
            Campaign.influencer_id == account_id,
        ))
        if status is not None:
            query = query.filter(EscrowHold.status == status)
        return query.order_by(EscrowHold.locked_at.desc()).all()

    def lock(
        self,
        campaign_id: str,
        payer: str,
        amount: int,
        idempotency_key: str,
        auto_release_at: Optional[datetime] = None,
    ) -> EscrowHold:
        """Move `amount` from the payer's available to held balance and open an active hold."""
        existing = self.find_hold(idempotency_key)
        if existing:
            if (existing.campaign_id, existing.payer_account_id, existing.amount) != (campaign_id, payer, amount):
                raise ValidationError(f"Idempotency key {idempotency_key} was already used for a different hold")
            logger.info(f"Escrow lock replay for key {idempotency_key} -> hold {existing.id}")
            return existing

        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Escrow amount must be a positive integer amount in cents")

        self.ledger.post(TransactionRequest(
            type=TransactionTypeDB.ESCROW_LOCK,
            idempotency_key=idempotency_key,
            entries=[Entry(payer, available_delta=-amount, held_delta=amount)],
            related_entity_id=campaign_id,
            description=f"Escrow lock for {campaign_id}",
        ))

        now = datetime.utcnow()
        hold = EscrowHold(
            id=generate_uuid(),
            campaign_id=campaign_id,
            payer_account_id=payer,
            amount=amount,
            status=EscrowStatusDB.ACTIVE,
            idempotency_key=idempotency_key,
            locked_at=now,
            auto_release_at=auto_release_at,
        )
        self.db.add(hold)
        self.db.flush()

        logger.info(f"Locked {amount} cents from {payer} for {campaign_id} (hold {hold.id})")
        return hold

    def release(
        self,
        hold_id: str,
        payee: str,
        platform_fee: int,
        idempotency_key: Optional[str] = None,
    ) -> List[Transaction]:
        """Pay `amount - platform_fee` to the payee and the fee to the platform."""
        key = idempotency_key or f"escrow_release:{hold_id}"
        hold = self.get_hold(hold_id)

        replay = self._replay(hold, key, EscrowStatusDB.RELEASED)
        if replay is not None:
            return replay
        self._require_active(hold, "release")

        if isinstance(platform_fee, bool) or not isinstance(platform_fee, int) or not 0 <= platform_fee <= hold.amount:
            raise ValidationError("Platform fee must be an integer between 0 and the held amount")

        self.ledger.open_account(payee, PartyTypeDB.INFLUENCER)
        payout = hold.amount - platform_fee

        entries = [Entry(hold.payer_account_id, held_delta=-hold.amount, type=TransactionTypeDB.ESCROW_RELEASE)]
        if payout > 0:
            entries.append(Entry(payee, available_delta=payout, type=TransactionTypeDB.ESCROW_RELEASE))
        if platform_fee > 0:
            entries.append(Entry(self.ledger.platform_account().id, available_delta=platform_fee,
                                 type=TransactionTypeDB.PLATFORM_FEE))

        rows = self.ledger.post(TransactionRequest(
            type=TransactionTypeDB.ESCROW_RELEASE,
            idempotency_key=key,
            entries=entries,
            related_entity_id=hold.campaign_id,
            description=f"Escrow release for {hold.campaign_id}",
        ))
        self._terminate(hold, EscrowStatusDB.RELEASED, key, payee)

        logger.info(f"Released hold {hold.id}: {payout} cents to {payee}, fee {platform_fee}")
        return rows

    def refund(self, hold_id: str, idempotency_key: Optional[str] = None) -> Transaction:
        """Return the full held amount to the payer's available balance."""
        key = idempotency_key or f"escrow_refund:{hold_id}"
        hold = self.get_hold(hold_id)

        replay = self._replay(hold, key, EscrowStatusDB.REFUNDED)
        if replay is not None:
            return replay[0]
        self._require_active(hold, "refund")

        rows = self.ledger.post(TransactionRequest(
            type=TransactionTypeDB.ESCROW_REFUND,
            idempotency_key=key,
            entries=[Entry(hold.payer_account_id, available_delta=hold.amount, held_delta=-hold.amount)],
            related_entity_id=hold.campaign_id,
            description=f"Escrow refund for {hold.campaign_id}",
        ))
        self._terminate(hold, EscrowStatusDB.REFUNDED, key)

        logger.info(f"Refunded hold {hold.id}: {hold.amount} cents to {hold.payer_account_id}")
        return rows[0]

    def split(
        self,
        hold_id: str,
        payee: str,
        payee_pct: int,
        payer_refund_pct: int,
        idempotency_key: Optional[str] = None,
    ) -> List[Transaction]:
        """
        Divide the hold between payee and payer by percentage.

        The refund share is floored; the truncation remainder goes to the
        payee so the full amount is always allocated.
        """
        key = idempotency_key or f"escrow_split:{hold_id}"
        hold = self.get_hold(hold_id)

        replay = self._replay(hold, key, EscrowStatusDB.SPLIT)
        if replay is not None:
            return replay
        self._require_active(hold, "split")

        for pct in (payee_pct, payer_refund_pct):
            if isinstance(pct, bool) or not isinstance(pct, int) or not 0 <= pct <= 100:
                raise ValidationError("Split percentages must be integers between 0 and 100")
        if payee_pct + payer_refund_pct != 100:
            raise ValidationError("Split percentages must add up to 100")

        refund_amount = hold.amount * payer_refund_pct // 100
        payee_amount = hold.amount - refund_amount

        self.ledger.open_account(payee, PartyTypeDB.INFLUENCER)
        entries = []
        if payee_amount > 0:
            entries.append(Entry(hold.payer_account_id, held_delta=-payee_amount, type=TransactionTypeDB.ESCROW_RELEASE))
            entries.append(Entry(payee, available_delta=payee_amount, type=TransactionTypeDB.ESCROW_RELEASE))
        if refund_amount > 0:
            entries.append(Entry(hold.payer_account_id, available_delta=refund_amount, held_delta=-refund_amount,
                                 type=TransactionTypeDB.ESCROW_REFUND))

        rows = self.ledger.post(TransactionRequest(
            type=TransactionTypeDB.ESCROW_RELEASE,
            idempotency_key=key,
            entries=entries,
            related_entity_id=hold.campaign_id,
            description=f"Escrow split {payee_pct}/{payer_refund_pct} for {hold.campaign_id}",
        ))
        self._terminate(hold, EscrowStatusDB.SPLIT, key, payee)

        logger.info(
            f"Split hold {hold.id}: {payee_amount} cents to {payee}, "
            f"{refund_amount} cents back to {hold.payer_account_id}"
        )
        return rows

    def due_for_release(self, now: Optional[datetime] = None) -> List[EscrowHold]:
        """Active holds whose auto-release deadline has passed."""
        now = now or datetime.utcnow()
        return self.db.query(EscrowHold).filter(
            EscrowHold.status == EscrowStatusDB.ACTIVE,
            EscrowHold.auto_release_at.isnot(None),
            EscrowHold.auto_release_at <= now,
        ).order_by(EscrowHold.auto_release_at).all()

    # ------------------------------------------------------------------

    def _replay(self, hold: EscrowHold, key: str, status: EscrowStatusDB) -> Optional[List[Transaction]]:
        if hold.status == status and hold.terminal_idempotency_key == key:
            logger.info(f"Escrow {status.value} replay for hold {hold.id}")
            return self.ledger.find_posting(key)
        return None

    @staticmethod
    def _require_active(hold: EscrowHold, operation: str):
        if hold.status != EscrowStatusDB.ACTIVE:
            raise InvalidHoldState(f"Cannot {operation} escrow hold {hold.id} in status '{hold.status.value}'")

    def _terminate(self, hold: EscrowHold, status: EscrowStatusDB, key: str, payee: Optional[str] = None):
        hold.status = status
        hold.terminal_idempotency_key = key
        hold.payee_account_id = payee
        hold.terminated_at = datetime.utcnow()
        self.db.flush()
