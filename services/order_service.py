# Order Fulfillment for Affiliate Commerce
# Freezes the commission breakdown and pays it out through the ledger

import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from core import commission
from core.errors import NotFound, ValidationError
from database.models import PartyTypeDB, TransactionTypeDB
from database.affiliate_models import AffiliateOrder, CommissionTypeDB
from services.ledger import Entry, LedgerService, TransactionRequest
from services.notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(self, db: Session, ledger: Optional[LedgerService] = None,
                 notifications: Optional[NotificationService] = None):
        self.db = db
        self.ledger = ledger or LedgerService(db)
        self.notifications = notifications or NotificationService(db)

    def get_order(self, order_id: str) -> AffiliateOrder:
        order = self.db.get(AffiliateOrder, order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")
        return order

    def fulfill_order(
        self,
        order_id: str,
        product_id: str,
        affiliate_id: str,
        brand_id: str,
        gross_amount: int,
        commission_type: Union[CommissionTypeDB, str],
        commission_rate_or_fixed,
        platform_fee_type: Union[CommissionTypeDB, str],
        platform_fee_rate_or_fixed,
    ) -> AffiliateOrder:
        """
        Compute the commission once and pay it: the brand's available balance
        funds the gross commission, the affiliate gets the net and the
        platform gets its fee. Fulfilling the same order again is a no-op
        that returns the stored record.
        """
        existing = self.db.get(AffiliateOrder, order_id)
        if existing:
            logger.info(f"Order {order_id} already fulfilled; returning stored commission")
            return existing
        if affiliate_id == brand_id:
            raise ValidationError("Affiliate and brand must be different accounts")

        breakdown = commission.compute(
            gross_amount, commission_type, commission_rate_or_fixed,
            platform_fee_type, platform_fee_rate_or_fixed,
        )

        key = f"affiliate_commission:{order_id}"
        if breakdown.gross_commission > 0:
            brand = self.ledger.get_account(brand_id)
            self.ledger.open_account(affiliate_id, PartyTypeDB.INFLUENCER)
            entries = [Entry(brand.id, available_delta=-breakdown.gross_commission)]
            if breakdown.net_commission > 0:
                entries.append(Entry(affiliate_id, available_delta=breakdown.net_commission))
            if breakdown.platform_fee_amount > 0:
                entries.append(Entry(self.ledger.platform_account().id,
                                     available_delta=breakdown.platform_fee_amount,
                                     type=TransactionTypeDB.PLATFORM_FEE))
            self.ledger.post(TransactionRequest(
                type=TransactionTypeDB.AFFILIATE_COMMISSION,
                idempotency_key=key,
                entries=entries,
                related_entity_id=order_id,
                description=f"Affiliate commission for order {order_id}",
            ))

        order = AffiliateOrder(
            order_id=order_id,
            product_id=product_id,
            affiliate_id=affiliate_id,
            brand_id=brand_id,
            gross_amount=breakdown.gross_amount,
            commission_type=breakdown.commission_type,
            commission_rate_or_fixed=breakdown.commission_rate_or_fixed,
            platform_fee_type=breakdown.platform_fee_type,
            platform_fee_rate_or_fixed=breakdown.platform_fee_rate_or_fixed,
            gross_commission=breakdown.gross_commission,
            platform_fee_amount=breakdown.platform_fee_amount,
            net_commission=breakdown.net_commission,
            payout_idempotency_key=key,
            fulfilled_at=datetime.utcnow(),
        )
        self.db.add(order)
        self.db.flush()

        logger.info(
            f"Order {order_id} fulfilled: gross commission {breakdown.gross_commission}, "
            f"fee {breakdown.platform_fee_amount}, net {breakdown.net_commission} to {affiliate_id}"
        )
        self.notifications.create(
            affiliate_id, NotificationType.COMMISSION_PAID, "Commission Earned",
            f"You earned {breakdown.net_commission} on order {order_id}",
            {"order_id": order_id, **breakdown.to_dict()},
        )
        return order
