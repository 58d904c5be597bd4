# Database Models for Dexter Settlement Ledger
# Accounts, the append-only transaction log and payout requests

from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Text, Enum,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from datetime import datetime
import uuid
import enum

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


def enum_column(enum_cls, name, **kwargs):
    """Enum column persisted by value ("escrow_lock", not "ESCROW_LOCK")."""
    return Column(Enum(enum_cls, values_callable=lambda x: [e.value for e in x], name=name), **kwargs)


# Enums
class PartyTypeDB(str, enum.Enum):
    BRAND = "brand"
    INFLUENCER = "influencer"
    PLATFORM = "platform"


class TransactionTypeDB(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ESCROW_LOCK = "escrow_lock"
    ESCROW_RELEASE = "escrow_release"
    ESCROW_REFUND = "escrow_refund"
    PLATFORM_FEE = "platform_fee"
    AFFILIATE_COMMISSION = "affiliate_commission"
    WITHDRAWAL_HOLD = "withdrawal_hold"  # Reserve a requested payout
    WITHDRAWAL_RELEASE = "withdrawal_release"  # Return a rejected or failed payout


class TransactionStatusDB(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


# Models
class Account(Base):
    """One balance sheet per party. Never deleted, only zeroed."""
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)  # user id from the identity layer
    party_type = enum_column(PartyTypeDB, "partytypedb", nullable=False, default=PartyTypeDB.BRAND)

    available_balance = Column(Integer, nullable=False, default=0)  # In cents
    held_balance = Column(Integer, nullable=False, default=0)  # Escrow plus reserved payouts
    total_earned = Column(Integer, nullable=False, default=0)  # Lifetime credits from escrow/commissions
    total_spent = Column(Integer, nullable=False, default=0)  # Lifetime debits to other parties
    currency = Column(String(3), default="KES")

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    transactions = relationship("Transaction", back_populates="account", order_by="Transaction.created_at")

    __table_args__ = (
        CheckConstraint("available_balance >= 0", name="ck_accounts_available_nonnegative"),
        CheckConstraint("held_balance >= 0", name="ck_accounts_held_nonnegative"),
    )
    __mapper_args__ = {"version_id_col": version}


class Transaction(Base):
    """
    Immutable ledger row: one leg of a posting against a single account.
    Corrections are new offsetting rows, never updates.
    """
    __tablename__ = "ledger_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)

    type = enum_column(TransactionTypeDB, "transactiontypedb", nullable=False)
    status = enum_column(TransactionStatusDB, "transactionstatusdb", nullable=False, default=TransactionStatusDB.SUCCESS)

    amount = Column(Integer, nullable=False)  # Positive, in cents
    available_delta = Column(Integer, nullable=False, default=0)
    held_delta = Column(Integer, nullable=False, default=0)

    idempotency_key = Column(String(255), nullable=False, index=True)  # Shared by all legs of one posting
    leg = Column(Integer, nullable=False, default=0)
    related_entity_id = Column(String(36), index=True)  # Campaign / order id
    external_ref = Column(String(255))  # Paystack reference, etc.
    description = Column(Text)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    account = relationship("Account", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("idempotency_key", "leg", name="uq_ledger_transactions_key_leg"),
        CheckConstraint("amount > 0", name="ck_ledger_transactions_amount_positive"),
    )


class WithdrawalStatusDB(str, enum.Enum):
    PENDING = "pending"        # Reserved, waiting for admin review
    PROCESSING = "processing"  # Approved, transfer sent to the gateway
    COMPLETED = "completed"
    FAILED = "failed"          # Gateway failed or reversed the transfer
    REJECTED = "rejected"      # Declined by an admin


class Withdrawal(Base):
    """
    A payout request. The amount sits in the account's held balance from
    request until the gateway settles it or the request is rejected.
    """
    __tablename__ = "withdrawals"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # In cents
    recipient_code = Column(String(100), nullable=False)  # Paystack transfer recipient
    payout_ref = Column(String(100), unique=True, nullable=False)  # Transfer reference sent to Paystack
    status = enum_column(WithdrawalStatusDB, "withdrawalstatusdb", nullable=False, default=WithdrawalStatusDB.PENDING,
                         index=True)

    reviewed_by = Column(String(36))  # Admin who approved or rejected
    rejection_reason = Column(Text)
    failure_reason = Column(Text)

    requested_at = Column(DateTime, default=datetime.utcnow)
    reviewed_at = Column(DateTime)
    completed_at = Column(DateTime)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_withdrawals_amount_positive"),
    )
    __mapper_args__ = {"version_id_col": version}
