import hashlib
import hmac
import json
import logging

import pytest
import requests

from core.errors import InsufficientFunds, InvalidTransition, NotFound, ValidationError
from core.paystack_service import PaymentGatewayError, PaystackService, PaystackWebhookHandler
from database.models import (
    PartyTypeDB, Transaction, TransactionStatusDB, TransactionTypeDB, WithdrawalStatusDB,
)
from services.notification_service import NotificationService, NotificationType
from services.payment_service import PaymentService

from tests.conftest import ADMIN, BRAND, INFLUENCER


@pytest.fixture
def payments(db, gateway, ledger):
    return PaymentService(db, gateway=gateway, ledger=ledger)


def charge_event(reference, event="charge.success", amount=None):
    data = {"reference": reference, "status": "success", "metadata": {}}
    if amount is not None:
        data["amount"] = amount
    return {"event": event, "data": data}


def test_initiate_deposit_records_pending_intent(payments, ledger, gateway):
    result = payments.initiate_deposit(BRAND, 25_000, "brand@example.com")

    assert result["reference"] == "dep_1"
    assert result["authorization_url"].endswith("dep_1")
    assert gateway.calls[0][0] == "initialize_transaction"

    rows = ledger.find_posting("deposit_initiated:dep_1")
    assert rows[0].status == TransactionStatusDB.PENDING
    assert rows[0].amount == 25_000
    assert ledger.get_account(BRAND).available_balance == 0


def test_deposit_below_minimum(payments, gateway):
    with pytest.raises(ValidationError):
        payments.initiate_deposit(BRAND, 999, "brand@example.com")
    assert gateway.calls == []


def test_webhook_confirms_deposit_once(payments, ledger, db):
    reference = payments.initiate_deposit(BRAND, 25_000, "brand@example.com")["reference"]

    first = payments.handle_gateway_event(charge_event(reference))
    second = payments.handle_gateway_event(charge_event(reference))

    assert first.id == second.id
    assert ledger.get_account(BRAND).available_balance == 25_000
    ledger.reconcile(BRAND)
    deposits = [n for n in NotificationService(db).for_user(BRAND)
                if n.type == NotificationType.DEPOSIT_COMPLETED.value]
    assert len(deposits) == 1


def test_verify_deposit_credits_on_success(payments, ledger):
    reference = payments.initiate_deposit(BRAND, 25_000, "brand@example.com")["reference"]

    row = payments.verify_deposit(reference)

    assert row.status == TransactionStatusDB.SUCCESS
    assert ledger.get_account(BRAND).available_balance == 25_000


def test_verify_deposit_records_failure(payments, ledger, gateway):
    reference = payments.initiate_deposit(BRAND, 25_000, "brand@example.com")["reference"]
    gateway.verify_status = "failed"

    assert payments.verify_deposit(reference) is None
    assert payments.verify_deposit(reference) is None

    failed = ledger.find_posting(f"deposit_failed:{reference}")
    assert [r.status for r in failed] == [TransactionStatusDB.FAILED]
    assert ledger.get_account(BRAND).available_balance == 0


def test_verify_unknown_reference(payments):
    with pytest.raises(ValidationError):
        payments.verify_deposit("dep_unknown")


def reserve(payments, amount=20_000, account_id=INFLUENCER):
    return payments.initiate_withdrawal(account_id, amount, "RCP_123")


def test_withdrawal_request_reserves_funds(payments, ledger, fund, gateway):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)

    withdrawal = reserve(payments)

    assert withdrawal.status == WithdrawalStatusDB.PENDING
    assert withdrawal.payout_ref == f"wd_{withdrawal.id.replace('-', '')}"
    account = ledger.get_account(INFLUENCER)
    assert (account.available_balance, account.held_balance) == (10_000, 20_000)
    assert ledger.find_posting(f"withdrawal_initiated:{withdrawal.payout_ref}")[0].type == \
        TransactionTypeDB.WITHDRAWAL_HOLD
    assert gateway.calls == []
    ledger.reconcile(INFLUENCER)


def test_second_withdrawal_cannot_spend_reserved_funds(payments, ledger, fund):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    reserve(payments)

    with pytest.raises(InsufficientFunds):
        reserve(payments)

    assert len(payments.withdrawals_for(INFLUENCER)) == 1
    assert ledger.get_account(INFLUENCER).held_balance == 20_000


def test_escrow_lock_cannot_spend_reserved_funds(payments, campaigns, ledger, fund):
    fund(BRAND, 30_000)
    reserve(payments, 25_000, BRAND)
    campaign = campaigns.create_campaign(BRAND, "Product launch", budget=10_000)
    bid = campaigns.place_bid(campaign.id, INFLUENCER, 10_000)

    with pytest.raises(InsufficientFunds):
        campaigns.accept_bid(bid.id, BRAND)

    account = ledger.get_account(BRAND)
    assert (account.available_balance, account.held_balance) == (5_000, 25_000)


def test_withdrawal_checks_amount_and_recipient(payments, fund, gateway):
    fund(INFLUENCER, 15_000, PartyTypeDB.INFLUENCER)

    with pytest.raises(InsufficientFunds):
        reserve(payments)
    with pytest.raises(ValidationError):
        reserve(payments, 500)
    with pytest.raises(ValidationError):
        payments.initiate_withdrawal(INFLUENCER, 10_000, "  ")
    assert payments.withdrawals_for(INFLUENCER) == []
    assert gateway.calls == []


def test_confirmed_transfer_settles_from_held_once(payments, ledger, fund, db):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    withdrawal = reserve(payments)
    payments.approve_withdrawal(withdrawal.id, ADMIN)

    first = payments.handle_gateway_event(charge_event(withdrawal.payout_ref, "transfer.success", 20_000))
    second = payments.handle_gateway_event(charge_event(withdrawal.payout_ref, "transfer.success", 20_000))

    assert first.id == second.id
    assert (first.available_delta, first.held_delta) == (0, -20_000)
    account = ledger.get_account(INFLUENCER)
    assert (account.available_balance, account.held_balance) == (10_000, 0)
    assert payments.get_withdrawal(withdrawal.id).status == WithdrawalStatusDB.COMPLETED
    ledger.reconcile(INFLUENCER)
    completed = [n for n in NotificationService(db).for_user(INFLUENCER)
                 if n.type == NotificationType.WITHDRAWAL_COMPLETED.value]
    assert len(completed) == 1


def test_failed_then_reversed_transfer_releases_once(payments, ledger, fund, db):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    withdrawal = reserve(payments)
    payments.approve_withdrawal(withdrawal.id, ADMIN)

    payments.handle_gateway_event(charge_event(withdrawal.payout_ref, "transfer.failed"))
    payments.handle_gateway_event(charge_event(withdrawal.payout_ref, "transfer.reversed"))

    account = ledger.get_account(INFLUENCER)
    assert (account.available_balance, account.held_balance) == (30_000, 0)
    assert len(ledger.find_posting(f"withdrawal_failed:{withdrawal.payout_ref}")) == 1
    assert payments.get_withdrawal(withdrawal.id).failure_reason == "transfer.failed"
    failures = [n for n in NotificationService(db).for_user(INFLUENCER)
                if n.type == NotificationType.WITHDRAWAL_FAILED.value]
    assert len(failures) == 1
    ledger.reconcile(INFLUENCER)


def test_transfer_events_before_approval_are_ignored(payments, ledger, fund):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    withdrawal = reserve(payments)

    assert payments.handle_gateway_event(charge_event(withdrawal.payout_ref, "transfer.success")) is None
    assert payments.handle_gateway_event(charge_event(withdrawal.payout_ref, "transfer.failed")) is None

    assert payments.get_withdrawal(withdrawal.id).status == WithdrawalStatusDB.PENDING
    assert ledger.get_account(INFLUENCER).held_balance == 20_000


def test_reversal_after_completion_is_ignored(payments, ledger, fund):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    withdrawal = reserve(payments)
    payments.approve_withdrawal(withdrawal.id, ADMIN)
    payments.on_withdrawal_confirmed(withdrawal.payout_ref)

    assert payments.handle_gateway_event(charge_event(withdrawal.payout_ref, "transfer.reversed")) is None

    assert payments.get_withdrawal(withdrawal.id).status == WithdrawalStatusDB.COMPLETED
    assert ledger.get_account(INFLUENCER).available_balance == 10_000


def test_transfer_amount_mismatch_is_logged(payments, ledger, fund, caplog):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    withdrawal = reserve(payments)
    payments.approve_withdrawal(withdrawal.id, ADMIN)

    with caplog.at_level(logging.WARNING, logger="services.payment_service"):
        payments.handle_gateway_event(charge_event(withdrawal.payout_ref, "transfer.success", 19_000))

    assert "20000 was reserved" in caplog.text
    assert ledger.get_account(INFLUENCER).held_balance == 0


def test_reject_returns_reserved_funds(payments, ledger, fund, db):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    withdrawal = reserve(payments)

    with pytest.raises(ValidationError):
        payments.reject_withdrawal(withdrawal.id, ADMIN, " ")
    rejected = payments.reject_withdrawal(withdrawal.id, ADMIN, "Recipient name does not match")

    assert rejected.status == WithdrawalStatusDB.REJECTED
    assert (rejected.reviewed_by, rejected.rejection_reason) == (ADMIN, "Recipient name does not match")
    account = ledger.get_account(INFLUENCER)
    assert (account.available_balance, account.held_balance) == (30_000, 0)
    notes = [n for n in NotificationService(db).for_user(INFLUENCER)
             if n.type == NotificationType.WITHDRAWAL_REJECTED.value]
    assert len(notes) == 1
    assert "Recipient name does not match" in notes[0].message

    with pytest.raises(InvalidTransition):
        payments.approve_withdrawal(withdrawal.id, ADMIN)
    with pytest.raises(InvalidTransition):
        payments.reject_withdrawal(withdrawal.id, ADMIN, "Again")
    ledger.reconcile(INFLUENCER)


def test_approve_moves_to_processing(payments, fund):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    withdrawal = reserve(payments)

    approved = payments.approve_withdrawal(withdrawal.id, ADMIN)
    again = payments.approve_withdrawal(withdrawal.id, ADMIN)

    assert approved.status == again.status == WithdrawalStatusDB.PROCESSING
    assert approved.reviewed_by == ADMIN
    with pytest.raises(InvalidTransition):
        payments.reject_withdrawal(withdrawal.id, ADMIN, "Too late")
    with pytest.raises(NotFound):
        payments.approve_withdrawal("missing", ADMIN)


def test_withdrawal_queues(payments, fund):
    fund(INFLUENCER, 30_000, PartyTypeDB.INFLUENCER)
    fund(BRAND, 30_000)
    first = reserve(payments, 10_000)
    second = reserve(payments, 10_000, BRAND)
    third = reserve(payments, 12_000)
    payments.approve_withdrawal(second.id, ADMIN)

    assert {w.id for w in payments.pending_withdrawals()} == {first.id, third.id}
    assert {w.id for w in payments.withdrawals_for(INFLUENCER)} == {first.id, third.id}
    assert [w.id for w in payments.withdrawals_for(BRAND)] == [second.id]


def test_charged_amount_mismatch_credits_what_was_charged(payments, ledger, caplog):
    reference = payments.initiate_deposit(BRAND, 25_000, "brand@example.com")["reference"]

    with caplog.at_level(logging.WARNING, logger="services.payment_service"):
        row = payments.handle_gateway_event(charge_event(reference, amount=20_000))

    assert row.amount == 20_000
    assert ledger.get_account(BRAND).available_balance == 20_000
    assert "the gateway charged 20000" in caplog.text


def test_verify_deposit_uses_the_verified_amount(payments, ledger, gateway):
    reference = payments.initiate_deposit(BRAND, 25_000, "brand@example.com")["reference"]
    gateway.verify_amount = 24_000

    payments.verify_deposit(reference)

    assert ledger.get_account(BRAND).available_balance == 24_000


def test_unknown_events_and_references_are_ignored(payments, db):
    assert payments.handle_gateway_event({"event": "subscription.create", "data": {}}) is None
    assert payments.handle_gateway_event(charge_event("dep_nobody")) is None
    assert payments.handle_gateway_event(charge_event("wd_nobody", "transfer.success")) is None
    assert db.query(Transaction).count() == 0


def test_webhook_signature():
    body = json.dumps(charge_event("dep_1")).encode()
    signature = hmac.new(b"sk_test", body, hashlib.sha512).hexdigest()

    assert PaystackWebhookHandler.verify_webhook(body, signature, "sk_test")
    assert not PaystackWebhookHandler.verify_webhook(body, signature, "sk_other")
    assert not PaystackWebhookHandler.verify_webhook(body, None, "sk_test")


def test_parse_event_reads_metadata():
    parsed = PaystackWebhookHandler.parse_event({
        "event": "charge.success",
        "data": {"reference": "dep_1", "amount": 500, "status": "success", "metadata": {"account_id": BRAND}},
    })
    assert parsed == {
        "event": "charge.success", "reference": "dep_1", "amount": 500,
        "account_id": BRAND, "status": "success",
    }


def test_gateway_errors_are_wrapped(monkeypatch):
    def unreachable(*args, **kwargs):
        raise requests.exceptions.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "get", unreachable)

    with pytest.raises(PaymentGatewayError):
        PaystackService(secret_key="sk_test").verify_transaction("dep_1")


def test_format_amount():
    assert PaystackService.format_amount(150_000) == "KES 1,500"
