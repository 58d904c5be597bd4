# Paystack Payment Gateway Adapter for Kenya
# The settlement engine only talks to the gateway through this class

import hashlib
import hmac
import logging
import uuid
from typing import Any, Dict, Optional

import requests

from config.app_config import CURRENCY, PAYSTACK_CALLBACK_URL, PAYSTACK_SECRET_KEY

logger = logging.getLogger(__name__)


class PaystackConfig:
    """Paystack configuration for Kenya"""
    BASE_URL = "https://api.paystack.co"
    SECRET_KEY = PAYSTACK_SECRET_KEY
    CURRENCY = CURRENCY  # Kenyan Shillings
    TIMEOUT_SECONDS = 30


class PaymentGatewayError(Exception):
    """The gateway could not be reached or rejected the request."""


class PaystackService:
    """Service class for Paystack API interactions"""

    def __init__(self, secret_key: Optional[str] = None, base_url: Optional[str] = None):
        self.base_url = base_url or PaystackConfig.BASE_URL
        self.secret_key = secret_key if secret_key is not None else PaystackConfig.SECRET_KEY
        self.headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json"
        }

    def _make_request(self, method: str, endpoint: str, data: Optional[Dict] = None) -> Dict[str, Any]:
        """Make a request to Paystack API"""
        url = f"{self.base_url}{endpoint}"
        try:
            if method == "GET":
                response = requests.get(url, headers=self.headers, timeout=PaystackConfig.TIMEOUT_SECONDS)
            elif method == "POST":
                response = requests.post(url, headers=self.headers, json=data, timeout=PaystackConfig.TIMEOUT_SECONDS)
            else:
                raise ValueError(f"Unsupported method: {method}")

            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Paystack API error: {e}")
            raise PaymentGatewayError(f"Payment service error: {str(e)}") from e

    def initialize_transaction(
        self,
        email: str,
        amount: int,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict] = None
    ) -> Dict[str, Any]:
        """
        Initialize a Paystack transaction

        Args:
            email: Customer's email
            amount: Amount in cents
            callback_url: URL to redirect after payment
            metadata: Additional transaction metadata (account_id, etc.)

        Returns:
            Transaction initialization response with authorization_url and reference
        """
        data = {
            "email": email,
            "amount": amount,
            "currency": PaystackConfig.CURRENCY,
            "callback_url": callback_url or PAYSTACK_CALLBACK_URL,
            "metadata": metadata or {}
        }
        return self._make_request("POST", "/transaction/initialize", data)

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """Verify a Paystack transaction by reference."""
        return self._make_request("GET", f"/transaction/verify/{reference}")

    def initiate_transfer(
        self,
        amount: int,
        recipient_code: str,
        reason: str = "Wallet withdrawal",
        reference: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Send money from the Paystack balance to a transfer recipient.

        Args:
            amount: Amount in cents
            recipient_code: Paystack recipient code (mobile money or bank account)
            reason: Narration shown to the recipient
            reference: Our payout reference; generated when omitted

        Returns:
            Transfer response; data.reference is the payout reference
        """
        data = {
            "source": "balance",
            "amount": amount,
            "currency": PaystackConfig.CURRENCY,
            "recipient": recipient_code,
            "reason": reason,
            "reference": reference or f"wd_{uuid.uuid4().hex}",
        }
        return self._make_request("POST", "/transfer", data)

    @staticmethod
    def format_amount(amount_in_cents: int) -> str:
        """
        Format amount from cents to KES display string

        Returns:
            Formatted string like "KES 2,999"
        """
        return f"{PaystackConfig.CURRENCY} {amount_in_cents / 100:,.0f}"


# Webhook handler for Paystack events
class PaystackWebhookHandler:
    """Handle Paystack webhook events"""

    SUPPORTED_EVENTS = [
        "charge.success",
        "transfer.success",
        "transfer.failed",
        "transfer.reversed",
    ]

    @staticmethod
    def verify_webhook(payload: bytes, signature: str, secret_key: str) -> bool:
        """
        Verify webhook signature

        Args:
            payload: Raw request body
            signature: X-Paystack-Signature header value
            secret_key: Paystack secret key

        Returns:
            True if signature is valid
        """
        computed_signature = hmac.new(
            secret_key.encode('utf-8'),
            payload,
            hashlib.sha512
        ).hexdigest()

        return hmac.compare_digest(computed_signature, signature or "")

    @staticmethod
    def parse_event(event: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten a webhook body into the fields the payment service needs."""
        data = event.get("data", {}) or {}
        metadata = data.get("metadata") or {}
        return {
            "event": event.get("event"),
            "reference": data.get("reference"),
            "amount": data.get("amount"),
            "account_id": metadata.get("account_id"),
            "status": data.get("status"),
        }
