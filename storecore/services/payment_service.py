import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe

from ..utils.pricing import to_money


class PaymentGatewayError(RuntimeError):
    pass


class StripePaymentService:
    """Thin wrapper around Stripe PaymentIntents and webhook verification."""

    def __init__(self, secret_key: str, *, webhook_secret: str = "", currency: str = "usd") -> None:
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = (currency or "usd").lower()
        self.logger = logging.getLogger(__name__)
        if secret_key:
            stripe.api_key = secret_key

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _require_key(self) -> None:
        if not self.secret_key:
            raise PaymentGatewayError("Stripe is not configured")

    @staticmethod
    def to_cents(amount) -> int:
        money = to_money(amount)
        if money <= 0:
            raise ValueError("amount must be greater than 0")
        return int(money * 100)

    def create_intent(
        self,
        amount,
        currency: Optional[str] = None,
        email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        self._require_key()
        params = {
            "amount": self.to_cents(amount),
            "currency": (currency or self.currency).lower(),
            "automatic_payment_methods": {"enabled": True},
            "metadata": {k: str(v) for k, v in (metadata or {}).items()},
        }
        if email:
            params["receipt_email"] = email
        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as exc:
            self.logger.error("Stripe error creating payment intent: %s", exc)
            raise PaymentGatewayError(f"Payment gateway error: {exc}") from exc
        return {"id": intent["id"], "client_secret": intent["client_secret"]}

    def retrieve_intent(self, intent_id: str) -> Dict[str, Any]:
        self._require_key()
        if not intent_id:
            raise ValueError("payment intent id required")
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.StripeError as exc:
            self.logger.error("Stripe error retrieving %s: %s", intent_id, exc)
            raise PaymentGatewayError(f"Payment gateway error: {exc}") from exc
        return {
            "id": intent["id"],
            "status": intent["status"],
            "amount": Decimal(intent["amount"]) / 100,
            "metadata": dict(intent.get("metadata") or {}),
        }

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise PaymentGatewayError("Stripe webhook secret is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise ValueError("Invalid webhook signature") from exc
        except ValueError as exc:
            raise ValueError("Invalid webhook payload") from exc
        obj = event["data"]["object"]
        amount = obj.get("amount")
        return {
            "type": event["type"],
            "id": obj.get("id"),
            "status": obj.get("status"),
            "amount": Decimal(amount) / 100 if amount is not None else None,
            "metadata": dict(obj.get("metadata") or {}),
        }
