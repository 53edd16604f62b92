import json
from datetime import datetime, timezone

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError

from app.core import config
from app.core.exceptions import (
    CaptureWindowExpired,
    MalformedWebhook,
    PaymentDeclined,
    PaymentProviderUnavailable,
    WebhookSignatureInvalid,
)
from app.core.logging_config import get_logger
from app.models.enums import PaymentEventType
from app.utils.payment_gateway import PaymentEvent, PaymentGateway

logger = get_logger()

# Razorpay event name → normalised event type
EVENT_TYPES = {
    "payment.authorized": PaymentEventType.AUTHORIZATION_SUCCEEDED.value,
    "payment.failed": PaymentEventType.AUTHORIZATION_FAILED.value,
    "payment.captured": PaymentEventType.CAPTURE_SUCCEEDED.value,
    "refund.processed": PaymentEventType.REFUND_SUCCEEDED.value,
}


class RazorpayGateway(PaymentGateway):
    """
    Razorpay adapter.

    Checkout orders are created with ``payment_capture=0`` so the customer's
    payment stays in the ``authorized`` state; the payment id returned by
    checkout is the token handed to ``authorize``.
    """

    def __init__(self, key_id=None, key_secret=None, webhook_secret=None, timeout=None):
        self.client = razorpay.Client(
            auth=(key_id or config.RAZORPAY_KEY_ID, key_secret or config.RAZORPAY_KEY_SECRET)
        )
        self.webhook_secret = webhook_secret or config.RAZORPAY_WEBHOOK_SECRET
        self.timeout = timeout or config.PAYMENT_PROVIDER_TIMEOUT_SECONDS

    @property
    def key_id(self):
        return self.client.auth[0]

    def _call(self, operation, fn, *args, **kwargs):
        try:
            return fn(*args, timeout=self.timeout, **kwargs)
        except (ServerError, GatewayError, requests.exceptions.RequestException) as e:
            logger.bind(log_type="payment").error(f"Razorpay {operation} unavailable → {e}")
            raise PaymentProviderUnavailable(
                "Payment provider is unavailable, try again shortly",
                details={"operation": operation},
            )

    # -------- CHECKOUT --------
    def create_checkout_order(self, amount_cents, receipt):
        order = self._call(
            "order",
            self.client.order.create,
            {
                "amount": amount_cents,
                "currency": config.PAYMENT_CURRENCY,
                "receipt": receipt,
                "payment_capture": 0,
            },
        )
        return {"order_id": order["id"], "key_id": self.key_id, "amount_cents": amount_cents}

    # -------- AUTHORIZE --------
    def authorize(self, amount_cents, metadata):
        payment_id = metadata.get("payment_token")
        if not payment_id:
            raise PaymentDeclined("A payment token from checkout is required")

        try:
            payment = self._call("authorize", self.client.payment.fetch, payment_id)
        except BadRequestError as e:
            raise PaymentDeclined(f"Payment was rejected: {e}")

        if payment.get("status") != "authorized":
            raise PaymentDeclined(
                "Payment is not authorized",
                details={"provider_status": payment.get("status")},
            )

        if int(payment.get("amount", 0)) != amount_cents:
            raise PaymentDeclined(
                "Authorized amount does not match the booking quote",
                details={"authorized": payment.get("amount"), "expected": amount_cents},
            )

        return payment["id"]

    # -------- CAPTURE --------
    def capture(self, authorization_id, amount_cents):
        try:
            payment = self._call(
                "capture",
                self.client.payment.capture,
                authorization_id,
                amount_cents,
                {"currency": config.PAYMENT_CURRENCY},
            )
        except BadRequestError as e:
            raise CaptureWindowExpired(
                "Authorization can no longer be captured; re-authorize the payment",
                details={"provider_error": str(e)},
            )
        return payment["id"]

    # -------- REFUND --------
    def refund(self, capture_id, amount_cents, idempotency_key):
        try:
            refund = self._call(
                "refund",
                self.client.payment.refund,
                capture_id,
                {"amount": amount_cents, "receipt": idempotency_key[:40]},
            )
        except BadRequestError as e:
            raise PaymentDeclined(f"Refund was rejected: {e}")
        return refund["id"]

    # -------- VOID --------
    def void(self, authorization_id):
        # Razorpay has no void call; uncaptured authorizations are released
        # back to the customer automatically.
        logger.bind(log_type="payment").info(
            f"Authorization released | Payment={authorization_id}"
        )

    # -------- WEBHOOK --------
    def parse_webhook(self, body, headers):
        signature = headers.get("x-razorpay-signature")
        if not signature:
            raise WebhookSignatureInvalid("Missing webhook signature")

        text = body.decode("utf-8")
        try:
            self.client.utility.verify_webhook_signature(text, signature, self.webhook_secret)
        except SignatureVerificationError:
            raise WebhookSignatureInvalid("Invalid webhook signature")

        try:
            data = json.loads(text)
            event_name = data["event"]
            created_at = datetime.fromtimestamp(int(data["created_at"]), tz=timezone.utc)
            payload = data.get("payload", {})
        except (ValueError, KeyError, TypeError):
            raise MalformedWebhook("Webhook body could not be decoded")

        event_id = headers.get("x-razorpay-event-id")
        if not event_id:
            raise MalformedWebhook("Missing webhook event id")

        authorization_id = None
        amount = None
        refund_id = None

        if "refund" in payload:
            refund = payload["refund"]["entity"]
            authorization_id = refund.get("payment_id")
            amount = refund.get("amount")
            refund_id = refund.get("id")
        elif "payment" in payload:
            payment = payload["payment"]["entity"]
            authorization_id = payment.get("id")
            amount = payment.get("amount")

        return PaymentEvent(
            event_id=event_id,
            event_type=EVENT_TYPES.get(event_name, event_name),
            authorization_id=authorization_id,
            occurred_at=created_at.replace(tzinfo=None),
            amount_cents=int(amount) if amount is not None else None,
            refund_id=refund_id,
            raw=data,
        )
