"""
Payment provider capability used by the Payment Coordinator.

Adapters translate provider SDK calls and errors into the domain taxonomy:
rejected authorizations raise ``PaymentDeclined``, rejected captures raise
``CaptureWindowExpired`` and timeouts or provider outages raise
``PaymentProviderUnavailable``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class PaymentEvent:
    """A provider notification normalised to the coordinator's vocabulary."""

    event_id: str
    event_type: str
    authorization_id: Optional[str]
    occurred_at: datetime
    amount_cents: Optional[int] = None
    refund_id: Optional[str] = None
    raw: dict = field(default_factory=dict)


class PaymentGateway(ABC):

    @abstractmethod
    def authorize(self, amount_cents: int, metadata: dict) -> str:
        """Hold funds and return the authorization id."""

    @abstractmethod
    def capture(self, authorization_id: str, amount_cents: int) -> str:
        """Capture a held authorization and return the capture id."""

    @abstractmethod
    def refund(self, capture_id: str, amount_cents: int, idempotency_key: str) -> str:
        """Refund captured funds and return the refund id."""

    @abstractmethod
    def void(self, authorization_id: str) -> None:
        """Release an uncaptured authorization."""

    @abstractmethod
    def parse_webhook(self, body: bytes, headers) -> PaymentEvent:
        """Verify and decode a webhook delivery."""

    @abstractmethod
    def create_checkout_order(self, amount_cents: int, receipt: str) -> dict:
        """Create a provider-side order the client authorizes against."""
