from enum import Enum


class Role(str, Enum):
    REQUESTER = "requester"
    PROVIDER = "provider"
    ADMIN = "admin"
    # internal actor for payment failures and scheduled sweeps
    SYSTEM = "system"


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    DISPUTED = "disputed"
    RESOLVED_CAPTURED = "resolved_captured"
    RESOLVED_REFUNDED = "resolved_refunded"


class PaymentStatus(str, Enum):
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"


class DisputeStatus(str, Enum):
    OPEN = "open"
    RESPONDED = "responded"
    RESOLVED = "resolved"


class DisputeReason(str, Enum):
    SERVICE_NOT_RENDERED = "service_not_rendered"
    DAMAGED_GOODS = "damaged_goods"
    LATE_DELIVERY = "late_delivery"
    OVERCHARGED = "overcharged"
    OTHER = "other"


class DisputeResolution(str, Enum):
    CAPTURE_CONFIRMED = "capture_confirmed"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


class PaymentEventType(str, Enum):
    AUTHORIZATION_SUCCEEDED = "authorization.succeeded"
    AUTHORIZATION_FAILED = "authorization.failed"
    CAPTURE_SUCCEEDED = "capture.succeeded"
    REFUND_SUCCEEDED = "refund.succeeded"


class EventOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"
    IGNORED = "ignored"
    UNKNOWN_PAYMENT = "unknown_payment"
