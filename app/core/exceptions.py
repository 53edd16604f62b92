"""
Domain errors for the booking lifecycle.

Every error carries a stable ``code``, the HTTP status it maps to and the
``action`` a caller should take: fix the request, retry after re-reading
state, or contact support.
"""

from typing import Any, Dict, Optional

FIX_REQUEST = "fix_request"
RETRY = "retry"
CONTACT_SUPPORT = "contact_support"


class DomainError(Exception):
    """Base class for all booking lifecycle errors."""

    status_code = 500
    action = CONTACT_SUPPORT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "action": self.action,
            "details": self.details,
        }


class NotFound(DomainError):
    status_code = 404
    action = FIX_REQUEST


# ---------------- VALIDATION ----------------
class ValidationError(DomainError):
    """Rejected synchronously; never retried by the core."""

    status_code = 400
    action = FIX_REQUEST


class InvalidLocation(ValidationError):
    pass


class InvalidQuote(ValidationError):
    pass


class RefundExceedsCaptured(ValidationError):
    status_code = 422


# ---------------- AUTHORIZATION ----------------
class Unauthorized(DomainError):
    status_code = 403
    action = FIX_REQUEST


class AuthenticationFailed(DomainError):
    status_code = 401
    action = FIX_REQUEST


# ---------------- STATE ----------------
class StateError(DomainError):
    """Caller should re-fetch the entity and retry or abandon."""

    status_code = 409
    action = RETRY


class IllegalTransition(StateError):
    action = FIX_REQUEST


class ConcurrentModification(StateError):
    pass


class StateChangedConcurrently(StateError):
    pass


class DisputeClosed(StateError):
    action = FIX_REQUEST


class DisputeWindowExpired(StateError):
    action = CONTACT_SUPPORT


# ---------------- EXTERNAL DEPENDENCIES ----------------
class ExternalDependencyError(DomainError):
    status_code = 502


class PaymentDeclined(ExternalDependencyError):
    status_code = 402
    action = FIX_REQUEST


class CaptureWindowExpired(ExternalDependencyError):
    status_code = 409
    action = CONTACT_SUPPORT


class PaymentProviderUnavailable(ExternalDependencyError):
    status_code = 503
    action = RETRY


class WebhookSignatureInvalid(DomainError):
    status_code = 400
    action = FIX_REQUEST


class MalformedWebhook(DomainError):
    status_code = 400
    action = FIX_REQUEST
