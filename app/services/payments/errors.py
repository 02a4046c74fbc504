"""
Payment error taxonomy.

Every error carries a stable ``code``, the HTTP status the API answers with and
whether the caller may safely retry. Losing the idempotency race is not an
error and has no class here.
"""
from __future__ import annotations


class PaymentError(Exception):
    code = "payment.error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_public_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "retryable": self.retryable}


class ValidationError(PaymentError):
    """Rejected before any gateway call; nothing persisted."""

    code = "payment.invalid"
    status_code = 400


class AuthorizationError(PaymentError):
    code = "payment.forbidden"
    status_code = 403


class NotFoundError(PaymentError):
    code = "payment.not_found"
    status_code = 404


class PaymentNotFoundError(NotFoundError):
    def __init__(self, reference: str) -> None:
        super().__init__("Payment not found")
        self.reference = reference


class SubscriptionNotFoundError(NotFoundError):
    code = "subscription.not_found"

    def __init__(self) -> None:
        super().__init__("Active subscription not found")


class RateLimitError(PaymentError):
    code = "payment.rate_limited"
    status_code = 429
    retryable = True


class GatewayError(PaymentError):
    """Network fault or non-success answer from the gateway. Payment stays pending."""

    code = "payment.gateway_error"
    status_code = 502
    retryable = True

    def __init__(self, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class SignatureError(PaymentError):
    code = "payment.invalid_signature"
    status_code = 400


class FulfillmentError(PaymentError):
    """Raised inside the completion transaction; the whole transaction rolls back."""

    code = "payment.fulfillment_failed"
    status_code = 500
    retryable = True
