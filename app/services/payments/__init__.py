"""
Payment confirmation and entitlement fulfillment.
Gateway I/O (PaystackClient), webhook authentication (WebhookSignatureVerifier),
the payment ledger (PaymentStore) and entitlements (FulfillmentEngine) are wired
together by PaymentService.
"""
from app.services.payments.errors import (
    AuthorizationError,
    FulfillmentError,
    GatewayError,
    NotFoundError,
    PaymentError,
    PaymentNotFoundError,
    RateLimitError,
    SignatureError,
    ValidationError,
)
from app.services.payments.fulfillment import FulfillmentEngine
from app.services.payments.gateway import InitializedTransaction, PaystackClient, VerifiedTransaction
from app.services.payments.service import InitializeResult, PaymentService, WebhookOutcome
from app.services.payments.signature import SIGNATURE_HEADER, WebhookSignatureVerifier, compute_signature
from app.services.payments.store import PaymentStore

__all__ = [
    "AuthorizationError",
    "FulfillmentError",
    "GatewayError",
    "NotFoundError",
    "PaymentError",
    "PaymentNotFoundError",
    "RateLimitError",
    "SignatureError",
    "ValidationError",
    "FulfillmentEngine",
    "InitializedTransaction",
    "PaystackClient",
    "VerifiedTransaction",
    "InitializeResult",
    "PaymentService",
    "WebhookOutcome",
    "SIGNATURE_HEADER",
    "WebhookSignatureVerifier",
    "compute_signature",
    "PaymentStore",
]
