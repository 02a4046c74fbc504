"""
Webhook authentication: HMAC-SHA512 of the raw request body keyed with the
Paystack secret, hex-encoded in the x-paystack-signature header.
"""
from __future__ import annotations

import hashlib
import hmac
import logging

from app.services.payments.errors import SignatureError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


class WebhookSignatureVerifier:
    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("webhook secret must not be empty")
        self._secret = secret

    def verify(self, raw_body: bytes, signature: str | None) -> None:
        """Raise SignatureError unless `signature` matches the body. Never looks inside the body."""
        if not signature:
            logger.warning("webhook_signature_missing")
            raise SignatureError("Missing signature")
        expected = compute_signature(raw_body, self._secret)
        # bytes: compare_digest rejects non-ASCII str
        if not hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8")):
            logger.warning("webhook_signature_mismatch")
            raise SignatureError("Invalid signature")
