"""
Paystack client wrapper using httpx sync client.

Constructed once per process (API lifespan, Celery task) and passed in
explicitly. No retries here: every failure becomes GatewayError and the
caller decides whether to retry.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
import pybreaker

from app.services.payments.errors import GatewayError
from app.utils.metrics import gateway_request_duration_seconds, gateway_requests_total


logger = logging.getLogger(__name__)

PAYSTACK_API_BASE = "https://api.paystack.co"


@dataclass(frozen=True)
class InitializedTransaction:
    authorization_url: str
    access_code: str


@dataclass(frozen=True)
class VerifiedTransaction:
    status: str  # "success" | "failed" | "abandoned" | "ongoing" | ...
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def is_client_error(exc: BaseException) -> bool:
    """4xx answers are caller mistakes (unknown reference, bad amount), not gateway outages."""
    return isinstance(exc, GatewayError) and exc.http_status is not None and 400 <= exc.http_status < 500


class PaystackClient:
    """Sync Paystack client: transaction initialize and verify."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = PAYSTACK_API_BASE,
        timeout: float = 15.0,
        breaker: pybreaker.CircuitBreaker | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._breaker = breaker
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        self._client.close()

    def _record_request(self, operation: str, status: str, duration: float) -> None:
        gateway_requests_total.labels(operation=operation, status=status).inc()
        gateway_request_duration_seconds.labels(operation=operation).observe(duration)

    def _call(self, operation: str, func: Callable[[], dict]) -> dict:
        start = time.time()
        try:
            if self._breaker is not None:
                result = self._breaker.call(func)
            else:
                result = func()
        except pybreaker.CircuitBreakerError as e:
            self._record_request(operation, "circuit_open", time.time() - start)
            logger.warning("gateway_circuit_open", extra={"operation": operation})
            raise GatewayError("Payment gateway temporarily unavailable") from e
        except GatewayError:
            self._record_request(operation, "error", time.time() - start)
            raise
        self._record_request(operation, "success", time.time() - start)
        return result

    def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        try:
            resp = self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.warning("gateway_timeout", extra={"path": path, "error": str(e)})
            raise GatewayError("Payment gateway timed out") from e
        except httpx.HTTPError as e:
            logger.warning("gateway_network_error", extra={"path": path, "error": str(e)})
            raise GatewayError("Payment gateway unreachable") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400 or not isinstance(body, dict) or not body.get("status"):
            message = body.get("message") if isinstance(body, dict) else None
            logger.warning(
                "gateway_error_response",
                extra={"path": path, "status_code": resp.status_code, "error": message},
            )
            raise GatewayError(message or "Paystack API error", http_status=resp.status_code)
        return body

    def initialize_transaction(
        self,
        amount: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any],
        email: str,
    ) -> InitializedTransaction:
        """Start a transaction. amount is in minor units (kobo) and is sent as-is."""
        payload = {
            "email": email,
            "amount": amount,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
        }
        body = self._call(
            "initialize",
            lambda: self._request("POST", "/transaction/initialize", json=payload),
        )
        data = body.get("data") or {}
        if not data.get("authorization_url") or not data.get("access_code"):
            raise GatewayError("Paystack initialize response missing authorization data")
        return InitializedTransaction(
            authorization_url=data["authorization_url"],
            access_code=data["access_code"],
        )

    def verify_transaction(self, reference: str) -> VerifiedTransaction:
        body = self._call(
            "verify",
            lambda: self._request("GET", f"/transaction/verify/{reference}"),
        )
        data = body.get("data") or {}
        return VerifiedTransaction(status=str(data.get("status") or ""), raw=data)
