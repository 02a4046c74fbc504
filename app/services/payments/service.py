"""
PaymentService - Paystack payments for ad promotions and seller subscriptions.

Responsibilities:
- Initialize a transaction at the server-side price (never the caller's amount)
- Confirm through either path: client verify poll or gateway webhook push
- Guarded pending -> completed transition + entitlement in one DB transaction
- Reconcile stale pending payments (Celery beat)
- Payment history, price list, purchase intent
"""
from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, assert_never
from uuid import uuid4

import redis
from sqlalchemy.orm import Session

from app.models.ad import Ad
from app.models.payment import Payment, PaymentStatus, ServiceType
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.services.payments.config import (
    SERVICE_PRICES,
    get_abandon_after,
    get_default_callback_url,
    get_purchase_rate_limit,
    get_reference_prefix,
    get_service_price,
)
from app.services.payments.errors import (
    AuthorizationError,
    FulfillmentError,
    GatewayError,
    NotFoundError,
    PaymentNotFoundError,
    RateLimitError,
    SignatureError,
    ValidationError,
)
from app.services.payments.fulfillment import FulfillmentEngine
from app.services.payments.gateway import PaystackClient, VerifiedTransaction, is_client_error
from app.services.payments.signature import WebhookSignatureVerifier
from app.services.payments.store import PaymentStore
from app.utils.currency import format_naira
from app.utils.dates import as_utc
from app.utils.metrics import (
    fulfillment_failures_total,
    payment_race_lost_total,
    payment_transitions_total,
    payments_initialized_total,
    webhook_events_total,
)

logger = logging.getLogger(__name__)

# Gateway statuses that end the attempt. Anything else that is not "success"
# (abandoned, ongoing, pending, processing, queued) may still settle.
GATEWAY_FAILED_STATUSES = frozenset({"failed", "reversed"})

ACTIONABLE_WEBHOOK_EVENT = "charge.success"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InitializeResult:
    payment_id: str
    reference: str
    authorization_url: str
    access_code: str


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNKNOWN_REFERENCE = "unknown_reference"


class PaymentService:
    def __init__(
        self,
        db: Session,
        gateway: PaystackClient,
        verifier: WebhookSignatureVerifier | None = None,
        redis_client: redis.Redis | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.verifier = verifier
        self.store = PaymentStore(db)
        self.fulfillment = FulfillmentEngine(db)
        self._redis = redis_client

    # ------------------------------------------------------------------
    # Initialize
    # ------------------------------------------------------------------

    def initialize(
        self,
        user: User,
        service: str | None = None,
        amount: int | None = None,
        ad_id: str | None = None,
        subscription_plan_id: str | None = None,
        callback_url: str | None = None,
    ) -> InitializeResult:
        """
        Create a pending payment and start the gateway transaction.
        Validation and ownership errors are raised before anything is persisted.
        """
        service_type = self._resolve_service(service, subscription_plan_id)

        if service_type is ServiceType.SUBSCRIPTION:
            plan = self._get_active_plan(subscription_plan_id)
            price = plan.price
            ad_id = None
        else:
            price = get_service_price(service_type)
            if not ad_id:
                raise ValidationError("ad_id is required for ad services")
            self._get_owned_ad(ad_id, user.id)
            subscription_plan_id = None

        if amount is not None and amount != price:
            raise ValidationError("Invalid amount for service")

        if not self._check_rate_limit(user.id):
            raise RateLimitError("Too many payment attempts. Try again later.")

        reference = self._generate_reference(service_type)
        try:
            payment = self.store.create(
                user_id=user.id,
                service=service_type,
                amount=price,
                reference=reference,
                ad_id=ad_id,
                subscription_plan_id=subscription_plan_id,
            )
            payment_id = payment.id
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        payments_initialized_total.labels(service=service_type.value).inc()
        logger.info(
            "payment_initialized",
            extra={
                "payment_id": payment_id,
                "reference": reference,
                "user_id": user.id,
                "service": service_type.value,
                "amount": price,
            },
        )

        metadata = {
            "user_id": user.id,
            "service": service_type.value,
            "ad_id": ad_id,
            "subscription_plan_id": subscription_plan_id,
            "payment_id": payment_id,
        }
        try:
            transaction = self.gateway.initialize_transaction(
                amount=price,
                reference=reference,
                callback_url=callback_url or get_default_callback_url(),
                metadata=metadata,
                email=user.email,
            )
        except GatewayError:
            # the row stays pending; reconciliation settles it
            logger.warning(
                "payment_initialize_gateway_error",
                extra={"payment_id": payment_id, "reference": reference},
            )
            raise

        return InitializeResult(
            payment_id=payment_id,
            reference=reference,
            authorization_url=transaction.authorization_url,
            access_code=transaction.access_code,
        )

    @staticmethod
    def _resolve_service(service: str | None, subscription_plan_id: str | None) -> ServiceType:
        if subscription_plan_id:
            if service not in (None, ServiceType.SUBSCRIPTION.value):
                raise ValidationError("Use either service or subscription_plan_id, not both")
            return ServiceType.SUBSCRIPTION
        if not service:
            raise ValidationError("Either service or subscription_plan_id is required")
        try:
            service_type = ServiceType(service)
        except ValueError:
            raise ValidationError("Invalid service type") from None
        if service_type is ServiceType.SUBSCRIPTION:
            raise ValidationError("subscription_plan_id is required for subscription payments")
        return service_type

    def _get_active_plan(self, plan_id: str) -> SubscriptionPlan:
        plan = self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).one_or_none()
        if plan is None or not plan.is_active:
            raise NotFoundError("Subscription plan not found")
        return plan

    def _get_owned_ad(self, ad_id: str, user_id: str) -> Ad:
        ad = self.db.query(Ad).filter(Ad.id == ad_id).one_or_none()
        if ad is None:
            raise NotFoundError("Ad not found")
        if ad.user_id != user_id:
            raise AuthorizationError("Ad not owned by user")
        return ad

    @staticmethod
    def _generate_reference(service_type: ServiceType) -> str:
        return f"{get_reference_prefix()}_{service_type.value}_{int(time.time() * 1000)}_{uuid4().hex[:12]}"

    # ------------------------------------------------------------------
    # Path A: client verify
    # ------------------------------------------------------------------

    def verify(self, reference: str, user: User) -> Payment:
        """
        Confirm a payment on the caller's request.
        Terminal payments are returned as stored, without calling the gateway.
        """
        payment = self.store.find_by_reference(reference, owner_id=user.id)
        if payment.status.is_terminal:
            return payment
        return self._confirm_with_gateway(payment, source="verify")

    def _confirm_with_gateway(
        self,
        payment: Payment,
        source: str,
        fail_unsettled: bool = False,
    ) -> Payment:
        payment_id, reference = payment.id, payment.reference
        # no transaction stays open across the network call
        self.db.commit()

        try:
            result = self.gateway.verify_transaction(reference)
        except GatewayError as e:
            if fail_unsettled and is_client_error(e):
                payload = {"gateway_error": e.message, "http_status": e.http_status}
                return self._fail(payment_id, payload, source)[0]
            raise

        return self._apply_gateway_result(payment_id, result, source, fail_unsettled)

    def _apply_gateway_result(
        self,
        payment_id: str,
        result: VerifiedTransaction,
        source: str,
        fail_unsettled: bool,
    ) -> Payment:
        if result.succeeded:
            return self._complete(payment_id, result.raw, source)[0]
        if result.status in GATEWAY_FAILED_STATUSES or fail_unsettled:
            return self._fail(payment_id, result.raw, source)[0]
        logger.info(
            "payment_not_settled",
            extra={"payment_id": payment_id, "gateway_status": result.status, "source": source},
        )
        return self.store.get(payment_id)

    # ------------------------------------------------------------------
    # Path B: webhook push
    # ------------------------------------------------------------------

    def handle_webhook(self, raw_body: bytes, signature: str | None) -> WebhookOutcome:
        """
        Authenticate, then apply a charge.success event.
        Anything that is not an actionable, known, pending payment is acknowledged without writes.
        """
        if self.verifier is None:
            raise RuntimeError("PaymentService needs a WebhookSignatureVerifier to accept webhooks")
        try:
            self.verifier.verify(raw_body, signature)
        except SignatureError:
            webhook_events_total.labels(result="invalid_signature").inc()
            raise

        try:
            event = json.loads(raw_body)
        except ValueError:
            webhook_events_total.labels(result="malformed").inc()
            raise ValidationError("Malformed webhook body") from None
        if not isinstance(event, dict):
            webhook_events_total.labels(result="malformed").inc()
            raise ValidationError("Malformed webhook body")

        outcome = self._process_event(event)
        webhook_events_total.labels(result=outcome.value).inc()
        return outcome

    def _process_event(self, event: dict[str, Any]) -> WebhookOutcome:
        data = event.get("data")
        if not isinstance(data, dict):
            return WebhookOutcome.IGNORED
        reference = data.get("reference")
        if event.get("event") != ACTIONABLE_WEBHOOK_EVENT or data.get("status") != "success" or not reference:
            logger.info(
                "webhook_ignored",
                extra={"event": event.get("event"), "gateway_status": data.get("status"), "reference": reference},
            )
            return WebhookOutcome.IGNORED

        try:
            payment = self.store.find_by_reference(str(reference))
        except PaymentNotFoundError:
            logger.warning("webhook_unknown_reference", extra={"reference": reference})
            return WebhookOutcome.UNKNOWN_REFERENCE

        if payment.status.is_terminal:
            if payment.status is PaymentStatus.FAILED:
                logger.warning(
                    "webhook_success_for_failed_payment",
                    extra={"payment_id": payment.id, "reference": reference},
                )
            return WebhookOutcome.DUPLICATE

        _, won = self._complete(payment.id, data, source="webhook")
        return WebhookOutcome.PROCESSED if won else WebhookOutcome.DUPLICATE

    # ------------------------------------------------------------------
    # Guarded transitions (the only writers of Payment.status)
    # ------------------------------------------------------------------

    def _complete(self, payment_id: str, payload: dict[str, Any], source: str) -> tuple[Payment, bool]:
        """
        pending -> completed plus fulfillment, committed together.
        Returns (payment, won). Losing the race is a successful no-op.
        """
        now = _utcnow()
        payment: Payment | None = None
        try:
            won = self.store.conditional_transition(
                payment_id, PaymentStatus.PENDING, PaymentStatus.COMPLETED, payload
            )
            if not won:
                self.db.rollback()
                payment_race_lost_total.labels(source=source).inc()
                logger.info("payment_already_transitioned", extra={"payment_id": payment_id, "source": source})
                return self.store.get(payment_id), False

            payment = self.store.get(payment_id)
            self.fulfillment.apply(payment, now)
            log_extra = {
                "payment_id": payment_id,
                "reference": payment.reference,
                "user_id": payment.user_id,
                "service": payment.service.value,
                "source": source,
            }
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            if payment is not None:
                fulfillment_failures_total.labels(service=payment.service.value).inc()
                logger.exception(
                    "payment_fulfillment_failed",
                    extra={"payment_id": payment_id, "source": source, "error": str(e)},
                )
            if isinstance(e, FulfillmentError) or payment is None:
                raise
            raise FulfillmentError(f"Fulfillment failed for payment {payment_id}") from e

        payment_transitions_total.labels(status=PaymentStatus.COMPLETED.value, source=source).inc()
        logger.info("payment_completed", extra=log_extra)
        return payment, True

    def _fail(self, payment_id: str, payload: dict[str, Any], source: str) -> tuple[Payment, bool]:
        try:
            won = self.store.conditional_transition(
                payment_id, PaymentStatus.PENDING, PaymentStatus.FAILED, payload
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if won:
            payment_transitions_total.labels(status=PaymentStatus.FAILED.value, source=source).inc()
            logger.info("payment_failed", extra={"payment_id": payment_id, "source": source})
        else:
            payment_race_lost_total.labels(source=source).inc()
        return self.store.get(payment_id), won

    # ------------------------------------------------------------------
    # Reconciliation (Celery beat)
    # ------------------------------------------------------------------

    def reconcile(self, payment_id: str) -> Payment:
        """
        Re-verify one pending payment with the gateway.
        Past the abandon window an unsettled payment is marked failed.
        """
        payment = self.store.get(payment_id)
        if payment.status.is_terminal:
            return payment
        created_at = as_utc(payment.created_at)
        fail_unsettled = created_at is not None and created_at < _utcnow() - get_abandon_after()
        return self._confirm_with_gateway(payment, source="reconcile", fail_unsettled=fail_unsettled)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def history(self, user: User, page: int = 1, limit: int = 20) -> dict[str, Any]:
        rows, total = self.store.list_for_user(user.id, page=page, limit=limit)
        return {
            "payments": rows,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    @staticmethod
    def prices() -> dict[str, dict[str, Any]]:
        return {
            service.value: {
                "amount": amount,
                "naira": amount / 100,
                "label": format_naira(amount),
            }
            for service, amount in SERVICE_PRICES.items()
        }

    def intent(self, user: User, ad_id: str, service: str) -> dict[str, Any]:
        """Whether an ad service can be bought now. Bump can always be re-bought."""
        try:
            service_type = ServiceType(service)
        except ValueError:
            raise ValidationError("Invalid service type") from None

        ad = self._get_owned_ad(ad_id, user.id)
        now = _utcnow()
        match service_type:
            case ServiceType.BUMP:
                expires_at = as_utc(ad.bump_expires_at)
                is_active = expires_at is not None and expires_at > now
            case ServiceType.FEATURE:
                expires_at = as_utc(ad.featured_until)
                is_active = bool(ad.is_featured) and expires_at is not None and expires_at > now
            case ServiceType.URGENT:
                expires_at = as_utc(ad.urgent_until)
                is_active = bool(ad.is_urgent) and expires_at is not None and expires_at > now
            case ServiceType.SUBSCRIPTION:
                raise ValidationError("Invalid service type")
            case _ as unreachable:
                assert_never(unreachable)

        price = get_service_price(service_type)
        return {
            "ad_id": ad_id,
            "service": service_type.value,
            "price": price,
            "price_naira": price / 100,
            "is_active": is_active,
            "expires_at": expires_at,
            "can_purchase": not is_active or service_type is ServiceType.BUMP,
        }

    # ------------------------------------------------------------------
    # Rate-limit (Redis, shared by all API replicas)
    # ------------------------------------------------------------------

    def _check_rate_limit(self, user_id: str) -> bool:
        """No more than purchase_rate_limit initializations per window. Fails open without Redis."""
        if self._redis is None:
            return True
        limit, window = get_purchase_rate_limit()
        key = f"purchase_rate:{user_id}"
        try:
            current = self._redis.incr(key)
            if current == 1:
                self._redis.expire(key, window)
            return current <= limit
        except redis.RedisError as e:
            logger.warning("purchase_rate_limit_redis_error", extra={"error": str(e)})
            return True
