"""
Payments config - server-side price table and typed wrappers over app.core.config.settings.
Amounts are minor units (kobo); callers never supply the charged amount.
"""
from __future__ import annotations

from datetime import timedelta

from app.core.config import settings
from app.models.payment import ServiceType

SERVICE_PRICES: dict[ServiceType, int] = {
    ServiceType.BUMP: 50_000,  # ₦500
    ServiceType.FEATURE: 200_000,  # ₦2000
    ServiceType.URGENT: 100_000,  # ₦1000
}

BUMP_DURATION = timedelta(days=7)
FEATURE_DURATION = timedelta(days=30)
URGENT_DURATION = timedelta(days=7)


def get_service_price(service: ServiceType) -> int:
    """Price of an ad service. Subscriptions are priced by their plan."""
    return SERVICE_PRICES[service]


def get_default_callback_url() -> str:
    return f"{settings.client_url.rstrip('/')}/payment/callback"


def get_reference_prefix() -> str:
    return settings.payment_reference_prefix


def get_purchase_rate_limit() -> tuple[int, int]:
    return settings.purchase_rate_limit, settings.purchase_rate_window_seconds


def get_reconcile_min_age() -> timedelta:
    return timedelta(minutes=settings.payment_reconcile_min_age_minutes)


def get_abandon_after() -> timedelta:
    return timedelta(hours=settings.payment_abandon_after_hours)


def get_reconcile_batch_size() -> int:
    return settings.payment_reconcile_batch_size
