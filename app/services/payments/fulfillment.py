"""
FulfillmentEngine - applies what a completed payment bought.

Runs only for the caller that won the pending -> completed transition and
inside that caller's transaction; it flushes but never commits. Any error
raised here rolls the transition back with it.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import assert_never

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.ad import Ad
from app.models.payment import Payment, ServiceType
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.models.user_subscription import UserSubscription
from app.services.payments.config import BUMP_DURATION, FEATURE_DURATION, URGENT_DURATION
from app.services.payments.errors import FulfillmentError
from app.utils.dates import add_months, add_years

logger = logging.getLogger(__name__)


def subscription_end_date(start: datetime, duration: str) -> datetime:
    if duration == "month":
        return add_months(start, 1)
    if duration == "year":
        return add_years(start, 1)
    raise FulfillmentError(f"Unsupported plan duration: {duration!r}")


class FulfillmentEngine:
    def __init__(self, db: Session):
        self.db = db

    def apply(self, payment: Payment, now: datetime) -> None:
        match payment.service:
            case ServiceType.SUBSCRIPTION:
                self._activate_subscription(payment, now)
            case ServiceType.BUMP:
                ad = self._lock_ad(payment)
                ad.bumped_at = now
                ad.bump_expires_at = now + BUMP_DURATION
            case ServiceType.FEATURE:
                ad = self._lock_ad(payment)
                ad.is_featured = True
                ad.featured_at = now
                ad.featured_until = now + FEATURE_DURATION
            case ServiceType.URGENT:
                ad = self._lock_ad(payment)
                ad.is_urgent = True
                ad.urgent_at = now
                ad.urgent_until = now + URGENT_DURATION
            case _ as unreachable:
                assert_never(unreachable)

        self.db.flush()
        logger.info(
            "entitlement_applied",
            extra={
                "payment_id": payment.id,
                "reference": payment.reference,
                "service": payment.service.value,
                "ad_id": payment.ad_id,
                "plan_id": payment.subscription_plan_id,
            },
        )

    def _lock_ad(self, payment: Payment) -> Ad:
        if not payment.ad_id:
            raise FulfillmentError(f"Payment {payment.reference} has no ad for service {payment.service.value}")
        ad = (
            self.db.query(Ad)
            .filter(Ad.id == payment.ad_id)
            .with_for_update()
            .one_or_none()
        )
        if ad is None:
            raise FulfillmentError(f"Ad {payment.ad_id} not found")
        return ad

    def _activate_subscription(self, payment: Payment, now: datetime) -> UserSubscription:
        plan = (
            self.db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.id == payment.subscription_plan_id)
            .one_or_none()
        )
        if plan is None:
            raise FulfillmentError(f"Subscription plan {payment.subscription_plan_id} not found")

        end_date = subscription_end_date(now, plan.duration)

        # a user holds at most one active subscription; the user row lock
        # serializes concurrent activations for the same user
        user = (
            self.db.query(User)
            .filter(User.id == payment.user_id)
            .with_for_update()
            .one_or_none()
        )
        if user is None:
            raise FulfillmentError(f"User {payment.user_id} not found")
        self.db.execute(
            update(UserSubscription)
            .where(
                UserSubscription.user_id == payment.user_id,
                UserSubscription.status == "active",
            )
            .values(status="cancelled", cancelled_at=now)
            .execution_options(synchronize_session=False)
        )
        subscription = UserSubscription(
            user_id=payment.user_id,
            plan_id=plan.id,
            payment_reference=payment.reference,
            start_date=now,
            end_date=end_date,
            status="active",
        )
        self.db.add(subscription)
        return subscription
