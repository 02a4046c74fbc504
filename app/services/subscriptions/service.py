"""
SubscriptionService - seller subscriptions as seen by their owner.

Activation happens only in FulfillmentEngine after a verified payment;
here: plan catalogue, current entitlement, history and cancellation.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.models.user_subscription import UserSubscription
from app.services.payments.errors import SubscriptionNotFoundError

logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(self, db: Session):
        self.db = db

    def list_plans(self) -> list[SubscriptionPlan]:
        return (
            self.db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.price)
            .all()
        )

    def current(self, user: User, now: datetime | None = None) -> tuple[UserSubscription, SubscriptionPlan] | None:
        """The newest active subscription that has not yet ended, with its plan."""
        now = now or datetime.now(timezone.utc)
        row = (
            self.db.query(UserSubscription, SubscriptionPlan)
            .join(SubscriptionPlan, SubscriptionPlan.id == UserSubscription.plan_id)
            .filter(
                UserSubscription.user_id == user.id,
                UserSubscription.status == "active",
                UserSubscription.end_date > now,
            )
            .order_by(UserSubscription.created_at.desc())
            .first()
        )
        if row is None:
            return None
        subscription, plan = row
        return subscription, plan

    def history(self, user: User, page: int = 1, limit: int = 20) -> dict[str, Any]:
        """Newest first, each row with its plan name and price."""
        rows = (
            self.db.query(UserSubscription, SubscriptionPlan.name, SubscriptionPlan.price)
            .join(SubscriptionPlan, SubscriptionPlan.id == UserSubscription.plan_id)
            .filter(UserSubscription.user_id == user.id)
            .order_by(UserSubscription.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
        total = (
            self.db.query(func.count(UserSubscription.id))
            .filter(UserSubscription.user_id == user.id)
            .scalar()
        ) or 0
        return {
            "subscriptions": [(subscription, name, price) for subscription, name, price in rows],
            "total": int(total),
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    def cancel(self, user: User, subscription_id: str) -> UserSubscription:
        """Cancel one of the caller's active subscriptions. Anything else is not found."""
        try:
            result = self.db.execute(
                update(UserSubscription)
                .where(
                    UserSubscription.id == subscription_id,
                    UserSubscription.user_id == user.id,
                    UserSubscription.status == "active",
                )
                .values(status="cancelled", cancelled_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise SubscriptionNotFoundError()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        subscription = (
            self.db.query(UserSubscription)
            .filter(UserSubscription.id == subscription_id)
            .populate_existing()
            .one()
        )
        logger.info("subscription_cancelled", extra={"user_id": user.id, "plan_id": subscription.plan_id})
        return subscription
