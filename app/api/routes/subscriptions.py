"""
Subscription routes: plan catalogue, the caller's current plan, history and cancel.
Subscriptions start only through a verified payment (see /payments).
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.user import User
from app.schemas.subscriptions import (
    CancelSubscriptionIn,
    CurrentSubscriptionOut,
    SubscriptionHistoryItem,
    SubscriptionHistoryOut,
    SubscriptionOut,
    SubscriptionPlanOut,
)
from app.services.auth.jwt import get_current_user
from app.services.subscriptions.service import SubscriptionService


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(db)


@router.get("/plans", response_model=list[SubscriptionPlanOut])
def list_plans(service: SubscriptionService = Depends(get_subscription_service)) -> list[SubscriptionPlanOut]:
    return [SubscriptionPlanOut.model_validate(plan) for plan in service.list_plans()]


@router.get("/current", response_model=CurrentSubscriptionOut | None)
def current_subscription(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> CurrentSubscriptionOut | None:
    """null when the caller has no unexpired active subscription."""
    found = service.current(user)
    if found is None:
        return None
    subscription, plan = found
    return CurrentSubscriptionOut(
        **SubscriptionOut.model_validate(subscription).model_dump(),
        plan_name=plan.name,
        features=plan.features or [],
        ad_limit=plan.ad_limit,
    )


@router.get("/history", response_model=SubscriptionHistoryOut)
def subscription_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionHistoryOut:
    result = service.history(user, page=page, limit=limit)
    items = [
        SubscriptionHistoryItem(
            **SubscriptionOut.model_validate(subscription).model_dump(),
            plan_name=plan_name,
            price=price,
        )
        for subscription, plan_name, price in result["subscriptions"]
    ]
    return SubscriptionHistoryOut(
        subscriptions=items,
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@router.put("/cancel", response_model=SubscriptionOut)
def cancel_subscription(
    body: CancelSubscriptionIn,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionOut:
    return SubscriptionOut.model_validate(service.cancel(user, body.subscription_id))
