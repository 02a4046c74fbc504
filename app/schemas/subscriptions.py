from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class SubscriptionPlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    price: int
    duration: str
    features: list[Any]
    ad_limit: int


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    plan_id: str
    payment_reference: str
    start_date: datetime
    end_date: datetime
    status: str
    cancelled_at: datetime | None = None
    created_at: datetime


class CurrentSubscriptionOut(SubscriptionOut):
    plan_name: str
    features: list[Any]
    ad_limit: int


class SubscriptionHistoryItem(SubscriptionOut):
    plan_name: str
    price: int


class SubscriptionHistoryOut(BaseModel):
    subscriptions: list[SubscriptionHistoryItem]
    total: int
    page: int
    limit: int
    total_pages: int


class CancelSubscriptionIn(BaseModel):
    subscription_id: str
