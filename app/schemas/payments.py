from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InitializePaymentIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    service: str | None = None  # bump | feature | urgent (subscription is implied by the plan id)
    amount: int | None = Field(None, description="Optional; must equal the server price in kobo")
    ad_id: str | None = None
    subscription_plan_id: str | None = None
    callback_url: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def reject_fractional_amount(cls, v: Any) -> Any:
        if isinstance(v, float) and not v.is_integer():
            raise ValueError("amount must be a whole number of kobo")
        return v


class InitializePaymentOut(BaseModel):
    payment_id: str
    reference: str
    authorization_url: str
    access_code: str


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    ad_id: str | None = None
    subscription_plan_id: str | None = None
    service: str
    amount: int
    reference: str
    status: str
    verified_at: datetime | None = None
    created_at: datetime

    @field_validator("service", "status", mode="before")
    @classmethod
    def enum_value(cls, v: Any) -> Any:
        return getattr(v, "value", v)


class PaymentHistoryItem(PaymentOut):
    ad_title: str | None = None


class PaymentHistoryOut(BaseModel):
    payments: list[PaymentHistoryItem]
    total: int
    page: int
    limit: int
    total_pages: int


class ServicePriceOut(BaseModel):
    amount: int
    naira: float
    label: str


class PaymentIntentIn(BaseModel):
    ad_id: str
    service: str


class PaymentIntentOut(BaseModel):
    ad_id: str
    service: str
    price: int
    price_naira: float
    is_active: bool
    expires_at: datetime | None = None
    can_purchase: bool


class WebhookAck(BaseModel):
    success: bool = True
    outcome: str
