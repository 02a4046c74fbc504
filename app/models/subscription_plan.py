"""
SubscriptionPlan - seller plans managed from the admin panel.
price is the server-side source of truth for subscription payments.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from app.db.base import Base, JSONType

PLAN_DURATIONS = ("month", "year")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Integer, nullable=False)  # minor units (kobo)
    duration = Column(String, nullable=False, default="month")  # month / year
    features = Column(JSONType, nullable=False, default=list)
    ad_limit = Column(Integer, nullable=False, default=-1)  # -1 = unlimited
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
