"""
Payment model - ledger of gateway (Paystack) payment attempts.
reference is generated locally, echoed back by the gateway and unique.
status moves once: pending -> completed | failed; terminal rows are never changed.
"""
import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum, Integer, String

from app.db.base import Base, JSONType


class ServiceType(str, enum.Enum):
    BUMP = "bump"
    FEATURE = "feature"
    URGENT = "urgent"
    SUBSCRIPTION = "subscription"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    ad_id = Column(String, nullable=True, index=True)
    subscription_plan_id = Column(String, nullable=True)
    service = Column(
        Enum(ServiceType, name="payment_service", native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    amount = Column(Integer, nullable=False)  # minor units (kobo)
    reference = Column(String, unique=True, nullable=False)
    status = Column(
        Enum(PaymentStatus, name="payment_status", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    gateway_response = Column(JSONType, nullable=True)  # raw verify/webhook payload
    verified_at = Column(DateTime(timezone=True), nullable=True)
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
