"""
Shared fixtures: environment for Settings, a file-backed SQLite database
whose transactions take the write lock up front (BEGIN IMMEDIATE, so
concurrent sessions serialize like row locks do on PostgreSQL), factories
and a scripted gateway.
"""
import json
import os
import threading
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

# Settings are read at import time of app.core.config
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_webhook_secret_0123456789")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-0123456789abcdef")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.db.base import Base
from app.models.ad import Ad
from app.models.payment import Payment, ServiceType
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.models.user_subscription import UserSubscription
from app.services.payments.errors import GatewayError
from app.services.payments.gateway import InitializedTransaction, VerifiedTransaction
from app.services.payments.signature import compute_signature
from app.services.payments.store import PaymentStore

WEBHOOK_SECRET = os.environ["PAYSTACK_SECRET_KEY"]


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'payments.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    # factories commit and hand objects on; nothing may leave a transaction (and the write lock) open
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def write_counter(engine):
    """Counts INSERT/UPDATE/DELETE statements sent to the database."""
    statements = []

    @event.listens_for(engine, "before_cursor_execute")
    def _count(conn, cursor, statement, parameters, context, executemany):
        verb = statement.lstrip().split(" ", 1)[0].upper()
        if verb in ("INSERT", "UPDATE", "DELETE"):
            statements.append(statement)

    yield statements
    event.remove(engine, "before_cursor_execute", _count)


class FakeGateway:
    """Scripted stand-in for PaystackClient; thread-safe call log."""

    def __init__(self, status: str = "success") -> None:
        self.status = status
        self.verify_error: GatewayError | None = None
        self.initialize_error: GatewayError | None = None
        self.verify_calls: list[str] = []
        self.initialize_calls: list[dict] = []
        self._lock = threading.Lock()

    def initialize_transaction(self, **kwargs) -> InitializedTransaction:
        with self._lock:
            self.initialize_calls.append(kwargs)
        if self.initialize_error is not None:
            raise self.initialize_error
        return InitializedTransaction(
            authorization_url=f"https://checkout.paystack.com/{kwargs['reference']}",
            access_code="access_" + kwargs["reference"][-6:],
        )

    def verify_transaction(self, reference: str) -> VerifiedTransaction:
        with self._lock:
            self.verify_calls.append(reference)
        if self.verify_error is not None:
            raise self.verify_error
        return VerifiedTransaction(
            status=self.status,
            raw={"reference": reference, "status": self.status, "gateway_response": "Approved"},
        )

    def close(self) -> None:
        pass


@pytest.fixture
def gateway():
    return FakeGateway()


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------


def make_user(db, email: str | None = None) -> User:
    user = User(email=email or f"{uuid4().hex[:8]}@example.com", name="Seller")
    db.add(user)
    db.commit()
    return user


def make_ad(db, user_id: str, **kwargs) -> Ad:
    ad = Ad(user_id=user_id, title=kwargs.pop("title", "Toyota Corolla 2012"), **kwargs)
    db.add(ad)
    db.commit()
    return ad


def make_plan(
    db,
    duration: str = "month",
    price: int = 500_000,
    is_active: bool = True,
    features: list | None = None,
    ad_limit: int = -1,
) -> SubscriptionPlan:
    plan = SubscriptionPlan(
        name=f"Plan {duration}",
        price=price,
        duration=duration,
        is_active=is_active,
        features=features or [],
        ad_limit=ad_limit,
    )
    db.add(plan)
    db.commit()
    return plan


def make_subscription(
    db,
    user_id: str,
    plan_id: str,
    status: str = "active",
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    created_at: datetime | None = None,
) -> UserSubscription:
    now = datetime.now(timezone.utc)
    subscription = UserSubscription(
        user_id=user_id,
        plan_id=plan_id,
        payment_reference=f"zizi_subscription_{uuid4().hex[:12]}",
        start_date=start_date or now - timedelta(days=1),
        end_date=end_date or now + timedelta(days=29),
        status=status,
        created_at=created_at or now,
    )
    db.add(subscription)
    db.commit()
    return subscription


def make_payment(
    db,
    user_id: str,
    service: ServiceType = ServiceType.BUMP,
    amount: int = 50_000,
    reference: str | None = None,
    ad_id: str | None = None,
    subscription_plan_id: str | None = None,
) -> Payment:
    payment = PaymentStore(db).create(
        user_id=user_id,
        service=service,
        amount=amount,
        reference=reference or f"zizi_{service.value}_{uuid4().hex[:12]}",
        ad_id=ad_id,
        subscription_plan_id=subscription_plan_id,
    )
    db.commit()
    return payment


def as_caller(user: User) -> SimpleNamespace:
    """Plain user stand-in, safe to hand to other threads and sessions."""
    return SimpleNamespace(id=user.id, email=user.email)


def charge_success_body(reference: str, status: str = "success", event_name: str = "charge.success") -> bytes:
    event_body = {
        "event": event_name,
        "data": {
            "id": 302961,
            "reference": reference,
            "status": status,
            "amount": 50_000,
            "currency": "NGN",
            "paid_at": datetime.now(timezone.utc).isoformat(),
        },
    }
    return json.dumps(event_body).encode("utf-8")


def sign(body: bytes) -> str:
    return compute_signature(body, WEBHOOK_SECRET)

