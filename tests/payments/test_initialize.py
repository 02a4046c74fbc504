"""PaymentService.initialize: server-side pricing, validation before persistence, rate limit; intent."""
from unittest.mock import MagicMock, patch

import pytest
import redis

from app.models.payment import Payment, PaymentStatus, ServiceType
from app.services.payments.errors import (
    AuthorizationError,
    GatewayError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from app.services.payments.service import PaymentService
from conftest import make_ad, make_plan, make_user


@pytest.fixture
def seller(db):
    return make_user(db)


@pytest.fixture
def ad(db, seller):
    return make_ad(db, seller.id)


def _payments(db):
    return db.query(Payment).all()


class TestInitialize:
    def test_ad_service_uses_server_price(self, db, gateway, seller, ad):
        result = PaymentService(db, gateway).initialize(seller, service="feature", ad_id=ad.id)

        payment = db.query(Payment).filter(Payment.id == result.payment_id).one()
        assert payment.status is PaymentStatus.PENDING
        assert payment.service is ServiceType.FEATURE
        assert payment.amount == 200_000
        assert payment.ad_id == ad.id
        assert payment.reference == result.reference
        assert result.reference.startswith("zizi_feature_")
        assert result.authorization_url.endswith(result.reference)

        call = gateway.initialize_calls[0]
        assert call["amount"] == 200_000
        assert call["email"] == seller.email
        assert call["callback_url"] == "http://localhost:5173/payment/callback"
        assert call["metadata"] == {
            "user_id": seller.id,
            "service": "feature",
            "ad_id": ad.id,
            "subscription_plan_id": None,
            "payment_id": result.payment_id,
        }

    def test_matching_amount_is_accepted(self, db, gateway, seller, ad):
        PaymentService(db, gateway).initialize(seller, service="bump", amount=50_000, ad_id=ad.id)
        assert len(_payments(db)) == 1

    def test_custom_callback_url(self, db, gateway, seller, ad):
        PaymentService(db, gateway).initialize(
            seller, service="urgent", ad_id=ad.id, callback_url="https://zizi.example/paid"
        )
        assert gateway.initialize_calls[0]["callback_url"] == "https://zizi.example/paid"

    def test_subscription_priced_by_plan(self, db, gateway, seller):
        plan = make_plan(db, price=750_000)

        result = PaymentService(db, gateway).initialize(seller, subscription_plan_id=plan.id)

        payment = db.query(Payment).filter(Payment.id == result.payment_id).one()
        assert payment.service is ServiceType.SUBSCRIPTION
        assert payment.amount == 750_000
        assert payment.subscription_plan_id == plan.id
        assert payment.ad_id is None

    def test_references_are_unique(self, db, gateway, seller, ad):
        service = PaymentService(db, gateway)
        references = {service.initialize(seller, service="bump", ad_id=ad.id).reference for _ in range(5)}
        assert len(references) == 5

    def test_gateway_error_leaves_pending_row(self, db, gateway, seller, ad):
        gateway.initialize_error = GatewayError("Payment gateway unreachable")

        with pytest.raises(GatewayError):
            PaymentService(db, gateway).initialize(seller, service="bump", ad_id=ad.id)

        payments = _payments(db)
        assert len(payments) == 1
        assert payments[0].status is PaymentStatus.PENDING


class TestRejectedBeforePersistence:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"service": "teleport"},
            {"service": "subscription"},
            {"service": "bump"},
            {"service": "bump", "subscription_plan_id": "plan-1"},
        ],
    )
    def test_invalid_requests(self, db, gateway, seller, kwargs):
        with pytest.raises(ValidationError):
            PaymentService(db, gateway).initialize(seller, **kwargs)
        assert _payments(db) == []
        assert gateway.initialize_calls == []

    def test_amount_mismatch(self, db, gateway, seller, ad):
        with pytest.raises(ValidationError) as exc_info:
            PaymentService(db, gateway).initialize(seller, service="feature", amount=100, ad_id=ad.id)
        assert exc_info.value.message == "Invalid amount for service"
        assert _payments(db) == []
        assert gateway.initialize_calls == []

    def test_missing_ad(self, db, gateway, seller):
        with pytest.raises(NotFoundError):
            PaymentService(db, gateway).initialize(seller, service="bump", ad_id="missing")
        assert _payments(db) == []

    def test_someone_elses_ad(self, db, gateway, seller, ad):
        stranger = make_user(db)
        with pytest.raises(AuthorizationError) as exc_info:
            PaymentService(db, gateway).initialize(stranger, service="bump", ad_id=ad.id)
        assert exc_info.value.status_code == 403
        assert _payments(db) == []

    def test_inactive_plan(self, db, gateway, seller):
        plan = make_plan(db, is_active=False)
        with pytest.raises(NotFoundError):
            PaymentService(db, gateway).initialize(seller, subscription_plan_id=plan.id)
        assert _payments(db) == []


class TestRateLimit:
    @patch("app.services.payments.service.get_purchase_rate_limit", return_value=(2, 60))
    def test_blocks_after_limit(self, _limit, db, gateway, seller, ad):
        redis_client = MagicMock()
        redis_client.incr.side_effect = [1, 2, 3]
        service = PaymentService(db, gateway, redis_client=redis_client)

        service.initialize(seller, service="bump", ad_id=ad.id)
        service.initialize(seller, service="bump", ad_id=ad.id)
        with pytest.raises(RateLimitError) as exc_info:
            service.initialize(seller, service="bump", ad_id=ad.id)

        assert exc_info.value.retryable
        assert len(_payments(db)) == 2
        redis_client.incr.assert_called_with(f"purchase_rate:{seller.id}")
        redis_client.expire.assert_called_once_with(f"purchase_rate:{seller.id}", 60)

    def test_fails_open_when_redis_is_down(self, db, gateway, seller, ad):
        redis_client = MagicMock()
        redis_client.incr.side_effect = redis.ConnectionError("redis down")

        PaymentService(db, gateway, redis_client=redis_client).initialize(seller, service="bump", ad_id=ad.id)

        assert len(_payments(db)) == 1


class TestIntent:
    @pytest.mark.parametrize("service_type", list(ServiceType))
    def test_every_service_type_is_answered(self, db, gateway, seller, ad, service_type):
        service = PaymentService(db, gateway)
        if service_type is ServiceType.SUBSCRIPTION:
            with pytest.raises(ValidationError):
                service.intent(seller, ad.id, service_type.value)
            return

        result = service.intent(seller, ad.id, service_type.value)
        assert result["service"] == service_type.value
        assert result["is_active"] is False
        assert result["can_purchase"] is True

    def test_unknown_service(self, db, gateway, seller, ad):
        with pytest.raises(ValidationError):
            PaymentService(db, gateway).intent(seller, ad.id, "teleport")
