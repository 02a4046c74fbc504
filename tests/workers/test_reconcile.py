"""Reconciliation of stale pending payments (Celery beat task)."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from app.models.payment import PaymentStatus
from app.services.payments.errors import GatewayError
from app.services.payments.gateway import VerifiedTransaction
from app.services.payments.service import PaymentService
from app.services.payments.store import PaymentStore
from app.workers.tasks.reconcile_payments import reconcile_batch, reconcile_pending_payments
from conftest import FakeGateway, make_ad, make_payment, make_user


class ScriptedGateway(FakeGateway):
    """Per-reference answers: a status string or a GatewayError to raise."""

    def __init__(self, answers):
        super().__init__()
        self.answers = answers

    def verify_transaction(self, reference):
        self.verify_calls.append(reference)
        answer = self.answers[reference]
        if isinstance(answer, GatewayError):
            raise answer
        return VerifiedTransaction(status=answer, raw={"reference": reference, "status": answer})


@pytest.fixture
def seller(db):
    return make_user(db)


@pytest.fixture
def ad(db, seller):
    return make_ad(db, seller.id)


def _aged_payment(db, seller, ad, age: timedelta):
    payment = make_payment(db, seller.id, ad_id=ad.id)
    payment.created_at = datetime.now(timezone.utc) - age
    db.commit()
    return payment


class TestReconcileBatch:
    def test_settles_by_gateway_answer(self, db, seller, ad):
        paid = _aged_payment(db, seller, ad, timedelta(minutes=30))
        declined = _aged_payment(db, seller, ad, timedelta(minutes=30))
        still_open = _aged_payment(db, seller, ad, timedelta(hours=2))
        gateway = ScriptedGateway({
            paid.reference: "success",
            declined.reference: "failed",
            still_open.reference: "abandoned",
        })

        counts = reconcile_batch(PaymentService(db, gateway))

        assert counts == {"checked": 3, "completed": 1, "failed": 1, "pending": 1, "errors": 0}
        store = PaymentStore(db)
        assert store.get(paid.id).status is PaymentStatus.COMPLETED
        assert store.get(declined.id).status is PaymentStatus.FAILED
        assert store.get(still_open.id).status is PaymentStatus.PENDING

    def test_recent_payments_are_left_alone(self, db, seller, ad):
        _aged_payment(db, seller, ad, timedelta(minutes=2))
        gateway = ScriptedGateway({})

        counts = reconcile_batch(PaymentService(db, gateway))

        assert counts["checked"] == 0
        assert gateway.verify_calls == []

    def test_abandoned_past_window_is_failed(self, db, seller, ad):
        old = _aged_payment(db, seller, ad, timedelta(hours=72))
        gateway = ScriptedGateway({old.reference: "abandoned"})

        counts = reconcile_batch(PaymentService(db, gateway))

        assert counts["failed"] == 1
        assert PaymentStore(db).get(old.id).status is PaymentStatus.FAILED

    def test_gateway_not_found(self, db, seller, ad):
        old = _aged_payment(db, seller, ad, timedelta(hours=72))
        young = _aged_payment(db, seller, ad, timedelta(hours=1))
        not_found = GatewayError("Transaction reference not found", http_status=404)
        gateway = ScriptedGateway({old.reference: not_found, young.reference: not_found})

        counts = reconcile_batch(PaymentService(db, gateway))

        assert counts == {"checked": 2, "completed": 0, "failed": 1, "pending": 0, "errors": 1}
        store = PaymentStore(db)
        assert store.get(old.id).status is PaymentStatus.FAILED
        assert store.get(young.id).status is PaymentStatus.PENDING

    def test_outage_keeps_going(self, db, seller, ad):
        first = _aged_payment(db, seller, ad, timedelta(hours=3))
        second = _aged_payment(db, seller, ad, timedelta(hours=2))
        gateway = ScriptedGateway({
            first.reference: GatewayError("Payment gateway timed out"),
            second.reference: "success",
        })

        counts = reconcile_batch(PaymentService(db, gateway))

        assert counts["errors"] == 1
        assert counts["completed"] == 1
        assert gateway.verify_calls == [first.reference, second.reference]

    def test_terminal_payments_are_skipped(self, db, seller, ad):
        payment = _aged_payment(db, seller, ad, timedelta(hours=1))
        gateway = ScriptedGateway({payment.reference: "success"})
        service = PaymentService(db, gateway)
        service.reconcile(payment.id)

        assert service.reconcile(payment.id).status is PaymentStatus.COMPLETED
        assert gateway.verify_calls == [payment.reference]


class TestReconcileTask:
    def test_task_uses_own_session_and_client(self, session_factory, db, seller, ad):
        paid = _aged_payment(db, seller, ad, timedelta(hours=1))
        gateway = ScriptedGateway({paid.reference: "success"})

        with patch("app.workers.tasks.reconcile_payments.SessionLocal", session_factory), patch(
            "app.workers.tasks.reconcile_payments.PaystackClient", return_value=gateway
        ):
            result = reconcile_pending_payments()

        assert result == {"ok": True, "checked": 1, "completed": 1, "failed": 0, "pending": 0, "errors": 0}
        assert PaymentStore(db).get(paid.id).status is PaymentStatus.COMPLETED
