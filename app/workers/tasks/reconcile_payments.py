"""
Celery beat task: settle payments left pending (client never came back,
webhook lost, gateway timed out during verify).
Each payment goes through the same guarded transition as verify and webhook,
so running concurrently with them is safe.
"""
import logging
from datetime import datetime, timezone

from app.core.celery_app import celery_app
from app.core.config import settings
from app.db.session import SessionLocal
from app.models.payment import PaymentStatus
from app.services.payments.config import get_reconcile_batch_size, get_reconcile_min_age
from app.services.payments.errors import GatewayError, PaymentError
from app.services.payments.gateway import PaystackClient
from app.services.payments.service import PaymentService

logger = logging.getLogger(__name__)


def reconcile_batch(service: PaymentService) -> dict:
    cutoff = datetime.now(timezone.utc) - get_reconcile_min_age()
    payment_ids = [p.id for p in service.store.list_stale_pending(cutoff, limit=get_reconcile_batch_size())]
    counts = {"checked": len(payment_ids), "completed": 0, "failed": 0, "pending": 0, "errors": 0}
    for payment_id in payment_ids:
        try:
            payment = service.reconcile(payment_id)
        except GatewayError as e:
            counts["errors"] += 1
            logger.warning("reconcile_gateway_error", extra={"payment_id": payment_id, "error": e.message})
            continue
        except PaymentError:
            counts["errors"] += 1
            logger.exception("reconcile_payment_error", extra={"payment_id": payment_id})
            continue
        status = PaymentStatus(payment.status)
        counts[status.value] += 1
    return counts


@celery_app.task(
    name="app.workers.tasks.reconcile_payments.reconcile_pending_payments",
    time_limit=540,
    soft_time_limit=500,
)
def reconcile_pending_payments() -> dict:
    db = SessionLocal()
    gateway = PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.paystack_timeout,
    )
    try:
        counts = reconcile_batch(PaymentService(db, gateway))
        logger.info("reconcile_pending_payments_done", extra={"count": counts["checked"]})
        return {"ok": True, **counts}
    except Exception:
        db.rollback()
        logger.exception("reconcile_pending_payments_error")
        return {"ok": False, "error": "exception"}
    finally:
        gateway.close()
        db.close()
