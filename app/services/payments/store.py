"""
PaymentStore - persistence of payment attempts.

conditional_transition is the only way a payment leaves `pending`: one
UPDATE ... WHERE status = :from statement, so the database row is the
serialization point for every API replica and worker.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.models.ad import Ad
from app.models.payment import Payment, PaymentStatus, ServiceType
from app.services.payments.errors import PaymentNotFoundError

logger = logging.getLogger(__name__)


class PaymentStore:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        service: ServiceType,
        amount: int,
        reference: str,
        ad_id: str | None = None,
        subscription_plan_id: str | None = None,
    ) -> Payment:
        payment = Payment(
            user_id=user_id,
            ad_id=ad_id,
            subscription_plan_id=subscription_plan_id,
            service=service,
            amount=amount,
            reference=reference,
            status=PaymentStatus.PENDING,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def find_by_reference(self, reference: str, owner_id: str | None = None) -> Payment:
        query = self.db.query(Payment).filter(Payment.reference == reference)
        if owner_id is not None:
            query = query.filter(Payment.user_id == owner_id)
        payment = query.one_or_none()
        if payment is None:
            raise PaymentNotFoundError(reference)
        return payment

    def get(self, payment_id: str) -> Payment:
        """Fresh read, bypassing whatever the identity map holds."""
        return (
            self.db.query(Payment)
            .filter(Payment.id == payment_id)
            .populate_existing()
            .one()
        )

    def conditional_transition(
        self,
        payment_id: str,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        payload: dict[str, Any] | None,
    ) -> bool:
        """
        Move the payment from `from_status` to `to_status`.
        Returns False, changing nothing, when the row is no longer in `from_status`.
        Does not commit: the caller owns the transaction.
        """
        values: dict[str, Any] = {"status": to_status, "gateway_response": payload}
        if to_status is PaymentStatus.COMPLETED:
            values["verified_at"] = datetime.now(timezone.utc)
        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_for_user(self, user_id: str, page: int = 1, limit: int = 20) -> tuple[list[tuple[Payment, str | None]], int]:
        """Newest first, with the ad title joined. Returns (rows, total)."""
        offset = (page - 1) * limit
        rows = (
            self.db.query(Payment, Ad.title)
            .outerjoin(Ad, Ad.id == Payment.ad_id)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        total = (
            self.db.query(func.count(Payment.id))
            .filter(Payment.user_id == user_id)
            .scalar()
        )
        return [(payment, title) for payment, title in rows], int(total or 0)

    def list_stale_pending(self, older_than: datetime, limit: int = 100) -> list[Payment]:
        return (
            self.db.query(Payment)
            .filter(
                Payment.status == PaymentStatus.PENDING,
                Payment.created_at < older_than,
            )
            .order_by(Payment.created_at)
            .limit(limit)
            .all()
        )
