"""
Payment routes: initialize, verify (client poll), Paystack webhook, history, prices, intent.
Errors are raised as PaymentError and rendered by the handler registered in app.main.
"""
import redis
from fastapi import APIRouter, Depends, Header, Query, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.user import User
from app.schemas.payments import (
    InitializePaymentIn,
    InitializePaymentOut,
    PaymentHistoryItem,
    PaymentHistoryOut,
    PaymentIntentIn,
    PaymentIntentOut,
    PaymentOut,
    ServicePriceOut,
    WebhookAck,
)
from app.services.auth.jwt import get_current_user
from app.services.payments.gateway import PaystackClient
from app.services.payments.service import PaymentService
from app.services.payments.signature import WebhookSignatureVerifier


router = APIRouter(prefix="/payments", tags=["payments"])


def get_gateway(request: Request) -> PaystackClient:
    return request.app.state.gateway


def get_webhook_verifier(request: Request) -> WebhookSignatureVerifier:
    return request.app.state.webhook_verifier


def get_redis(request: Request) -> redis.Redis | None:
    return getattr(request.app.state, "redis", None)


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway),
    verifier: WebhookSignatureVerifier = Depends(get_webhook_verifier),
    redis_client: redis.Redis | None = Depends(get_redis),
) -> PaymentService:
    return PaymentService(db, gateway, verifier=verifier, redis_client=redis_client)


@router.post("/initialize", response_model=InitializePaymentOut)
def initialize_payment(
    body: InitializePaymentIn,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
) -> InitializePaymentOut:
    result = service.initialize(
        user,
        service=body.service,
        amount=body.amount,
        ad_id=body.ad_id,
        subscription_plan_id=body.subscription_plan_id,
        callback_url=body.callback_url,
    )
    return InitializePaymentOut(
        payment_id=result.payment_id,
        reference=result.reference,
        authorization_url=result.authorization_url,
        access_code=result.access_code,
    )


@router.get("/verify/{reference}", response_model=PaymentOut)
def verify_payment(
    reference: str,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentOut:
    """Confirm with the gateway unless the payment is already completed or failed."""
    payment = service.verify(reference, user)
    return PaymentOut.model_validate(payment)


@router.post("/webhook", response_model=WebhookAck)
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(None),
    service: PaymentService = Depends(get_payment_service),
) -> WebhookAck:
    """Signature over the raw body is checked before the body is parsed."""
    raw_body = await request.body()
    outcome = await run_in_threadpool(service.handle_webhook, raw_body, x_paystack_signature)
    return WebhookAck(success=True, outcome=outcome.value)


@router.get("/history", response_model=PaymentHistoryOut)
def payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentHistoryOut:
    result = service.history(user, page=page, limit=limit)
    items = [
        PaymentHistoryItem.model_validate(payment).model_copy(update={"ad_title": ad_title})
        for payment, ad_title in result["payments"]
    ]
    return PaymentHistoryOut(
        payments=items,
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@router.get("/prices", response_model=dict[str, ServicePriceOut])
def service_prices(user: User = Depends(get_current_user)) -> dict[str, ServicePriceOut]:
    return {name: ServicePriceOut(**price) for name, price in PaymentService.prices().items()}


@router.post("/intent", response_model=PaymentIntentOut)
def payment_intent(
    body: PaymentIntentIn,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentIntentOut:
    return PaymentIntentOut(**service.intent(user, body.ad_id, body.service))
