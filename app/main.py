"""
Main FastAPI application for the marketplace payments API.
Serves health, payments (initialize / verify / webhook / history), subscriptions and metrics.
"""
import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

import redis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import configure_logging
from app.api.routes import health, payments, subscriptions
from app.services.circuit_breaker import build_circuit_breaker
from app.services.payments.errors import PaymentError
from app.services.payments.gateway import PaystackClient, is_client_error
from app.services.payments.signature import WebhookSignatureVerifier
from app.utils.metrics import router as metrics_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    app.state.redis = redis.Redis.from_url(settings.redis_url, decode_responses=True)
    breaker_redis = redis.Redis.from_url(settings.redis_url)
    app.state.gateway = PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.paystack_timeout,
        breaker=build_circuit_breaker("paystack", breaker_redis, exclude=[is_client_error]),
    )
    app.state.webhook_verifier = WebhookSignatureVerifier(settings.webhook_secret)
    logger.info("app_started", extra={"event": settings.app_env})
    try:
        yield
    finally:
        app.state.gateway.close()
        app.state.redis.close()
        breaker_redis.close()


app = FastAPI(
    title="Marketplace Payments API",
    description="Paystack payments for ad promotions and seller subscriptions",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = [settings.client_url, "http://localhost:5173", "http://127.0.0.1:5173"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or uuid4().hex
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers[settings.request_id_header] = request_id
        return response
    finally:
        logger.info(
            "http_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "latency_ms": round((time.perf_counter() - start) * 1000, 1),
            },
        )


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("payment_error", extra={"path": request.url.path, "error": exc.code})
    return JSONResponse(status_code=exc.status_code, content=exc.to_public_dict())


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(payments.router)
app.include_router(subscriptions.router)
app.include_router(metrics_router)
