"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Comma-separated, e.g. http://localhost:5173,https://zizi.ng. Empty = default list in app.main.
    cors_origins: str = ""
    # Frontend base URL; default gateway callback is {client_url}/payment/callback
    client_url: str = "http://localhost:5173"

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # PAYSTACK
    # ===========================================
    paystack_secret_key: str  # Required, no default
    # Paystack signs webhooks with the secret key; override only for a dedicated webhook secret
    paystack_webhook_secret: str | None = None
    paystack_base_url: str = "https://api.paystack.co"
    paystack_timeout: float = 15.0

    # ===========================================
    # PAYMENTS
    # ===========================================
    payment_reference_prefix: str = "zizi"
    purchase_rate_limit: int = 3  # max initializations per window
    purchase_rate_window_seconds: int = 60
    payment_reconcile_min_age_minutes: int = 10
    payment_abandon_after_hours: int = 48
    payment_reconcile_batch_size: int = 100

    # ===========================================
    # AUTH
    # ===========================================
    jwt_secret_key: str  # Required, no default
    jwt_algorithm: str = "HS256"

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Ensure the token secret is reasonably secure."""
        if len(v) < 16:
            raise ValueError("jwt_secret_key must be at least 16 characters")
        if v in ("changeme", "secret", "password"):
            raise ValueError("jwt_secret_key is too weak, please change it")
        return v

    @field_validator("payment_reference_prefix")
    @classmethod
    def validate_reference_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v or "_" in v:
            raise ValueError("payment_reference_prefix must be non-empty and contain no underscores")
        return v

    @property
    def webhook_secret(self) -> str:
        return self.paystack_webhook_secret or self.paystack_secret_key

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
