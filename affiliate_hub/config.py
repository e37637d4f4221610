from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "BioinformaticsHub Affiliate"
    app_env: str = "development"
    debug: bool = False
    secret_key: str = "change-me"
    api_version: str = "v1"
    cors_origins: list[str] = ["http://localhost:3000"]
    public_base_url: str = "https://bioinformaticshub.io"

    # Database
    database_url: str = "sqlite+aiosqlite:///./affiliate_hub.db"
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # JWT
    jwt_secret_key: str = "change-me-too"
    jwt_algorithm: str = "HS256"
    admin_token_expire_minutes: int = 60

    # Affiliate links & tracking
    affiliate_default_utm_source: str = "bioinformaticshub"
    affiliate_short_code_prefix: str = "bh"
    affiliate_session_cookie: str = "bh_affiliate_session"
    affiliate_session_cookie_days: int = 30
    affiliate_click_dedup_minutes: int = 30
    affiliate_attribution_days: int = 30
    link_health_timeout_seconds: float = 10.0
    link_health_batch_size: int = 50

    # Fraud thresholds
    fraud_max_clicks_per_ip_per_hour: int = 10
    fraud_max_clicks_per_session_per_hour: int = 20
    fraud_max_clicks_per_link_per_hour: int = 100
    fraud_suspicious_conversion_days_gap: int = 30
    fraud_high_value_threshold: float = 1000.0
    fraud_max_rejection_rate: float = 0.2
    fraud_click_block_score: int = 50
    fraud_conversion_block_score: int = 50
    fraud_conversion_review_score: int = 25

    # Commission tiers: (exclusive lower bound of monthly approved conversions, bonus points)
    commission_tiers: list[tuple[int, float]] = [(100, 8.0), (50, 5.0), (10, 2.0)]

    # Payouts (PayPal Payouts API)
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_api_url: str = "https://api-m.sandbox.paypal.com"
    payment_timeout_seconds: float = 30.0

    # Alerts
    campaign_ending_soon_days: int = 3
    milestone_revenue: list[int] = [1000, 5000, 10000, 25000, 50000, 100000]
    milestone_conversions: list[int] = [10, 50, 100, 250, 500, 1000]

    # Experiments
    experiment_cookie: str = "bh_exp"
    experiment_token_days: int = 365

    # Email (ZeptoMail API)
    zeptomail_api_key: str = ""
    zeptomail_api_url: str = "https://api.zeptomail.com/v1.1/email"
    email_from_name: str = "BioinformaticsHub Affiliates"
    email_from_address: str = "affiliates@bioinformaticshub.io"
    affiliate_admin_email: str = "admin@bioinformaticshub.io"

    # Rate Limiting
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    # Logging
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_list(cls, v):
        if isinstance(v, str):
            import json

            return json.loads(v)
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
