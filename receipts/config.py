import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    if environment == "development":
        return "postgresql+psycopg://localhost:5434/receipts"

    raise ValueError(
        "DATABASE_URL is not set. Set DATABASE_URL for non-development "
        "environments or set ENVIRONMENT=development for local defaults."
    )


@dataclass(frozen=True)
class Settings:
    database_url: str = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    secret_key: str = os.getenv("SECRET_KEY", "change-me")
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")
    billing_api_key: str = os.getenv("BILLING_API_KEY", "change-me")

    # Uploads
    max_upload_bytes: int = int(
        os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024))
    )  # 20MB
    allowed_upload_types: str = os.getenv("ALLOWED_UPLOAD_TYPES", "application/pdf")

    # S3 / MinIO settings
    s3_endpoint_url: str = os.getenv("S3_ENDPOINT_URL", "")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "")
    s3_bucket_name: str = os.getenv("S3_BUCKET_NAME", "receipt-documents")
    s3_region: str = os.getenv("S3_REGION", "us-east-1")
    s3_presigned_url_expiry: int = int(os.getenv("S3_PRESIGNED_URL_EXPIRY", "3600"))

    # Outbound mail (Resend)
    resend_api_key: str = os.getenv("RESEND_API_KEY", "")
    resend_api_url: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    mail_from: str = os.getenv("MAIL_FROM", "Receipt <no-reply@getreceipt.co>")
    mail_timeout_seconds: float = float(os.getenv("MAIL_TIMEOUT_SECONDS", "10"))

    # Recipient resolution
    max_recipients_per_send: int = int(os.getenv("MAX_RECIPIENTS_PER_SEND", "200"))

    # Dashboard attention policy
    attention_overdue_days: int = int(os.getenv("ATTENTION_OVERDUE_DAYS", "7"))
    attention_closing_ratio: float = float(
        os.getenv("ATTENTION_CLOSING_RATIO", "0.75")
    )
    attention_new_hours: int = int(os.getenv("ATTENTION_NEW_HOURS", "24"))

    analytics_cache_ttl_seconds: float = float(
        os.getenv("ANALYTICS_CACHE_TTL_SECONDS", "15")
    )
    analytics_cache_max_entries: int = int(
        os.getenv("ANALYTICS_CACHE_MAX_ENTRIES", "256")
    )

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
