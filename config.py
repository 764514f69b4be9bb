# config.py
import os


def _getenv(key: str, default: str | None = None) -> str | None:
    """Small wrapper to read environment variables."""
    val = os.getenv(key)
    return val if (val is not None and val != "") else default


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _as_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _as_float(value: str | None, default: float | None) -> float | None:
    if value is None or value == "":
        return default
    return float(value)


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _normalize_db_url(db_url: str) -> str:
    # Render/Heroku sometimes provide "postgres://"; SQLAlchemy wants "postgresql://"
    if db_url.startswith("postgres://"):
        return db_url.replace("postgres://", "postgresql://", 1)
    return db_url


class BaseConfig:
    # -------------------
    # Core / Flask
    # -------------------
    ENV = _getenv("FLASK_ENV", "development")
    DEBUG = _as_bool(_getenv("FLASK_DEBUG"), default=(ENV != "production"))
    TESTING = _as_bool(_getenv("FLASK_TESTING"), default=False)

    SECRET_KEY = _getenv("SECRET_KEY", "dev-secret-key")
    LOG_LEVEL = _getenv("LOG_LEVEL", "INFO")

    # Public base URL, used for affiliate referral links
    APP_URL = _getenv("APP_URL", "https://vpn9.com")

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = _getenv("SESSION_COOKIE_SAMESITE", "Lax")

    # -------------------
    # Database
    # -------------------
    _db_url = _getenv("DATABASE_URL", "sqlite:///instance/app.db")
    SQLALCHEMY_DATABASE_URI = _normalize_db_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # -------------------
    # Payment processor (Bitcart-compatible API)
    # -------------------
    PAYMENT_PROCESSOR_URL = _getenv("PAYMENT_PROCESSOR_URL", "http://localhost:8091")
    PAYMENT_PROCESSOR_API_KEY = _getenv("PAYMENT_PROCESSOR_API_KEY", "")
    PAYMENT_PROCESSOR_STORE_ID = _getenv("PAYMENT_PROCESSOR_STORE_ID", "")
    PAYMENT_EXPIRY_MINUTES = _as_int(_getenv("PAYMENT_EXPIRY_MINUTES"), default=60)

    # Host the processor calls back on; secret is appended per payment
    WEBHOOK_HOST = _getenv("WEBHOOK_HOST", "localhost:5000")
    WEBHOOK_SCHEME = _getenv("WEBHOOK_SCHEME", "https")
    # Comma separated; empty means no IP restriction
    WEBHOOK_ALLOWED_IPS = _as_list(_getenv("WEBHOOK_ALLOWED_IPS"))

    # -------------------
    # Subscriptions
    # -------------------
    LIFETIME_PLAN_DAYS = _as_int(_getenv("LIFETIME_PLAN_DAYS"), default=36_525)  # ~100 years

    # -------------------
    # Affiliates / commissions
    # -------------------
    # None disables auto-approval
    AUTO_APPROVE_COMMISSION_THRESHOLD = _as_float(
        _getenv("AUTO_APPROVE_COMMISSION_THRESHOLD"), default=None
    )
    REFERRAL_CLICK_WINDOW_MINUTES = _as_int(_getenv("REFERRAL_CLICK_WINDOW_MINUTES"), default=60)
    PAYOUT_EXPORT_DEFAULT_DAYS = _as_int(_getenv("PAYOUT_EXPORT_DEFAULT_DAYS"), default=30)


class DevelopmentConfig(BaseConfig):
    ENV = "development"
    DEBUG = True


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False

    # Tighten cookie security for HTTPS deployments
    SESSION_COOKIE_SECURE = True


class TestingConfig(BaseConfig):
    ENV = "testing"
    DEBUG = False
    TESTING = True

    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}

    PAYMENT_PROCESSOR_URL = "http://processor.test"
    PAYMENT_PROCESSOR_API_KEY = "test-api-key"
    PAYMENT_PROCESSOR_STORE_ID = "store-1"
    WEBHOOK_HOST = "portal.test"
    WEBHOOK_ALLOWED_IPS: list[str] = []
    AUTO_APPROVE_COMMISSION_THRESHOLD = None
