from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env at project root: voucher_store/core/config.py -> core -> voucher_store -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"


class Settings(BaseSettings):
    secret_key: str = "change-me-in-production"
    database_url: str = "sqlite:///./vouchers.db"
    # Comma separated origins; "*" in development only
    cors_origins: str = "*"
    # Per-IP requests per minute on checkout and discount validation
    rate_limit_per_minute: int = 60
    environment: str = "development"
    # Exchanged for an admin capability token at POST /api/admin/token
    admin_secret: str = ""
    access_token_expire_minutes: int = 60 * 12

    # Tap payments
    tap_api_url: str = "https://api.tap.company/v2"
    tap_secret_key: str = ""
    tap_webhook_secret: str = ""  # empty = webhook signatures are not checked
    tap_currency: str = "SAR"
    tap_timeout_seconds: float = 15.0
    tap_phone_country_code: str = "966"
    # Customer is sent back to {app_url}/{locale}/success/{order_id}
    app_url: str = "http://localhost:3000"

    # Pricing and company defaults; StoreSetting rows override these
    voucher_base_price: float = 1350.0
    vat_percentage: float = 15.0
    company_name_en: str = "Cozeal"
    company_name_ar: str = "كوزيل"
    company_vat_number: str = ""
    company_cr_number: str = ""

    # Inventory reporting
    low_stock_threshold: int = 10
    expiry_warning_days: int = 30

    # SMTP notifier
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "info@cozeal.ai"
    smtp_from_name: str = "Cozeal Vouchers"
    smtp_use_tls: bool = True

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("tap_secret_key", "tap_webhook_secret", "admin_secret", mode="before")
    @classmethod
    def strip_secret(cls, v: str | None) -> str:
        """Copy/paste whitespace in secrets breaks HMAC and bearer auth."""
        return (v or "").strip()

    @field_validator("app_url", "tap_api_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str:
        return (v or "").strip().rstrip("/")


settings = Settings()


def is_gateway_configured() -> bool:
    return bool(settings.tap_secret_key)
