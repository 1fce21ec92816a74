import os
from dataclasses import dataclass, field
from pathlib import Path
import json
from typing import Dict, Optional

from dotenv import load_dotenv


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    currency: str
    environment: str = "development"

    airtable_api_key: str = ""
    airtable_base_id: str = ""
    airtable_products_table: str = "tbl4pJbIUvWA53Arr"
    airtable_categories_table: str = "tblCategories"
    airtable_checkouts_table: str = "tblhjfzTX2zjf22s1"
    airtable_orders_table: str = "tblI5N0Xn65DB5L5s"
    airtable_affiliates_table: str = "Affiliates"
    catalog_request_delay: float = 2.0
    catalog_cache_ttl: int = 30 * 60

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    fedex_api_key: str = ""
    fedex_api_secret: str = ""
    fedex_api_url: str = "https://apis-sandbox.fedex.com"

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    mail_sender: str = "orders@trueaminos.com"

    session_lifetime_days: int = 7
    cart_ttl_seconds: int = 7 * 24 * 3600
    checkout_abandon_after_seconds: int = 24 * 3600
    mirror_max_attempts: int = 3
    mirror_retry_delay: float = 1.0
    mirror_poll_interval: float = 5.0

    bank_info: Dict[str, str] = field(default_factory=dict)
    crypto_info: Dict[str, str] = field(default_factory=dict)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def airtable_enabled(self) -> bool:
        return bool(self.airtable_api_key and self.airtable_base_id)


SENSITIVE_KEYS = {
    "SECRET_KEY",
    "AIRTABLE_API_KEY",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "FEDEX_API_SECRET",
    "SMTP_PASSWORD",
}

DEFAULT_BANK_INFO = {
    "accountName": "TrueAminos LLC",
    "accountNumber": "123456789",
    "routingNumber": "987654321",
    "bankName": "First National Bank",
    "instructions": "Please include your name and email in the transfer memo",
}

DEFAULT_CRYPTO_INFO = {
    "bitcoin": "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa",
    "ethereum": "0x742d35Cc6634C0532925a3b844Bc454e4438f44e",
    "instructions": "After sending payment, click the confirm button to complete your order",
}


def validate_currency(value: Optional[str]) -> str:
    v = (value or "USD").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def _positive_int(value, default: int) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        return default
    return v if v > 0 else default


def _non_negative_float(value, default: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    return v if v >= 0 else default


def _load_settings_file(path: Optional[Path] = None) -> dict:
    try:
        path = path or Path.cwd() / "data" / "settings.json"
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            return data if isinstance(data, dict) else {}
    except (OSError, ValueError):
        pass
    return {}


def load_env(settings_path: Optional[Path] = None) -> AppConfig:
    # data/settings.json wins for non-secret keys, .env / environment is the fallback
    load_dotenv(Path.cwd() / ".env")
    s = _load_settings_file(settings_path)

    def pick(key: str, default: str = "") -> str:
        if key not in SENSITIVE_KEYS and s.get(key) not in (None, ""):
            return str(s[key])
        return os.getenv(key, default)

    bank_info = dict(DEFAULT_BANK_INFO)
    bank_info.update(s.get("BANK_INFO") or {})
    crypto_info = dict(DEFAULT_CRYPTO_INFO)
    crypto_info.update(s.get("CRYPTO_INFO") or {})

    return AppConfig(
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/app.db"),
        secret_key=os.getenv("SECRET_KEY", "dev_secret"),
        log_level=pick("LOG_LEVEL", "INFO").upper(),
        currency=validate_currency(pick("CURRENCY")),
        environment=pick("APP_ENV", "development").lower(),
        airtable_api_key=os.getenv("AIRTABLE_API_KEY", ""),
        airtable_base_id=pick("AIRTABLE_BASE_ID"),
        airtable_products_table=pick("AIRTABLE_PRODUCTS_TABLE", "tbl4pJbIUvWA53Arr"),
        airtable_categories_table=pick("AIRTABLE_CATEGORIES_TABLE", "tblCategories"),
        airtable_checkouts_table=pick("AIRTABLE_CHECKOUTS_TABLE", "tblhjfzTX2zjf22s1"),
        airtable_orders_table=pick("AIRTABLE_ORDERS_TABLE", "tblI5N0Xn65DB5L5s"),
        airtable_affiliates_table=pick("AIRTABLE_AFFILIATES_TABLE", "Affiliates"),
        catalog_request_delay=_non_negative_float(pick("CATALOG_REQUEST_DELAY"), 2.0),
        catalog_cache_ttl=_positive_int(pick("CATALOG_CACHE_TTL"), 30 * 60),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
        fedex_api_key=os.getenv("FEDEX_API_KEY", ""),
        fedex_api_secret=os.getenv("FEDEX_API_SECRET", ""),
        fedex_api_url=pick("FEDEX_API_URL", "https://apis-sandbox.fedex.com").rstrip("/"),
        smtp_host=pick("SMTP_HOST"),
        smtp_port=_positive_int(pick("SMTP_PORT"), 587),
        smtp_username=pick("SMTP_USERNAME"),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        mail_sender=pick("MAIL_SENDER", "orders@trueaminos.com"),
        session_lifetime_days=_positive_int(pick("SESSION_LIFETIME_DAYS"), 7),
        cart_ttl_seconds=_positive_int(pick("CART_TTL_SECONDS"), 7 * 24 * 3600),
        checkout_abandon_after_seconds=_positive_int(pick("CHECKOUT_ABANDON_AFTER_SECONDS"), 24 * 3600),
        mirror_max_attempts=_positive_int(pick("MIRROR_MAX_ATTEMPTS"), 3),
        mirror_retry_delay=_non_negative_float(pick("MIRROR_RETRY_DELAY"), 1.0),
        mirror_poll_interval=_non_negative_float(pick("MIRROR_POLL_INTERVAL"), 5.0),
        bank_info=bank_info,
        crypto_info=crypto_info,
    )

