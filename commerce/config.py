import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
import json
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    currency: str
    free_delivery_threshold: Decimal = Decimal("500")
    delivery_fee: Decimal = Decimal("50")
    cart_update_retries: int = 3
    order_retry_attempts: int = 2
    order_timeout_seconds: float = 10.0
    credit_due_days: int = 7
    store_timezone: str = "Asia/Kolkata"
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_base: str = "https://api.razorpay.com/v1"
    gateway_timeout_seconds: float = 10.0


def validate_currency(value: Optional[str]) -> str:
    v = (value or "INR").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def _money(value, field: str) -> Decimal:
    try:
        d = Decimal(str(value))
    except ArithmeticError:
        raise ValueError(f"{field} must be a number")
    if d < 0:
        raise ValueError(f"{field} must be >= 0")
    return d


def _load_settings_file(path: Optional[Path] = None) -> dict:
    path = path or Path(__file__).resolve().parents[1] / "data" / "settings.json"
    if not path.exists():
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


def load_env(settings_path: Optional[Path] = None) -> AppConfig:
    # data/settings.json wins, environment (and .env) is the fallback
    load_dotenv()
    s = _load_settings_file(settings_path)

    def pick(key: str, default: str) -> str:
        value = s.get(key)
        if value is None or value == "":
            value = os.getenv(key, default)
        return str(value)

    return AppConfig(
        database_url=pick("DATABASE_URL", "sqlite:///data/app.db"),
        secret_key=pick("SECRET_KEY", "dev_secret"),
        log_level=pick("LOG_LEVEL", "INFO").upper(),
        currency=validate_currency(pick("CURRENCY", "INR")),
        free_delivery_threshold=_money(pick("FREE_DELIVERY_THRESHOLD", "500"), "FREE_DELIVERY_THRESHOLD"),
        delivery_fee=_money(pick("DELIVERY_FEE", "50"), "DELIVERY_FEE"),
        cart_update_retries=max(1, int(pick("CART_UPDATE_RETRIES", "3"))),
        order_retry_attempts=max(1, int(pick("ORDER_RETRY_ATTEMPTS", "2"))),
        order_timeout_seconds=float(pick("ORDER_TIMEOUT_SECONDS", "10")),
        credit_due_days=int(pick("CREDIT_DUE_DAYS", "7")),
        store_timezone=pick("STORE_TIMEZONE", "Asia/Kolkata"),
        razorpay_key_id=pick("RAZORPAY_KEY_ID", ""),
        razorpay_key_secret=pick("RAZORPAY_KEY_SECRET", ""),
        razorpay_api_base=pick("RAZORPAY_API_BASE", "https://api.razorpay.com/v1").rstrip("/"),
        gateway_timeout_seconds=float(pick("GATEWAY_TIMEOUT_SECONDS", "10")),
    )
