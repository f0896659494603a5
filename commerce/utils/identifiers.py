import secrets
from datetime import datetime
from uuid import uuid4

OTP_DIGITS = "0123456789"


def new_id() -> str:
    return str(uuid4())


def order_number_prefix(day: datetime) -> str:
    return f"ORD-{day:%Y%m%d}-"


def format_order_number(day: datetime, sequence: int) -> str:
    """``ORD-20261019-0007`` for the seventh order placed on that day."""
    return f"{order_number_prefix(day)}{sequence:04d}"


def generate_otp(length: int = 6) -> str:
    return "".join(secrets.choice(OTP_DIGITS) for _ in range(length))


def new_transaction_id(prefix: str = "TXN") -> str:
    return f"{prefix}-{uuid4().hex[:20].upper()}"
