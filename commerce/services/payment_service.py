"""
Razorpay integration for online payments.

Online orders are created in two steps: ``create_gateway_order`` registers the
amount with Razorpay before the customer pays, and once the checkout widget
returns, ``verify_and_place_order`` checks the HMAC signature Razorpay put on
``order_id|payment_id`` and only then runs the order placement transaction.
"""
import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from sqlalchemy import select

from ..config import AppConfig
from ..db.session import get_session
from ..errors import (
    DuplicatePayment,
    GatewayError,
    InvalidPaymentStatus,
    PaymentNotFound,
    SignatureMismatch,
)
from ..models.order import Order
from ..models.payment import PAYMENT_STATUSES, Payment
from ..utils.validators import require_value
from .checkout_service import load_nonempty_cart
from .logging import log_event
from .order_service import OrderService, resolve_payment_method
from .pricing import payment_summary


def paise(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


# payment row status -> status shown on the order's payment sub-document
ORDER_PAYMENT_STATUS = {
    "PENDING": "Pending",
    "UNPAID": "Pending",
    "PAID": "Completed",
    "FAILED": "Failed",
    "REFUNDED": "Refunded",
}


class PaymentService:
    def __init__(
        self,
        order_service: OrderService,
        session_factory=get_session,
        config: Optional[AppConfig] = None,
        http=None,
    ) -> None:
        self._orders = order_service
        self._session_factory = session_factory
        self._config = config
        self._http = http or requests
        self.logger = logging.getLogger(__name__)

    @property
    def _key_secret(self) -> str:
        return self._config.razorpay_key_secret if self._config else ""

    def sign(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
        return hmac.new(self._key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> None:
        if not self._key_secret:
            self.logger.error("RAZORPAY_KEY_SECRET is not configured; rejecting payment callback")
            raise SignatureMismatch()
        expected = self.sign(gateway_order_id, gateway_payment_id)
        if not hmac.compare_digest(expected, str(signature or "")):
            log_event("warning", "payment.signature_mismatch", gateway_order_id=gateway_order_id)
            raise SignatureMismatch()

    def create_gateway_order(self, *, user_id: str) -> Dict:
        """Register the cart total with Razorpay and return what the checkout widget needs."""
        require_value(user_id, "userId")
        config = self._config
        if config is None or not config.razorpay_key_id or not config.razorpay_key_secret:
            raise GatewayError("Payment gateway is not configured")
        with self._session_factory() as session:
            cart = load_nonempty_cart(session, user_id)
            summary = payment_summary(cart.items, cart.coupon_discount or 0,
                                      config.free_delivery_threshold, config.delivery_fee)
            receipt = f"cart-{cart.id[:8]}-v{cart.version}"
        amount = paise(summary["total_amount"])
        try:
            resp = self._http.post(
                f"{config.razorpay_api_base}/orders",
                auth=(config.razorpay_key_id, config.razorpay_key_secret),
                json={"amount": amount, "currency": config.currency, "receipt": receipt},
                timeout=config.gateway_timeout_seconds,
            )
        except requests.RequestException as exc:
            self.logger.exception("Razorpay order creation failed: %s", exc)
            raise GatewayError("Payment gateway is unreachable, please retry")
        if resp.status_code >= 400:
            self.logger.error("Razorpay order creation returned %s: %s", resp.status_code, resp.text)
            raise GatewayError(f"Payment gateway rejected the order ({resp.status_code})")
        data = resp.json()
        log_event("info", "payment.gateway_order_created", user_id=user_id, gateway_order_id=data.get("id"), amount=amount)
        return {
            "gatewayOrderId": data.get("id"),
            "amount": amount,
            "currency": data.get("currency", config.currency),
            "keyId": config.razorpay_key_id,
            "paymentSummary": {"totalAmount": float(summary["total_amount"])},
        }

    def verify_and_place_order(
        self,
        *,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
        user_id: str,
        address_id: str,
        payment_method: str,
        payment_summary: Optional[Dict[str, Any]] = None,
    ) -> Dict:
        require_value(gateway_order_id, "razorpay_order_id")
        require_value(gateway_payment_id, "razorpay_payment_id")
        require_value(signature, "razorpay_signature")
        require_value(user_id, "userId")
        require_value(address_id, "addressId")
        require_value(payment_method, "paymentMethod")
        label, _ = resolve_payment_method(payment_method)
        self.verify_signature(gateway_order_id, gateway_payment_id, signature)
        with self._session_factory() as session:
            seen = session.execute(
                select(Payment.id).where(Payment.transaction_id == gateway_payment_id)
            ).first()
        if seen is not None:
            raise DuplicatePayment(gateway_payment_id)
        log_event("info", "payment.verified", user_id=user_id, gateway_order_id=gateway_order_id)
        return self._orders.place(
            user_id=user_id,
            address_id=address_id,
            method=label,
            submitted_summary=payment_summary,
            gateway_payment={"payment_id": gateway_payment_id, "gateway_order_id": gateway_order_id},
        )

    def update_payment_status(self, *, payment_id: str, status: str) -> Dict:
        require_value(payment_id, "paymentId")
        status = str(status or "").strip().upper()
        if status not in PAYMENT_STATUSES:
            raise InvalidPaymentStatus(status)
        with self._session_factory() as session:
            payment = session.get(Payment, payment_id)
            if payment is None:
                raise PaymentNotFound(payment_id)
            payment.status = status
            order = session.get(Order, payment.order_id)
            if order is not None:
                order.payment = {**(order.payment or {}), "paymentStatus": ORDER_PAYMENT_STATUS[status]}
            result = payment.to_dict()
        log_event("info", "payment.status_changed", payment_id=payment_id, status=status)
        return result
