import hmac
import logging
import time
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import func, or_, select, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import AppConfig
from ..db.session import get_session
from ..errors import (
    CommerceError,
    InvalidDeliveryOtp,
    InvalidOrderStatus,
    InvalidPaymentSummary,
    InvalidPaymentMethod,
    InvalidStatusTransition,
    OrderNotFound,
    StockConflict,
    StorageError,
    SummaryMismatch,
    TransactionTimeout,
)
from ..models.cart import Cart
from ..models.order import ORDER_STATUSES, TERMINAL_STATUSES, Order
from ..models.payment import Payment
from ..utils.identifiers import (
    format_order_number,
    generate_otp,
    new_id,
    new_transaction_id,
    order_number_prefix,
)
from ..utils.units import to_decimal
from ..utils.validators import require_value
from .catalog_service import CatalogGateway
from .checkout_service import INSUFFICIENT_QUANTITY, find_stock_issues, load_nonempty_cart
from .directory import AddressBook
from .logging import log_event
from .pricing import payment_summary

logger = logging.getLogger(__name__)

CASH_ON_DELIVERY = "Cash on Delivery"
CREDIT = "Credit"

# request keys -> stored method label
OFFLINE_METHODS = {"cod": CASH_ON_DELIVERY, "cash": CASH_ON_DELIVERY, "credit": CREDIT}
ONLINE_METHODS = {
    "card": "Credit Card",
    "gpay": "UPI",
    "paytm": "UPI",
    "hdfcupi": "UPI",
    "newupi": "UPI",
    "upi": "UPI",
    "netbanking": "Net Banking",
}

SUMMARY_TOLERANCE = Decimal("0.01")


def resolve_payment_method(key: Any) -> Tuple[str, bool]:
    """Return ``(label, is_online)`` for a request payment-method key."""
    value = str(key or "").strip().lower()
    if value in OFFLINE_METHODS:
        return OFFLINE_METHODS[value], False
    if value in ONLINE_METHODS:
        return ONLINE_METHODS[value], True
    raise InvalidPaymentMethod(key)


class _Deadline:
    def __init__(self, seconds: float):
        self.seconds = seconds
        self._expires = time.monotonic() + seconds

    def check(self) -> None:
        if time.monotonic() > self._expires:
            raise TransactionTimeout(self.seconds)


class OrderService:
    """Order creation from the cart, plus the status operations that follow it."""

    def __init__(
        self,
        session_factory=get_session,
        config: Optional[AppConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory = session_factory
        self._currency = config.currency if config else "INR"
        self._threshold = config.free_delivery_threshold if config else Decimal("500")
        self._fee = config.delivery_fee if config else Decimal("50")
        self._attempts = config.order_retry_attempts if config else 2
        self._timeout = config.order_timeout_seconds if config else 10.0
        self._credit_days = config.credit_due_days if config else 7
        tz = ZoneInfo(config.store_timezone if config else "Asia/Kolkata")
        self._clock = clock or (lambda: datetime.now(tz))

    # -- placement ----------------------------------------------------------

    def place_order(
        self,
        *,
        user_id: str,
        address_id: str,
        payment_method: str,
        payment_summary: Optional[Dict[str, Any]] = None,
    ) -> Dict:
        """Create an order for an offline payment method (cash on delivery or credit)."""
        require_value(user_id, "userId")
        require_value(address_id, "addressId")
        require_value(payment_method, "paymentMethod")
        label, online = resolve_payment_method(payment_method)
        if online:
            raise InvalidPaymentMethod(payment_method, "online payments are completed through the payment gateway")
        return self.place(
            user_id=user_id,
            address_id=address_id,
            method=label,
            submitted_summary=payment_summary,
        )

    def place(
        self,
        *,
        user_id: str,
        address_id: str,
        method: str,
        submitted_summary: Optional[Dict[str, Any]] = None,
        gateway_payment: Optional[Dict[str, str]] = None,
    ) -> Dict:
        """Run the whole placement transaction, retrying only transient storage failures.

        *gateway_payment* carries ``payment_id`` and ``gateway_order_id`` once a
        gateway signature has been verified; without it the order is recorded
        as awaiting offline payment.
        """
        last_exc: Optional[Exception] = None
        for attempt in range(1, self._attempts + 1):
            try:
                return self._place_once(user_id, address_id, method, submitted_summary, gateway_payment)
            except (OperationalError, IntegrityError, StaleDataError) as exc:
                last_exc = exc
                logger.warning("order placement for %s hit a storage conflict (attempt %d/%d): %s",
                               user_id, attempt, self._attempts, exc)
            except CommerceError as exc:
                log_event("warning", "order.aborted", user_id=user_id, reason=exc.code, message=exc.message)
                raise
        log_event("error", "order.aborted", user_id=user_id, reason="StorageError")
        raise StorageError("Could not place the order because of a storage failure, please retry") from last_exc

    def _place_once(
        self,
        user_id: str,
        address_id: str,
        method: str,
        submitted_summary: Optional[Dict[str, Any]],
        gateway_payment: Optional[Dict[str, str]],
    ) -> Dict:
        deadline = _Deadline(self._timeout)
        with self._session_factory() as session:
            self._bound_statement_time(session)

            cart = load_nonempty_cart(session, user_id)
            address = AddressBook(session).get_for_user(address_id, user_id)
            deadline.check()

            catalog = CatalogGateway(session)
            products = catalog.get_products((it["product_id"] for it in cart.items), for_update=True)
            issues = find_stock_issues(cart.items, products)
            if issues:
                raise StockConflict(issues)

            lines = [
                {
                    "product_id": it["product_id"],
                    "quantity": it["quantity"],
                    "price": it["price"],
                    "name": products[it["product_id"]].name,
                }
                for it in cart.items
            ]
            summary = payment_summary(lines, cart.coupon_discount or 0, self._threshold, self._fee)
            self._check_submitted_total(summary["total_amount"], submitted_summary)

            local_now = self._clock()
            utc_now = datetime.utcnow()
            order = Order(
                id=new_id(),
                order_number=self._next_order_number(session, local_now),
                user_id=user_id,
                items=lines,
                subtotal=summary["subtotal"],
                coupon_discount=summary["coupon_discount"],
                delivery_charge=summary["delivery_fee"],
                total_amount=summary["total_amount"],
                currency=self._currency,
                shipping_address=address.snapshot(),
                delivery_otp=generate_otp(),
                created_at=utc_now,
            )
            payment = self._settle(order, method, gateway_payment, local_now, utc_now)
            session.add(order)
            session.add(payment)
            session.flush()
            deadline.check()

            failed = catalog.bulk_decrement(self._quantities(lines))
            if failed:
                raise StockConflict([self._lost_race_issue(products[pid]) for pid in failed])
            deadline.check()

            self._clear_cart(session, cart)
            deadline.check()
            result = order.to_dict(include_otp=gateway_payment is None)
            result["payment"] = payment.to_dict()

        log_event(
            "info",
            "order.created",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            items=len(lines),
            total=summary["total_amount"],
            method=method,
        )
        return result

    def _settle(
        self,
        order: Order,
        method: str,
        gateway_payment: Optional[Dict[str, str]],
        local_now: datetime,
        utc_now: datetime,
    ) -> Payment:
        stamp = local_now.isoformat()
        if gateway_payment is not None:
            order.status = "Confirmed"
            order.progress = [
                {"status": "Pending", "date": stamp, "notes": "Order placed by customer"},
                {"status": "Confirmed", "date": stamp, "notes": "Payment received"},
            ]
            order.payment = {
                "paymentMethod": method,
                "paymentStatus": "Completed",
                "paymentId": gateway_payment["payment_id"],
                "gatewayOrderId": gateway_payment["gateway_order_id"],
            }
            return Payment(
                id=new_id(),
                order_id=order.id,
                user_id=order.user_id,
                transaction_id=gateway_payment["payment_id"],
                gateway_order_id=gateway_payment["gateway_order_id"],
                amount=order.total_amount,
                method=method,
                status="PAID",
                created_at=utc_now,
            )

        order.status = "Pending"
        order.progress = [{"status": "Pending", "date": stamp, "notes": "Order placed by customer"}]
        payment = Payment(
            id=new_id(),
            order_id=order.id,
            user_id=order.user_id,
            transaction_id=new_transaction_id("CR" if method == CREDIT else "COD"),
            amount=order.total_amount,
            method=method,
            status="PENDING",
            due_date=utc_now + timedelta(days=self._credit_days) if method == CREDIT else None,
            created_at=utc_now,
        )
        order.payment = {
            "paymentMethod": method,
            "paymentStatus": "Pending",
            "paymentId": payment.id,
        }
        return payment

    def _bound_statement_time(self, session: Session) -> None:
        if session.get_bind().dialect.name == "postgresql":
            session.execute(text(f"SET LOCAL statement_timeout = {int(self._timeout * 1000)}"))

    @staticmethod
    def _check_submitted_total(total: Decimal, submitted: Optional[Dict[str, Any]]) -> None:
        if submitted is None:
            return
        if not isinstance(submitted, dict):
            raise InvalidPaymentSummary(submitted)
        submitted_total = submitted.get("totalAmount")
        if submitted_total is None:
            return
        if isinstance(submitted_total, (dict, list, bool)):
            raise InvalidPaymentSummary(submitted)
        try:
            seen = to_decimal(submitted_total)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidPaymentSummary(submitted)
        if not seen.is_finite():
            raise InvalidPaymentSummary(submitted)
        if abs(seen - total) > SUMMARY_TOLERANCE:
            raise SummaryMismatch(str(total), str(submitted_total))

    @staticmethod
    def _next_order_number(session: Session, day: datetime) -> str:
        # counted inside the placement transaction; a concurrent insert of the
        # same number fails the unique constraint and the attempt is retried
        prefix = order_number_prefix(day)
        count = session.execute(
            select(func.count()).select_from(Order).where(Order.order_number.like(f"{prefix}%"))
        ).scalar_one()
        return format_order_number(day, count + 1)

    @staticmethod
    def _quantities(lines: List[Dict]) -> Dict[str, Decimal]:
        totals: Dict[str, Decimal] = {}
        for line in lines:
            totals[line["product_id"]] = totals.get(line["product_id"], Decimal("0")) + to_decimal(line["quantity"])
        return totals

    @staticmethod
    def _lost_race_issue(product) -> Dict:
        return {
            "productId": product.id,
            "productName": product.name,
            "issue": INSUFFICIENT_QUANTITY,
            "message": f"{product.name} was bought by another customer while your order was being placed",
        }

    @staticmethod
    def _clear_cart(session: Session, cart: Cart) -> None:
        session.delete(cart)
        session.flush()

    # -- queries ------------------------------------------------------------

    @staticmethod
    def _load(session: Session, order_id: str) -> Order:
        order = (
            session.execute(select(Order).where(or_(Order.id == order_id, Order.order_number == order_id)))
            .scalars()
            .first()
        )
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_order(self, order_id: str) -> Dict:
        require_value(order_id, "orderId")
        with self._session_factory() as session:
            return self._load(session, order_id).to_dict()

    def list_user_orders(self, user_id: str) -> List[Dict]:
        require_value(user_id, "userId")
        with self._session_factory() as session:
            rows = (
                session.execute(
                    select(Order)
                    .where(Order.user_id == user_id)
                    .order_by(Order.created_at.desc(), Order.order_number.desc())
                )
                .scalars()
                .all()
            )
            return [o.to_dict() for o in rows]

    # -- lifecycle ----------------------------------------------------------

    def _append_progress(self, order: Order, status: str, notes: Optional[str]) -> None:
        entry = {"status": status, "date": self._clock().isoformat()}
        if notes:
            entry["notes"] = notes
        order.progress = list(order.progress or []) + [entry]
        order.status = status

    @staticmethod
    def _ensure_open(order: Order, requested: str) -> None:
        if order.status in TERMINAL_STATUSES:
            raise InvalidStatusTransition(order.status, requested)

    def update_status(self, *, order_id: str, status: str, notes: Optional[str] = None) -> Dict:
        require_value(order_id, "orderId")
        require_value(status, "status")
        if status not in ORDER_STATUSES:
            raise InvalidOrderStatus(status)
        with self._session_factory() as session:
            order = self._load(session, order_id)
            self._ensure_open(order, status)
            self._append_progress(order, status, notes)
            result = order.to_dict()
        log_event("info", "order.status_changed", order_id=order.id, status=status)
        return result

    def assign_delivery_agent(self, *, order_id: str, agent_id: str) -> Dict:
        require_value(order_id, "orderId")
        require_value(agent_id, "agentId")
        with self._session_factory() as session:
            order = self._load(session, order_id)
            self._ensure_open(order, "Out for delivery")
            order.delivery_agent_id = agent_id
            if not order.delivery_otp:
                order.delivery_otp = generate_otp()
            self._append_progress(order, "Out for delivery", f"Assigned to delivery agent {agent_id}")
            result = order.to_dict()
        log_event("info", "order.agent_assigned", order_id=order.id, agent_id=agent_id)
        return result

    def confirm_delivery(self, *, order_id: str, otp: str) -> Dict:
        """Mark the order delivered once the customer's OTP matches; settles cash on delivery."""
        require_value(order_id, "orderId")
        require_value(otp, "otp")
        with self._session_factory() as session:
            order = self._load(session, order_id)
            self._ensure_open(order, "Delivered")
            if not hmac.compare_digest(str(otp).strip(), order.delivery_otp or ""):
                raise InvalidDeliveryOtp()
            self._append_progress(order, "Delivered", "Delivered to customer")
            if (order.payment or {}).get("paymentMethod") == CASH_ON_DELIVERY:
                order.payment = {**order.payment, "paymentStatus": "Completed"}
                payment = (
                    session.execute(select(Payment).where(Payment.order_id == order.id)).scalars().first()
                )
                if payment is not None:
                    payment.status = "PAID"
            result = order.to_dict()
        log_event("info", "order.delivered", order_id=order.id)
        return result
