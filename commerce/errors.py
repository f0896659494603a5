"""Exceptions raised by the cart, checkout, order and payment services."""

from typing import Any, Dict, List, Optional


class CommerceError(Exception):
    """Base exception for all commerce errors."""

    status_code = 500
    retryable = False

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(CommerceError):
    """Client-fixable request problem."""

    status_code = 400


class NotFoundError(CommerceError):
    status_code = 404


class ConflictError(CommerceError):
    status_code = 409


class TransientError(CommerceError):
    """Infrastructure failure; the caller may retry the same request."""

    status_code = 503
    retryable = True


class MissingField(ValidationError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} is required", {"field": field})


class InvalidUnit(ValidationError):
    def __init__(self, unit: Any, allowed: Optional[List[str]] = None):
        self.unit = unit
        msg = f"Invalid unit: {unit}"
        if allowed:
            msg = f"{msg}. Allowed units: {', '.join(allowed)}"
        super().__init__(msg, {"unit": unit, "allowed": allowed})


class InvalidQuantity(ValidationError):
    pass


class NegativeQuantity(ValidationError):
    def __init__(self, quantity: Any):
        super().__init__("Quantity cannot be negative", {"quantity": str(quantity)})


class BelowMinimumPackaging(ValidationError):
    def __init__(self, minimum: str, requested: str, unit: str):
        self.minimum = minimum
        self.requested = requested
        self.unit = unit
        super().__init__(
            f"Minimum order is {minimum}{unit}. You entered {requested}{unit}.",
            {"minimumQuantity": minimum, "requestedQuantity": requested, "unit": unit},
        )


class EmptyCart(ValidationError):
    def __init__(self, message: str = "Cart is empty. Please add items to proceed to checkout."):
        super().__init__(message)


class InvalidPaymentMethod(ValidationError):
    def __init__(self, method: Any, reason: Optional[str] = None):
        self.method = method
        msg = f"Unsupported payment method: {method}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg, {"paymentMethod": method})


class InvalidOrderStatus(ValidationError):
    def __init__(self, status: Any):
        super().__init__(f"Invalid order status: {status}", {"status": status})


class InvalidStatusTransition(ValidationError):
    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move order from {current} to {requested}",
            {"currentStatus": current, "requestedStatus": requested},
        )


class InvalidPaymentStatus(ValidationError):
    def __init__(self, status: Any):
        super().__init__(f"Invalid payment status: {status}", {"status": status})


class InvalidPaymentSummary(ValidationError):
    def __init__(self, summary: Any):
        super().__init__(
            "paymentSummary must be an object with a numeric totalAmount",
            {"paymentSummary": repr(summary)[:200]},
        )


class InvalidDeliveryOtp(ValidationError):
    def __init__(self):
        super().__init__("Delivery OTP does not match")


class SignatureMismatch(ValidationError):
    def __init__(self):
        super().__init__("Payment verification failed")


class UserNotFound(NotFoundError):
    def __init__(self, user_id: Any):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: Any):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}", {"productId": product_id})


class ProductUnavailable(NotFoundError):
    def __init__(self, product_id: Any, name: Optional[str] = None):
        self.product_id = product_id
        super().__init__(
            f"{name or 'Product'} is not available for your account",
            {"productId": product_id},
        )


class ItemNotFound(NotFoundError):
    def __init__(self, product_id: Any):
        self.product_id = product_id
        super().__init__(f"Item not found in cart: {product_id}", {"productId": product_id})


class AddressNotFound(NotFoundError):
    def __init__(self, address_id: Any):
        self.address_id = address_id
        super().__init__(
            "Delivery address not found or does not belong to user",
            {"addressId": address_id},
        )


class OrderNotFound(NotFoundError):
    def __init__(self, order_id: Any):
        super().__init__(f"Order not found: {order_id}", {"orderId": order_id})


class PaymentNotFound(NotFoundError):
    def __init__(self, payment_id: Any):
        super().__init__(f"Payment not found: {payment_id}", {"paymentId": payment_id})


class OutOfStock(ConflictError):
    def __init__(self, product_id: Any, name: Optional[str] = None):
        self.product_id = product_id
        super().__init__(f"{name or 'Product'} is out of stock", {"productId": product_id})


class StockBelowMinimum(ConflictError):
    def __init__(self, product_id: Any, name: Optional[str], available: str, minimum: str):
        self.product_id = product_id
        super().__init__(
            f"Only {available} of {name or 'this product'} is left, below the minimum order of {minimum}.",
            {"productId": product_id, "available": available, "minimumQuantity": minimum},
        )


class StockConflict(ConflictError):
    """Raised when order-time stock cannot cover the cart; carries itemised issues."""

    def __init__(self, issues: List[Dict[str, Any]]):
        self.issues = issues
        summary = "; ".join(i.get("message", "") for i in issues if i.get("message"))
        msg = "Some items in your cart have stock issues"
        if summary:
            msg = f"{msg}: {summary}"
        super().__init__(msg, {"stockIssues": issues})


class DuplicatePayment(ConflictError):
    def __init__(self, payment_id: Any):
        super().__init__(
            f"Payment {payment_id} has already been used for an order",
            {"paymentId": payment_id},
        )


class SummaryMismatch(ConflictError):
    def __init__(self, expected: str, submitted: str):
        super().__init__(
            "Order total changed since the checkout summary was shown. Please review your cart.",
            {"expectedTotal": expected, "submittedTotal": submitted},
        )


class CartConflict(TransientError):
    def __init__(self, user_id: Any):
        super().__init__(f"Cart for user {user_id} was modified concurrently, please retry")


class StorageError(TransientError):
    pass


class TransactionTimeout(TransientError):
    def __init__(self, seconds: float):
        super().__init__(f"Order placement exceeded {seconds:g}s and was aborted, please retry")


class GatewayError(TransientError):
    status_code = 502
