"""Cart, checkout, order and payment services."""

from .cart_service import CartService
from .catalog_service import CatalogGateway
from .checkout_service import CheckoutService
from .directory import AddressBook, UserDirectory
from .order_service import OrderService
from .payment_service import PaymentService

__all__ = [
    "CartService",
    "CatalogGateway",
    "CheckoutService",
    "AddressBook",
    "UserDirectory",
    "OrderService",
    "PaymentService",
]
