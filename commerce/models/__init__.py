from .base import Base
from .address import Address
from .cart import Cart
from .order import Order
from .payment import Payment
from .product import Product
from .user import User

__all__ = ["Base", "Address", "Cart", "Order", "Payment", "Product", "User"]
