from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import AppConfig
from ..db.session import get_session
from ..errors import EmptyCart
from ..models.cart import Cart
from ..models.product import Product
from ..utils.units import QUANTITY_PLACES, format_quantity, to_decimal, truncate
from ..utils.validators import require_value
from .catalog_service import CatalogGateway
from .directory import AddressBook, UserDirectory
from .pricing import payment_summary, summary_to_dict

OUT_OF_STOCK = "out_of_stock"
INSUFFICIENT_QUANTITY = "insufficient_quantity"
PRODUCT_REMOVED = "product_removed"


def load_nonempty_cart(session: Session, user_id: str) -> Cart:
    cart = session.execute(select(Cart).where(Cart.user_id == user_id)).scalars().first()
    if cart is None:
        raise EmptyCart()
    if not cart.items:
        raise EmptyCart("Cart has no items.")
    return cart


def find_stock_issues(items: List[Dict], products: Dict[str, Product]) -> List[Dict]:
    """Compare each cart line with the product's stock as it is right now."""
    issues = []
    for it in items:
        product = products.get(it["product_id"])
        requested = to_decimal(it["quantity"])
        if product is None:
            issues.append(
                {
                    "productId": it["product_id"],
                    "productName": None,
                    "issue": PRODUCT_REMOVED,
                    "requested": float(requested),
                    "available": 0.0,
                    "shortfall": float(requested),
                    "message": "Product no longer exists",
                }
            )
            continue
        available = truncate(product.stock_quantity or 0, QUANTITY_PLACES)
        if available <= 0:
            issue, message = OUT_OF_STOCK, f"{product.name} is out of stock"
        elif requested > available:
            issue = INSUFFICIENT_QUANTITY
            message = (
                f"Only {format_quantity(available)} available for {product.name}, "
                f"but {format_quantity(requested)} in cart"
            )
        else:
            continue
        issues.append(
            {
                "productId": product.id,
                "productName": product.name,
                "issue": issue,
                "requested": float(requested),
                "available": float(max(available, Decimal("0"))),
                "shortfall": float(requested - max(available, Decimal("0"))),
                "message": message,
            }
        )
    return issues


class CheckoutService:
    """Read-only checkout gate. Nothing here writes to the cart."""

    def __init__(self, session_factory=get_session, config: Optional[AppConfig] = None):
        self._session_factory = session_factory
        self._threshold = config.free_delivery_threshold if config else Decimal("500")
        self._fee = config.delivery_fee if config else Decimal("50")

    def _summary(self, cart: Cart) -> Dict:
        return payment_summary(cart.items, cart.coupon_discount or 0, self._threshold, self._fee)

    def get_summary(self, *, user_id: str) -> Dict:
        require_value(user_id, "userId")
        with self._session_factory() as session:
            user = UserDirectory(session).get_user(user_id)
            cart = load_nonempty_cart(session, user_id)
            address = AddressBook(session).default_for_user(user_id)
            products = CatalogGateway(session).get_products(it["product_id"] for it in cart.items)
            items = []
            for it in cart.items:
                product = products.get(it["product_id"])
                if product is None:
                    continue
                items.append(
                    {
                        "productId": product.id,
                        "name": product.name,
                        "image": (product.images or [None])[0],
                        "quantity": float(to_decimal(it["quantity"])),
                        "selectedUnit": it.get("selected_unit"),
                        "itemTotal": float(to_decimal(it["price"])),
                    }
                )
            summary = self._summary(cart)
            return {
                "user": {"id": user.id, "phone": user.phone},
                "deliveryAddress": address.to_dict() if address is not None else None,
                "cart": {"items": items, "totalItems": float(summary["total_items"])},
                "paymentSummary": summary_to_dict(summary),
            }

    def validate(self, *, user_id: str, address_id: str) -> Dict:
        require_value(user_id, "userId")
        require_value(address_id, "addressId")
        with self._session_factory() as session:
            UserDirectory(session).get_user(user_id)
            address = AddressBook(session).get_for_user(address_id, user_id)
            cart = load_nonempty_cart(session, user_id)
            products = CatalogGateway(session).get_products(it["product_id"] for it in cart.items)
            issues = find_stock_issues(cart.items, products)
            return {
                "isValid": not issues,
                "stockIssues": issues,
                "deliveryAddress": address.to_dict(),
                "paymentSummary": summary_to_dict(self._summary(cart)),
            }

    def delivery_quote(self, *, user_id: str) -> Dict:
        require_value(user_id, "userId")
        with self._session_factory() as session:
            cart = load_nonempty_cart(session, user_id)
            summary = self._summary(cart)
            return {
                "subtotal": float(summary["subtotal"]),
                "deliveryFee": float(summary["delivery_fee"]),
                "freeDeliveryThreshold": float(self._threshold),
                "isFreeDelivery": summary["delivery_fee"] == 0,
            }

    def select_address(self, *, user_id: str, address_id: str) -> Dict:
        require_value(user_id, "userId")
        require_value(address_id, "addressId")
        with self._session_factory() as session:
            UserDirectory(session).get_user(user_id)
            return AddressBook(session).get_for_user(address_id, user_id).to_dict()
