import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import AppConfig
from ..db.session import get_session
from ..errors import (
    BelowMinimumPackaging,
    CartConflict,
    InvalidQuantity,
    ItemNotFound,
    NegativeQuantity,
    OutOfStock,
    ProductNotFound,
    ProductUnavailable,
    StockBelowMinimum,
)
from ..models.cart import Cart
from ..models.product import Product
from ..utils.dto import to_product_dto
from ..utils.identifiers import new_id
from ..utils.units import (
    KILOGRAMS,
    MAX_QUANTITY,
    QUANTITY_PLACES,
    format_quantity,
    from_canonical,
    normalize_unit,
    to_canonical,
    to_decimal,
    truncate,
)
from ..utils.validators import require_value
from .catalog_service import CatalogGateway
from .directory import UserDirectory
from .logging import log_event
from .pricing import (
    PriceField,
    is_visible_to,
    price_field_for,
    price_line_item,
    recompute_cart_totals,
)

logger = logging.getLogger(__name__)


def _parse_quantity(quantity: Any) -> Decimal:
    require_value(quantity, "quantity")
    try:
        value = to_decimal(quantity)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidQuantity(f"Invalid quantity: {quantity}")
    if not value.is_finite():
        raise InvalidQuantity(f"Invalid quantity: {quantity}")
    if abs(value) > MAX_QUANTITY:
        raise InvalidQuantity(f"Quantity is too large: {quantity}")
    return value


def _line(product_id: str, quantity: Decimal, unit: str, price: Decimal) -> Dict[str, str]:
    return {
        "product_id": product_id,
        "quantity": str(truncate(quantity, QUANTITY_PLACES)),
        "selected_unit": unit,
        "price": str(price),
    }


def _find_line(items: List[Dict], product_id: str) -> Optional[int]:
    for idx, it in enumerate(items):
        if it["product_id"] == product_id:
            return idx
    return None


def _display(quantity: Decimal, unit: str) -> str:
    return f"{format_quantity(from_canonical(quantity, unit))}{unit}"


def empty_cart_view(user_id: str) -> Dict:
    return {
        "id": None,
        "userId": user_id,
        "items": [],
        "subtotal": 0.0,
        "couponDiscount": 0.0,
        "totalItems": 0.0,
        "totalAmount": 0.0,
    }


def cart_view(cart: Cart, products: Dict[str, Product], price_field: Optional[PriceField] = None) -> Dict:
    items = []
    for it in cart.items or []:
        product = products.get(it["product_id"])
        unit = it.get("selected_unit") or KILOGRAMS
        quantity = to_decimal(it["quantity"])
        items.append(
            {
                "productId": it["product_id"],
                "name": product.name if product is not None else None,
                "quantity": float(quantity),
                "selectedUnit": unit,
                "displayQuantity": float(from_canonical(quantity, unit)),
                "price": float(to_decimal(it["price"])),
                "product": (
                    to_product_dto(product, price_field(product) if price_field else None)
                    if product is not None
                    else None
                ),
            }
        )
    return {
        "id": cart.id,
        "userId": cart.user_id,
        "items": items,
        "subtotal": float(cart.subtotal or 0),
        "couponDiscount": float(cart.coupon_discount or 0),
        "totalItems": float(cart.total_items or 0),
        "totalAmount": float(cart.total_amount or 0),
    }


class CartService:
    """Cart operations backed by DB.

    Every mutation is a read-modify-write of the single cart row inside one
    session. The row carries a version counter, so a concurrent writer makes
    our flush fail with ``StaleDataError`` instead of silently overwriting; the
    whole operation is then replayed from a fresh read.
    """

    def __init__(self, session_factory=get_session, config: Optional[AppConfig] = None):
        self._session_factory = session_factory
        self._attempts = config.cart_update_retries if config else 3

    # -- plumbing -----------------------------------------------------------

    def _run(self, user_id: str, operation: Callable[[Session], Dict]) -> Dict:
        for attempt in range(1, self._attempts + 1):
            try:
                with self._session_factory() as session:
                    return operation(session)
            except (StaleDataError, IntegrityError) as exc:
                logger.info("cart write for %s lost a race (attempt %d/%d): %s", user_id, attempt, self._attempts, exc)
        raise CartConflict(user_id)

    @staticmethod
    def _load_cart(session: Session, user_id: str, *, create: bool = True) -> Optional[Cart]:
        cart = session.execute(select(Cart).where(Cart.user_id == user_id)).scalars().first()
        if cart is None and create:
            cart = Cart(
                id=new_id(),
                user_id=user_id,
                items=[],
                subtotal=Decimal("0"),
                total_items=Decimal("0"),
                coupon_discount=Decimal("0"),
                total_amount=Decimal("0"),
            )
            session.add(cart)
        return cart

    @staticmethod
    def _store(cart: Cart, items: List[Dict]) -> None:
        cart.items = list(items)
        recompute_cart_totals(cart)
        cart.updated_at = datetime.utcnow()

    @staticmethod
    def _resolve_product(catalog: CatalogGateway, product_id: str, tier: str) -> Product:
        product = catalog.get_product(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        if not is_visible_to(product, tier):
            raise ProductUnavailable(product_id, product.name)
        return product

    @staticmethod
    def _minimum(product: Product) -> Decimal:
        return to_canonical(product.packaging_quantity or 0, product.default_unit or KILOGRAMS)

    @classmethod
    def _check_minimum(cls, product: Product, canonical: Decimal, requested: Decimal, unit: str) -> None:
        minimum = cls._minimum(product)
        if canonical < minimum:
            raise BelowMinimumPackaging(
                format_quantity(from_canonical(minimum, unit)),
                format_quantity(requested),
                unit,
            )

    @classmethod
    def _fit_to_stock(cls, product: Product, quantity: Decimal, unit: str) -> Tuple[Decimal, Optional[str]]:
        stock = truncate(product.stock_quantity or 0, QUANTITY_PLACES)
        if quantity >= stock:
            minimum = cls._minimum(product)
            if stock < minimum:
                raise StockBelowMinimum(product.id, product.name, _display(stock, unit), _display(minimum, unit))
            return stock, (
                f"Only {_display(stock, unit)} of {product.name} is available. "
                f"Quantity set to the available stock."
            )
        return quantity, None

    # -- operations ---------------------------------------------------------

    def get_cart(self, *, user_id: str, customer_tier: Optional[str] = None) -> Dict:
        """Return the cart after dropping or clamping lines the catalog can no longer honour."""
        require_value(user_id, "userId")

        def operation(session: Session) -> Dict:
            user = UserDirectory(session).get_user(user_id)
            tier = UserDirectory.customer_tier(user, customer_tier)
            price_field = price_field_for(tier)
            cart = self._load_cart(session, user_id)
            products = CatalogGateway(session).get_products(it["product_id"] for it in cart.items or [])

            kept: List[Dict] = []
            messages: List[str] = []
            for it in cart.items or []:
                product = products.get(it["product_id"])
                if product is None:
                    messages.append("A product was removed from your cart because it no longer exists.")
                    continue
                if not is_visible_to(product, tier):
                    messages.append(f"{product.name} is not available for your account and was removed from your cart.")
                    continue
                stock = truncate(product.stock_quantity or 0, QUANTITY_PLACES)
                if stock <= 0:
                    messages.append(f"{product.name} is out of stock and was removed from your cart.")
                    continue
                quantity = to_decimal(it["quantity"])
                if stock < quantity:
                    if stock < self._minimum(product):
                        messages.append(
                            f"{product.name} no longer has enough stock for the minimum order and was removed from your cart."
                        )
                        continue
                    unit = it.get("selected_unit") or KILOGRAMS
                    it = _line(product.id, stock, unit, price_line_item(product, stock, price_field))
                    messages.append(f"{product.name} quantity adjusted to {_display(stock, unit)} due to stock limits.")
                kept.append(it)

            if kept != list(cart.items or []):
                self._store(cart, kept)
                log_event("info", "cart.adjusted", user_id=user_id, adjustments=len(messages))
            return {"cart": cart_view(cart, products, price_field), "messages": messages}

        return self._run(user_id, operation)

    def add_item(
        self,
        *,
        user_id: str,
        product_id: str,
        quantity: Any,
        unit: str,
        customer_tier: Optional[str] = None,
    ) -> Dict:
        """Add (positive) or take away (negative) *quantity* of a product.

        Requests beyond the available stock are clamped to it and still
        succeed; the returned message explains the adjustment.
        """
        require_value(user_id, "userId")
        require_value(product_id, "productId")
        requested = _parse_quantity(quantity)
        if requested == 0:
            raise InvalidQuantity("Quantity must not be zero")
        unit = normalize_unit(unit)
        canonical = to_canonical(abs(requested), unit)

        def operation(session: Session) -> Dict:
            user = UserDirectory(session).get_user(user_id)
            tier = UserDirectory.customer_tier(user, customer_tier)
            price_field = price_field_for(tier)
            catalog = CatalogGateway(session)
            product = self._resolve_product(catalog, product_id, tier)
            cart = self._load_cart(session, user_id)
            items = list(cart.items or [])
            idx = _find_line(items, product_id)

            if requested < 0:
                if idx is None:
                    raise ItemNotFound(product_id)
                remaining = truncate(to_decimal(items[idx]["quantity"]) - canonical, QUANTITY_PLACES)
                message = None
                if remaining > 0:
                    self._check_minimum(product, remaining, abs(requested), unit)
                    remaining, message = self._fit_to_stock(product, remaining, unit)
                if remaining <= 0:
                    items.pop(idx)
                    effective = Decimal("0")
                    message = f"{product.name} removed from cart."
                else:
                    items[idx] = _line(product.id, remaining, unit, price_line_item(product, remaining, price_field))
                    effective = remaining
                    message = message or "Cart updated."
            else:
                if truncate(product.stock_quantity or 0, QUANTITY_PLACES) <= 0:
                    raise OutOfStock(product_id, product.name)
                self._check_minimum(product, canonical, requested, unit)
                wanted = canonical
                if idx is not None:
                    wanted = truncate(to_decimal(items[idx]["quantity"]) + canonical, QUANTITY_PLACES)
                effective, message = self._fit_to_stock(product, wanted, unit)
                line = _line(product.id, effective, unit, price_line_item(product, effective, price_field))
                if idx is None:
                    items.append(line)
                else:
                    items[idx] = line
                if message:
                    log_event("info", "cart.clamped", user_id=user_id, product_id=product_id,
                              requested=wanted, effective=effective)
                message = message or "Item added to cart."

            self._store(cart, items)
            products = catalog.get_products(it["product_id"] for it in items)
            return {
                "cart": cart_view(cart, products, price_field),
                "effective_quantity": float(from_canonical(effective, unit)),
                "unit": unit,
                "message": message,
            }

        return self._run(user_id, operation)

    def update_quantity(
        self,
        *,
        user_id: str,
        product_id: str,
        quantity: Any,
        unit: str,
        customer_tier: Optional[str] = None,
    ) -> Dict:
        """Set a line to an absolute *quantity*; zero removes the line."""
        require_value(user_id, "userId")
        require_value(product_id, "productId")
        requested = _parse_quantity(quantity)
        if requested < 0:
            raise NegativeQuantity(requested)
        unit = normalize_unit(unit)

        def operation(session: Session) -> Dict:
            user = UserDirectory(session).get_user(user_id)
            tier = UserDirectory.customer_tier(user, customer_tier)
            price_field = price_field_for(tier)
            catalog = CatalogGateway(session)
            cart = self._load_cart(session, user_id, create=False)
            items = list(cart.items or []) if cart is not None else []
            idx = _find_line(items, product_id)
            if cart is None or idx is None:
                raise ItemNotFound(product_id)

            if requested == 0:
                items.pop(idx)
                effective = Decimal("0")
                product = catalog.get_product(product_id)
                message = f"{product.name if product is not None else 'Item'} removed from cart."
            else:
                product = self._resolve_product(catalog, product_id, tier)
                if truncate(product.stock_quantity or 0, QUANTITY_PLACES) <= 0:
                    raise OutOfStock(product_id, product.name)
                canonical = to_canonical(requested, unit)
                self._check_minimum(product, canonical, requested, unit)
                effective, message = self._fit_to_stock(product, canonical, unit)
                items[idx] = _line(product.id, effective, unit, price_line_item(product, effective, price_field))
                message = message or "Cart updated."

            self._store(cart, items)
            products = catalog.get_products(it["product_id"] for it in items)
            return {
                "cart": cart_view(cart, products, price_field),
                "effective_quantity": float(from_canonical(effective, unit)),
                "unit": unit,
                "message": message,
            }

        return self._run(user_id, operation)

    def remove_item(self, *, user_id: str, product_id: str) -> Dict:
        """Drop a line. Removing something that is not in the cart is not an error."""
        require_value(user_id, "userId")
        require_value(product_id, "productId")

        def operation(session: Session) -> Dict:
            cart = self._load_cart(session, user_id, create=False)
            if cart is None:
                return empty_cart_view(user_id)
            items = [it for it in cart.items or [] if it["product_id"] != product_id]
            if len(items) != len(cart.items or []):
                self._store(cart, items)
            products = CatalogGateway(session).get_products(it["product_id"] for it in items)
            return cart_view(cart, products)

        return self._run(user_id, operation)
