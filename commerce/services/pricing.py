"""Line and cart pricing.

Line prices are snapshots: they are computed when a line is added or updated
(or clamped during a cart read) and afterwards only ever summed, never
recomputed from the live product.
"""

from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional

from ..utils.units import MONEY_PLACES, QUANTITY_PLACES, Number, round_up, to_decimal, truncate

BUSINESS = "business"
CONSUMER = "consumer"

PriceField = Callable[[Any], Decimal]


def _tier_price(attr: str) -> PriceField:
    def select(product) -> Decimal:
        value = getattr(product, attr, None)
        if value is None:
            value = product.price_per_kg
        return to_decimal(value or 0)

    select.__name__ = f"select_{attr}"
    return select


_PRICE_FIELDS: Dict[str, PriceField] = {
    BUSINESS: _tier_price("business_price"),
    CONSUMER: _tier_price("consumer_price"),
}


def normalize_tier(tier: Optional[str], default: str = CONSUMER) -> str:
    """Unrecognised tiers resolve to *default*, never to a wider one."""
    value = str(tier or "").strip().lower()
    return value if value in _PRICE_FIELDS else default


def price_field_for(tier: Optional[str]) -> PriceField:
    return _PRICE_FIELDS[normalize_tier(tier)]


def is_visible_to(product, tier: Optional[str]) -> bool:
    if normalize_tier(tier) == BUSINESS:
        return True
    return bool(product.is_customer_visible)


def price_line_item(product, canonical_quantity: Number, price_field: PriceField) -> Decimal:
    return round_up(to_decimal(canonical_quantity) * price_field(product), MONEY_PLACES)


def recompute_cart_totals(cart) -> Dict[str, Decimal]:
    """Refresh ``subtotal``, ``total_items`` and ``total_amount`` on *cart*."""
    subtotal = sum((to_decimal(it["price"]) for it in cart.items or []), Decimal("0"))
    total_items = sum((to_decimal(it["quantity"]) for it in cart.items or []), Decimal("0"))
    discount = min(to_decimal(cart.coupon_discount or 0), subtotal)
    cart.subtotal = round_up(subtotal, MONEY_PLACES)
    cart.total_items = truncate(total_items, QUANTITY_PLACES)
    cart.total_amount = truncate(subtotal - discount, QUANTITY_PLACES)
    return {
        "subtotal": cart.subtotal,
        "total_items": cart.total_items,
        "total_amount": cart.total_amount,
    }


def delivery_fee(subtotal: Number, threshold: Number = 500, fee: Number = 50) -> Decimal:
    if to_decimal(subtotal) >= to_decimal(threshold):
        return Decimal("0.00")
    return round_up(fee, MONEY_PLACES)


def payment_summary(
    items: Iterable[Dict[str, Any]],
    coupon_discount: Number = 0,
    threshold: Number = 500,
    fee: Number = 50,
) -> Dict[str, Decimal]:
    items = list(items)
    subtotal = round_up(sum((to_decimal(it["price"]) for it in items), Decimal("0")), MONEY_PLACES)
    discount = min(round_up(coupon_discount, MONEY_PLACES), subtotal)
    delivery = delivery_fee(subtotal, threshold, fee)
    return {
        "subtotal": subtotal,
        "coupon_discount": discount,
        "delivery_fee": delivery,
        "total_amount": round_up(subtotal - discount + delivery, MONEY_PLACES),
        "total_items": truncate(sum((to_decimal(it["quantity"]) for it in items), Decimal("0")), QUANTITY_PLACES),
    }


def summary_to_dict(summary: Dict[str, Decimal]) -> Dict[str, float]:
    return {
        "subtotal": float(summary["subtotal"]),
        "couponDiscount": float(summary["coupon_discount"]),
        "deliveryFee": float(summary["delivery_fee"]),
        "totalAmount": float(summary["total_amount"]),
        "totalItems": float(summary["total_items"]),
    }
