from typing import Any, Dict, Optional


def to_product_dto(row: Any, unit_price: Optional[Any] = None) -> Dict:
    price = unit_price if unit_price is not None else getattr(row, "price_per_kg", 0)
    return {
        "id": getattr(row, "id", None),
        "name": getattr(row, "name", None),
        "image": (getattr(row, "images", None) or [None])[0],
        "defaultUnit": getattr(row, "default_unit", None),
        "pricePerKg": float(price or 0),
        "stockQuantity": float(getattr(row, "stock_quantity", 0) or 0),
        "packagingQuantity": float(getattr(row, "packaging_quantity", 0) or 0),
        "isCustomerVisible": bool(getattr(row, "is_customer_visible", True)),
    }
