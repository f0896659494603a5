from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..models.product import Product
from ..utils.units import QUANTITY_PLACES, to_decimal

# half of the smallest stored quantity step
STOCK_TOLERANCE = Decimal("0.0005")


class CatalogGateway:
    """Read access to products plus the one write this core is allowed: stock decrement.

    A gateway is bound to a single session and lives no longer than the
    operation that created it, so product data is never cached across
    requests.
    """

    def __init__(self, session: Session):
        self._session = session

    def get_product(self, product_id: str) -> Optional[Product]:
        if not product_id:
            return None
        return self._session.get(Product, product_id)

    def get_products(self, product_ids: Iterable[str], *, for_update: bool = False) -> Dict[str, Product]:
        ids = sorted({pid for pid in product_ids if pid})
        if not ids:
            return {}
        stmt = select(Product).where(Product.id.in_(ids)).order_by(Product.id)
        if for_update:
            # lock rows in a stable order so concurrent checkouts cannot deadlock
            stmt = stmt.with_for_update()
        rows = self._session.execute(stmt).scalars().all()
        return {p.id: p for p in rows}

    def decrement_stock(self, product_id: str, quantity: Decimal) -> bool:
        """Decrement-if-sufficient. Returns False when stock no longer covers *quantity*."""
        qty = to_decimal(quantity)
        # NUMERIC is REAL on sqlite; keep the stored value at quantity precision
        result = self._session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= qty - STOCK_TOLERANCE)
            .values(stock_quantity=func.round(Product.stock_quantity - qty, QUANTITY_PLACES))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def bulk_decrement(self, quantities: Dict[str, Decimal]) -> List[str]:
        """Apply every decrement; return the product ids that could not be covered."""
        failed = []
        for product_id in sorted(quantities):
            if not self.decrement_stock(product_id, quantities[product_id]):
                failed.append(product_id)
        return failed
