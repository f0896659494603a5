from sqlalchemy import Column, DateTime, Integer, JSON, Numeric, String, func
from .base import Base


class Cart(Base):
    """One cart per user.

    ``items`` is an ordered list of line dicts
    ``{"product_id", "quantity", "selected_unit", "price"}`` with quantity in
    kilograms and price the snapshot taken when the line was last touched.
    Decimals are kept as strings inside the JSON document.
    """

    __tablename__ = "cart"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False, unique=True)
    items = Column(JSON, nullable=False, default=list)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    total_items = Column(Numeric(12, 3), nullable=False, default=0)
    coupon_discount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 3), nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}
