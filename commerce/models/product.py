from sqlalchemy import Boolean, Column, DateTime, JSON, Numeric, String, Text, func
from .base import Base


class Product(Base):
    __tablename__ = "product"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    images = Column(JSON, nullable=True)
    # gms / kg / ltr; packaging_quantity is expressed in this unit
    default_unit = Column(String(8), nullable=False, default="kg")
    # price and stock are per canonical unit (kg, or ltr for liquids)
    price_per_kg = Column(Numeric(12, 2), nullable=False, default=0)
    business_price = Column(Numeric(12, 2), nullable=True)
    consumer_price = Column(Numeric(12, 2), nullable=True)
    stock_quantity = Column(Numeric(12, 3), nullable=False, default=0)
    packaging_quantity = Column(Numeric(12, 3), nullable=False, default=0)
    is_customer_visible = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
