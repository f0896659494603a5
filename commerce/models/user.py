from sqlalchemy import Column, DateTime, String, func
from .base import Base


class User(Base):
    __tablename__ = "user"

    id = Column(String(36), primary_key=True)
    phone = Column(String(20), nullable=False, unique=True)
    # business or consumer; decides price tier and product visibility
    customer_type = Column(String(16), nullable=False, default="consumer")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
