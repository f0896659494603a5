from sqlalchemy import Column, DateTime, JSON, Numeric, String, func
from .base import Base


ORDER_STATUSES = (
    "Pending",
    "Confirmed",
    "Shipped",
    "In Transit",
    "Out for delivery",
    "Delivered",
    "Cancelled",
)
TERMINAL_STATUSES = {"Delivered", "Cancelled"}


class Order(Base):
    __tablename__ = "order"

    id = Column(String(36), primary_key=True)
    order_number = Column(String(32), nullable=False, unique=True)
    user_id = Column(String(36), nullable=False, index=True)
    items = Column(JSON, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    coupon_discount = Column(Numeric(12, 2), nullable=False, default=0)
    delivery_charge = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    shipping_address = Column(JSON, nullable=False)
    payment = Column(JSON, nullable=False)
    status = Column(String(32), nullable=False, default="Pending")
    progress = Column(JSON, nullable=False)
    delivery_otp = Column(String(6), nullable=False)
    delivery_agent_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self, include_otp: bool = False):
        data = {
            "id": self.id,
            "orderId": self.order_number,
            "userId": self.user_id,
            "items": [
                {
                    "productId": it["product_id"],
                    "name": it["name"],
                    "quantity": float(it["quantity"]),
                    "price": float(it["price"]),
                }
                for it in self.items or []
            ],
            "subtotal": float(self.subtotal or 0),
            "couponDiscount": float(self.coupon_discount or 0),
            "deliveryCharge": float(self.delivery_charge or 0),
            "totalAmount": float(self.total_amount or 0),
            "currency": self.currency,
            "shippingAddress": self.shipping_address,
            "paymentDetails": self.payment,
            "status": self.status,
            "orderProgress": self.progress,
            "deliveryAgentId": self.delivery_agent_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if include_otp:
            data["deliveryOtp"] = self.delivery_otp
        return data
