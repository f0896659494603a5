from sqlalchemy import Column, DateTime, JSON, Numeric, String, func
from .base import Base


PAYMENT_STATUSES = ("PENDING", "PAID", "UNPAID", "FAILED", "REFUNDED")


class Payment(Base):
    __tablename__ = "payment"

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    transaction_id = Column(String(64), nullable=False, unique=True)
    gateway_order_id = Column(String(64), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")
    due_date = Column(DateTime, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "orderId": self.order_id,
            "userId": self.user_id,
            "transactionId": self.transaction_id,
            "gatewayOrderId": self.gateway_order_id,
            "amount": float(self.amount or 0),
            "method": self.method,
            "status": self.status,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
        }
