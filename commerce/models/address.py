from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, func
from .base import Base


class Address(Base):
    __tablename__ = "address"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("user.id"), nullable=False, index=True)
    complete_address = Column(String(512), nullable=False)
    landmark = Column(String(255), nullable=True)
    pincode = Column(String(6), nullable=False)
    city = Column(String(128), nullable=False)
    state = Column(String(128), nullable=False)
    address_nickname = Column(String(16), nullable=False, default="Home")
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "completeAddress": self.complete_address,
            "landmark": self.landmark,
            "pincode": self.pincode,
            "city": self.city,
            "state": self.state,
            "addressNickname": self.address_nickname,
            "isDefault": bool(self.is_default),
        }

    def snapshot(self):
        """Copied into orders so later edits never rewrite history."""
        return {
            "completeAddress": self.complete_address,
            "city": self.city,
            "pincode": self.pincode,
            "state": self.state,
            "landmark": self.landmark,
        }
