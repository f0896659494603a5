"""Users and addresses.

Both are owned by other parts of the platform (sign-up, address book); this
core only resolves identities, customer tiers and address ownership.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import AddressNotFound, UserNotFound
from ..models.address import Address
from ..models.user import User
from .pricing import CONSUMER, normalize_tier


class UserDirectory:
    def __init__(self, session: Session):
        self._session = session

    def get_user(self, user_id: str) -> User:
        user = self._session.get(User, user_id) if user_id else None
        if user is None:
            raise UserNotFound(user_id)
        return user

    @staticmethod
    def customer_tier(user: User, requested: Optional[str] = None) -> str:
        """The stored tier decides; a business account may ask for consumer pricing."""
        stored = normalize_tier(user.customer_type)
        if stored == CONSUMER:
            return CONSUMER
        return normalize_tier(requested, default=stored)


class AddressBook:
    def __init__(self, session: Session):
        self._session = session

    def get_for_user(self, address_id: str, user_id: str) -> Address:
        address = self._session.get(Address, address_id) if address_id else None
        if address is None or address.user_id != user_id:
            raise AddressNotFound(address_id)
        return address

    def default_for_user(self, user_id: str) -> Optional[Address]:
        return (
            self._session.execute(
                select(Address)
                .where(Address.user_id == user_id, Address.is_default.is_(True))
                .limit(1)
            )
            .scalars()
            .first()
        )
