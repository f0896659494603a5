"""Shared fixtures: a throwaway sqlite database, seeded rows and wired services."""

import hashlib
import hmac
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import select

from commerce.config import AppConfig
from commerce.db.session import build_engine, init_db, make_session_factory
from commerce.models import Address, Cart, Order, Payment, Product, User
from commerce.services import CartService, CheckoutService, OrderService, PaymentService

KEY_SECRET = "rzp_test_secret"
ORDER_DAY = datetime(2026, 10, 19, 11, 30, tzinfo=ZoneInfo("Asia/Kolkata"))


def sign(gateway_order_id: str, gateway_payment_id: str, secret: str = KEY_SECRET) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class Store:
    """Direct database access for arranging and inspecting test state."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def add_user(self, user_id: str = "u1", customer_type: str = "consumer", phone: Optional[str] = None) -> str:
        with self.session_factory() as session:
            session.add(User(id=user_id, phone=phone or f"+91-{user_id}", customer_type=customer_type))
        return user_id

    def add_product(
        self,
        product_id: str = "p1",
        *,
        name: Optional[str] = None,
        price: str = "40",
        stock: str = "10",
        packaging: str = "0.5",
        unit: str = "kg",
        visible: bool = True,
        business_price: Optional[str] = None,
        consumer_price: Optional[str] = None,
    ) -> str:
        with self.session_factory() as session:
            session.add(
                Product(
                    id=product_id,
                    name=name or f"Product {product_id}",
                    images=[f"https://img.example/{product_id}.jpg"],
                    default_unit=unit,
                    price_per_kg=Decimal(price),
                    business_price=Decimal(business_price) if business_price else None,
                    consumer_price=Decimal(consumer_price) if consumer_price else None,
                    stock_quantity=Decimal(stock),
                    packaging_quantity=Decimal(packaging),
                    is_customer_visible=visible,
                )
            )
        return product_id

    def add_address(self, address_id: str = "a1", user_id: str = "u1", default: bool = True) -> str:
        with self.session_factory() as session:
            session.add(
                Address(
                    id=address_id,
                    user_id=user_id,
                    complete_address="12 MG Road",
                    landmark="Near the park",
                    pincode="560001",
                    city="Bengaluru",
                    state="Karnataka",
                    is_default=default,
                )
            )
        return address_id

    def update_product(self, product_id: str, **values) -> None:
        with self.session_factory() as session:
            product = session.get(Product, product_id)
            for key, value in values.items():
                setattr(product, key, value)

    def delete_product(self, product_id: str) -> None:
        with self.session_factory() as session:
            session.delete(session.get(Product, product_id))

    def stock(self, product_id: str) -> Decimal:
        with self.session_factory() as session:
            return session.get(Product, product_id).stock_quantity

    def cart(self, user_id: str = "u1") -> Optional[Cart]:
        with self.session_factory() as session:
            return session.execute(select(Cart).where(Cart.user_id == user_id)).scalars().first()

    def orders(self) -> List[Order]:
        with self.session_factory() as session:
            return list(session.execute(select(Order)).scalars().all())

    def payments(self) -> List[Payment]:
        with self.session_factory() as session:
            return list(session.execute(select(Payment)).scalars().all())


@pytest.fixture
def app_config():
    return AppConfig(
        database_url="sqlite://",
        secret_key="test",
        log_level="WARNING",
        currency="INR",
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=KEY_SECRET,
    )


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'commerce.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return Store(session_factory)


@pytest.fixture
def cart_service(session_factory, app_config):
    return CartService(session_factory, app_config)


@pytest.fixture
def checkout_service(session_factory, app_config):
    return CheckoutService(session_factory, app_config)


@pytest.fixture
def order_service(session_factory, app_config):
    return OrderService(session_factory, app_config, clock=lambda: ORDER_DAY)


@pytest.fixture
def payment_service(order_service, session_factory, app_config):
    return PaymentService(order_service, session_factory, app_config, http=FakeHttp())


class FakeResponse:
    def __init__(self, status_code: int, data: dict):
        self.status_code = status_code
        self._data = data
        self.text = str(data)

    def json(self):
        return self._data


class FakeHttp:
    """Stands in for the ``requests`` module when talking to Razorpay."""

    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None):
        self.response = response or FakeResponse(200, {"id": "order_TEST123", "currency": "INR"})
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def shopper(store):
    """A consumer with a default address and one product in the catalog."""
    store.add_user("u1")
    store.add_address("a1", "u1")
    store.add_product("p1", name="Basmati Rice", price="40", stock="10", packaging="0.5")
    return "u1"
