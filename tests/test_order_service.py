from dataclasses import replace
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

import commerce.services.order_service as order_module
from commerce.errors import (
    AddressNotFound,
    EmptyCart,
    InvalidDeliveryOtp,
    InvalidOrderStatus,
    InvalidPaymentMethod,
    InvalidPaymentSummary,
    InvalidStatusTransition,
    OrderNotFound,
    StockConflict,
    StorageError,
    SummaryMismatch,
    TransactionTimeout,
)
from commerce.services import OrderService

from conftest import ORDER_DAY


@pytest.fixture
def filled_cart(shopper, cart_service):
    cart_service.add_item(user_id=shopper, product_id="p1", quantity=5, unit="kg")
    return shopper


def place(order_service, user_id="u1", method="cod", **kwargs):
    return order_service.place_order(user_id=user_id, address_id="a1", payment_method=method, **kwargs)


def assert_nothing_written(store, stock="10", quantity=5.0):
    assert store.orders() == []
    assert store.payments() == []
    assert store.stock("p1") == Decimal(stock)
    cart = store.cart("u1")
    assert cart is not None
    assert [Decimal(it["quantity"]) for it in cart.items] == [Decimal(str(quantity))]


class TestPlaceOrder:
    def test_cash_on_delivery(self, filled_cart, order_service, store):
        order = place(order_service)

        assert order["orderId"] == "ORD-20261019-0001"
        assert order["status"] == "Pending"
        assert [p["status"] for p in order["orderProgress"]] == ["Pending"]
        assert order["items"] == [{"productId": "p1", "name": "Basmati Rice", "quantity": 5.0, "price": 200.0}]
        assert order["subtotal"] == 200.0
        assert order["deliveryCharge"] == 50.0
        assert order["totalAmount"] == 250.0
        assert order["currency"] == "INR"
        assert order["shippingAddress"]["city"] == "Bengaluru"
        assert order["paymentDetails"]["paymentMethod"] == "Cash on Delivery"
        assert order["paymentDetails"]["paymentStatus"] == "Pending"
        assert len(order["deliveryOtp"]) == 6 and order["deliveryOtp"].isdigit()
        assert order["payment"]["status"] == "PENDING"
        assert order["payment"]["transactionId"].startswith("COD-")

        assert store.stock("p1") == Decimal("5")
        assert store.cart("u1") is None
        [payment] = store.payments()
        assert payment.amount == Decimal("250")

    def test_credit_gets_a_due_date(self, filled_cart, order_service):
        order = place(order_service, method="credit")

        assert order["paymentDetails"]["paymentMethod"] == "Credit"
        assert order["payment"]["dueDate"] is not None
        assert order["payment"]["transactionId"].startswith("CR-")

    def test_order_numbers_count_up_within_the_day(self, shopper, cart_service, order_service):
        numbers = []
        for _ in range(3):
            cart_service.add_item(user_id=shopper, product_id="p1", quantity=1, unit="kg")
            numbers.append(place(order_service)["orderId"])

        assert numbers == ["ORD-20261019-0001", "ORD-20261019-0002", "ORD-20261019-0003"]

    def test_stock_only_goes_down_by_what_was_ordered(self, store, cart_service, order_service):
        store.add_product("p2", name="Sugar", price="45", stock="20", packaging="1")
        quantities = {"u1": 3, "u2": 4}
        for user_id, qty in quantities.items():
            store.add_user(user_id)
            store.add_address(f"addr-{user_id}", user_id)
            cart_service.add_item(user_id=user_id, product_id="p2", quantity=qty, unit="kg")
            order_service.place_order(user_id=user_id, address_id=f"addr-{user_id}", payment_method="cod")

        assert store.stock("p2") == Decimal("13")

    def test_summary_total_must_match(self, filled_cart, order_service, store):
        with pytest.raises(SummaryMismatch):
            place(order_service, payment_summary={"totalAmount": 100})
        assert_nothing_written(store)

        order = place(order_service, payment_summary={"totalAmount": 250.0})
        assert order["totalAmount"] == 250.0

    @pytest.mark.parametrize("summary", [[1], "abc", {"totalAmount": "NaN"}, {"totalAmount": {"value": 250}}])
    def test_malformed_summary_is_rejected(self, filled_cart, order_service, store, summary):
        with pytest.raises(InvalidPaymentSummary) as exc:
            place(order_service, payment_summary=summary)

        assert exc.value.status_code == 400
        assert_nothing_written(store)

    def test_empty_cart(self, shopper, order_service):
        with pytest.raises(EmptyCart):
            place(order_service)

    def test_address_must_belong_to_the_user(self, filled_cart, order_service, store):
        store.add_user("u2")
        store.add_address("a2", "u2")
        with pytest.raises(AddressNotFound):
            order_service.place_order(user_id="u1", address_id="a2", payment_method="cod")

    @pytest.mark.parametrize("method", ["gpay", "card", "upi"])
    def test_online_methods_go_through_the_gateway(self, filled_cart, order_service, method):
        with pytest.raises(InvalidPaymentMethod):
            place(order_service, method=method)

    def test_unknown_method(self, filled_cart, order_service):
        with pytest.raises(InvalidPaymentMethod):
            place(order_service, method="barter")


class TestAtomicity:
    def test_insufficient_stock_aborts(self, filled_cart, order_service, store):
        store.update_product("p1", stock_quantity=Decimal("3"))

        with pytest.raises(StockConflict) as exc:
            place(order_service)

        [issue] = exc.value.issues
        assert issue["issue"] == "insufficient_quantity"
        assert exc.value.details["stockIssues"] == exc.value.issues
        assert_nothing_written(store, stock="3")

    def test_failure_after_stock_decrement_rolls_everything_back(self, filled_cart, order_service, store, monkeypatch):
        def fail(session, cart):
            raise RuntimeError("disk full")

        monkeypatch.setattr(OrderService, "_clear_cart", staticmethod(fail))

        with pytest.raises(RuntimeError):
            place(order_service)

        assert_nothing_written(store)

    def test_lost_stock_race_is_caught_by_the_decrement(self, filled_cart, order_service, store, monkeypatch):
        store.update_product("p1", stock_quantity=Decimal("4"))
        # the pre-check sees enough stock, the conditional decrement does not
        monkeypatch.setattr(order_module, "find_stock_issues", lambda items, products: [])

        with pytest.raises(StockConflict) as exc:
            place(order_service)

        assert exc.value.issues[0]["productId"] == "p1"
        assert_nothing_written(store, stock="4")

    def test_deadline_aborts_the_transaction(self, filled_cart, session_factory, app_config, store):
        impatient = OrderService(session_factory, replace(app_config, order_timeout_seconds=-1))

        with pytest.raises(TransactionTimeout) as exc:
            place(impatient)

        assert exc.value.retryable
        assert_nothing_written(store)

    def test_transient_storage_failure_is_retried(self, filled_cart, order_service, store, monkeypatch):
        original = OrderService._next_order_number
        calls = {"n": 0}

        def flaky(session, day):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))
            return original(session, day)

        monkeypatch.setattr(OrderService, "_next_order_number", staticmethod(flaky))

        order = place(order_service)

        assert calls["n"] == 2
        assert order["orderId"] == "ORD-20261019-0001"
        assert store.stock("p1") == Decimal("5")

    def test_persistent_storage_failure(self, filled_cart, order_service, store, monkeypatch):
        def broken(session, day):
            raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))

        monkeypatch.setattr(OrderService, "_next_order_number", staticmethod(broken))

        with pytest.raises(StorageError) as exc:
            place(order_service)

        assert exc.value.status_code == 503
        assert_nothing_written(store)


class TestFractionalStock:
    def test_fractional_orders_can_use_up_the_whole_stock(self, store, cart_service, checkout_service, order_service):
        store.add_product("p9", name="Rock Salt", price="30", stock="1", packaging="0.1")
        for user_id in ("u1", "u2"):
            store.add_user(user_id)
            store.add_address(f"addr-{user_id}", user_id)

        cart_service.add_item(user_id="u1", product_id="p9", quantity=900, unit="gms")
        order_service.place_order(user_id="u1", address_id="addr-u1", payment_method="cod")
        assert store.stock("p9") == Decimal("0.1")

        cart_service.add_item(user_id="u2", product_id="p9", quantity=100, unit="gms")
        assert checkout_service.validate(user_id="u2", address_id="addr-u2")["isValid"] is True
        order = order_service.place_order(user_id="u2", address_id="addr-u2", payment_method="cod")

        assert order["items"][0]["quantity"] == 0.1
        assert store.stock("p9") == Decimal("0")


class TestQueries:
    def test_get_by_id_or_number(self, filled_cart, order_service):
        order = place(order_service)

        assert order_service.get_order(order["id"])["orderId"] == order["orderId"]
        assert order_service.get_order(order["orderId"])["id"] == order["id"]
        assert "deliveryOtp" not in order_service.get_order(order["id"])

    def test_unknown_order(self, order_service, store):
        with pytest.raises(OrderNotFound):
            order_service.get_order("ORD-19990101-0001")

    def test_user_orders_newest_first(self, shopper, cart_service, order_service):
        for _ in range(2):
            cart_service.add_item(user_id=shopper, product_id="p1", quantity=1, unit="kg")
            place(order_service)

        orders = order_service.list_user_orders(shopper)

        assert [o["orderId"] for o in orders] == ["ORD-20261019-0002", "ORD-20261019-0001"]
        assert order_service.list_user_orders("nobody") == []


class TestLifecycle:
    def test_status_update_appends_progress(self, filled_cart, order_service):
        order = place(order_service)

        updated = order_service.update_status(order_id=order["id"], status="Confirmed", notes="Packed")

        assert updated["status"] == "Confirmed"
        assert updated["orderProgress"][-1] == {
            "status": "Confirmed",
            "date": ORDER_DAY.isoformat(),
            "notes": "Packed",
        }

    def test_unknown_status(self, filled_cart, order_service):
        order = place(order_service)
        with pytest.raises(InvalidOrderStatus):
            order_service.update_status(order_id=order["id"], status="Lost")

    def test_terminal_orders_stay_terminal(self, filled_cart, order_service):
        order = place(order_service)
        order_service.update_status(order_id=order["id"], status="Cancelled")

        with pytest.raises(InvalidStatusTransition):
            order_service.update_status(order_id=order["id"], status="Confirmed")

    def test_delivery_with_otp_settles_cash_on_delivery(self, filled_cart, order_service, store):
        order = place(order_service)

        assigned = order_service.assign_delivery_agent(order_id=order["id"], agent_id="agent-7")
        assert assigned["status"] == "Out for delivery"
        assert assigned["deliveryAgentId"] == "agent-7"
        assert "deliveryOtp" not in assigned
        [stored] = store.orders()
        assert stored.delivery_otp == order["deliveryOtp"]

        with pytest.raises(InvalidDeliveryOtp):
            order_service.confirm_delivery(order_id=order["id"], otp="not-it")

        delivered = order_service.confirm_delivery(order_id=order["id"], otp=order["deliveryOtp"])
        assert delivered["status"] == "Delivered"
        assert delivered["paymentDetails"]["paymentStatus"] == "Completed"
        [payment] = store.payments()
        assert payment.status == "PAID"

    def test_credit_stays_unpaid_on_delivery(self, filled_cart, order_service, store):
        order = place(order_service, method="credit")

        order_service.confirm_delivery(order_id=order["id"], otp=order["deliveryOtp"])

        [payment] = store.payments()
        assert payment.status == "PENDING"
