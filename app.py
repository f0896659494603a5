"""Grocery commerce Flask application."""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from commerce.config import AppConfig, load_env
from commerce.db.session import configure
from commerce.errors import CommerceError
from commerce.services import CartService, CheckoutService, OrderService, PaymentService
from config import ServerConfig
from routes import cart, checkout, orders, payment

logger = logging.getLogger(__name__)


def create_app(config: Optional[AppConfig] = None, session_factory=None, http=None) -> Flask:
    if config is None:
        config = load_env(ServerConfig.load().settings_file)
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if session_factory is None:
        session_factory = configure(config.database_url)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["COMMERCE_CONFIG"] = config

    order_service = OrderService(session_factory, config)
    components = {
        "cart": CartService(session_factory, config),
        "checkout": CheckoutService(session_factory, config),
        "orders": order_service,
        "payment": PaymentService(order_service, session_factory, config, http=http),
    }
    app.extensions["commerce_services"] = components

    app.register_blueprint(cart.cart_bp)
    app.register_blueprint(checkout.checkout_bp)
    app.register_blueprint(orders.orders_bp)
    app.register_blueprint(payment.payment_bp)

    @app.errorhandler(CommerceError)
    def handle_commerce_error(exc: CommerceError):
        if exc.retryable:
            logger.warning("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"success": False, "error": exc.name, "message": exc.description}), exc.code
        logger.exception("unhandled error: %s", exc)
        return jsonify({"success": False, "error": "InternalServerError", "message": "Internal server error"}), 500

    @app.get("/api/health")
    def health():
        return jsonify({"status": "ok", "service": "grocery-commerce"})

    return app


def main() -> None:
    server = ServerConfig.load()
    app = create_app(load_env(server.settings_file))
    app.run(host=server.host, port=server.port, debug=server.debug)


if __name__ == "__main__":
    main()
