"""HTTP blueprints for the cart, checkout, order and payment APIs."""

from typing import Any, Dict

from flask import current_app, request


def components() -> Dict[str, Any]:
    return current_app.extensions["commerce_services"]


def payload() -> Dict[str, Any]:
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        return {}
    return body
