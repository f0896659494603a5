"""Checkout API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from . import components, payload


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.get("/<user_id>")
def get_summary(user_id: str):
    data = components()["checkout"].get_summary(user_id=user_id)
    return jsonify({"success": True, "data": data})


@checkout_bp.post("/validate")
def validate_checkout():
    body = payload()
    data = components()["checkout"].validate(user_id=body.get("userId"), address_id=body.get("addressId"))
    message = "Checkout validation successful" if data["isValid"] else "Some items in your cart have stock issues"
    return jsonify({"success": True, "message": message, "data": data})


@checkout_bp.post("/calculate-delivery")
def calculate_delivery():
    body = payload()
    data = components()["checkout"].delivery_quote(user_id=body.get("userId"))
    return jsonify({"success": True, "data": data})


@checkout_bp.put("/address")
def select_address():
    body = payload()
    address = components()["checkout"].select_address(user_id=body.get("userId"), address_id=body.get("addressId"))
    return jsonify({"success": True, "message": "Delivery address selected", "data": {"address": address}})
