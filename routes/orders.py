"""Order API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from . import components, payload


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
def create_order():
    body = payload()
    order = components()["orders"].place_order(
        user_id=body.get("userId"),
        address_id=body.get("addressId"),
        payment_method=body.get("paymentMethod"),
        payment_summary=body.get("paymentSummary"),
    )
    return jsonify({"success": True, "message": "Order placed successfully!", "data": {"order": order}}), 201


@orders_bp.get("/user/<user_id>")
def list_user_orders(user_id: str):
    return jsonify({"success": True, "data": components()["orders"].list_user_orders(user_id)})


@orders_bp.get("/<order_id>")
def get_order(order_id: str):
    return jsonify({"success": True, "data": components()["orders"].get_order(order_id)})


@orders_bp.patch("/<order_id>/status")
def update_status(order_id: str):
    body = payload()
    order = components()["orders"].update_status(
        order_id=order_id,
        status=body.get("status"),
        notes=body.get("notes"),
    )
    return jsonify({"success": True, "data": order})


@orders_bp.post("/<order_id>/assign")
def assign_agent(order_id: str):
    body = payload()
    order = components()["orders"].assign_delivery_agent(order_id=order_id, agent_id=body.get("agentId"))
    return jsonify({"success": True, "message": "Order assigned to delivery agent", "data": order})


@orders_bp.post("/<order_id>/deliver")
def confirm_delivery(order_id: str):
    body = payload()
    order = components()["orders"].confirm_delivery(order_id=order_id, otp=body.get("otp"))
    return jsonify({"success": True, "message": "Delivery confirmed", "data": order})
