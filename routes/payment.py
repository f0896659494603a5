"""Payment gateway API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from . import components, payload


payment_bp = Blueprint("payment", __name__, url_prefix="/api/payment")


@payment_bp.post("/create-order")
def create_gateway_order():
    body = payload()
    data = components()["payment"].create_gateway_order(user_id=body.get("userId"))
    return jsonify({"success": True, "data": data})


@payment_bp.post("/verify")
def verify_payment():
    body = payload()
    order = components()["payment"].verify_and_place_order(
        gateway_order_id=body.get("razorpay_order_id"),
        gateway_payment_id=body.get("razorpay_payment_id"),
        signature=body.get("razorpay_signature"),
        user_id=body.get("userId"),
        address_id=body.get("addressId"),
        payment_method=body.get("paymentMethod"),
        payment_summary=body.get("paymentSummary"),
    )
    return jsonify({"success": True, "message": "Order placed successfully!", "order": order}), 201


@payment_bp.patch("/<payment_id>/status")
def update_payment_status(payment_id: str):
    body = payload()
    data = components()["payment"].update_payment_status(payment_id=payment_id, status=body.get("status"))
    return jsonify({"success": True, "data": data})
