"""Cart API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from . import components, payload


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _mutation_response(result: dict):
    return jsonify(
        {
            "success": True,
            "message": result["message"],
            "data": {
                "cart": result["cart"],
                "effectiveQuantity": result["effective_quantity"],
                "unit": result["unit"],
            },
        }
    )


@cart_bp.get("/<user_id>")
def get_cart(user_id: str):
    result = components()["cart"].get_cart(
        user_id=user_id,
        customer_tier=request.args.get("customerType"),
    )
    return jsonify({"success": True, "data": result["cart"], "messages": result["messages"]})


@cart_bp.post("/add")
def add_item():
    body = payload()
    result = components()["cart"].add_item(
        user_id=body.get("userId"),
        product_id=body.get("productId"),
        quantity=body.get("quantity"),
        unit=body.get("unit"),
        customer_tier=body.get("customerType"),
    )
    return _mutation_response(result)


@cart_bp.put("/update-quantity")
def update_quantity():
    body = payload()
    result = components()["cart"].update_quantity(
        user_id=body.get("userId"),
        product_id=body.get("productId"),
        quantity=body.get("quantity"),
        unit=body.get("unit"),
        customer_tier=body.get("customerType"),
    )
    return _mutation_response(result)


@cart_bp.delete("/item")
def remove_item():
    # DELETE bodies are dropped by some clients; accept query args too
    body = payload()
    cart = components()["cart"].remove_item(
        user_id=body.get("userId") or request.args.get("userId"),
        product_id=body.get("productId") or request.args.get("productId"),
    )
    return jsonify({"success": True, "data": cart})
