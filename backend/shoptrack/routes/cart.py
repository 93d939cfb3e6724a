# Overview: Flask API routes for the caller's cart; every change reserves or releases stock.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import cart_service


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    return jsonify({"cart": cart_service.get_cart(g.actor)}), 200


@cart_bp.post("/items")
@require_auth
def add_item_route():
    """
    Request body:
    {
        "product_id": "...",
        "quantity": 2  (optional, default: 1)
    }

    Returns:
        201: line after the reservation
        409: not enough stock to reserve
    """
    data = request.get_json(silent=True) or {}
    line = cart_service.add_to_cart(g.actor, data.get("product_id"), data.get("quantity", 1))
    return jsonify({"line": line.to_dict()}), 201


@cart_bp.put("/items/<product_id>")
@require_auth
def set_quantity_route(product_id: str):
    data = request.get_json(silent=True) or {}
    line = cart_service.set_cart_quantity(g.actor, product_id, data.get("quantity"))
    if line is None:
        return "", 204
    return jsonify({"line": line.to_dict()}), 200


@cart_bp.delete("/items/<product_id>")
@require_auth
def remove_item_route(product_id: str):
    released = cart_service.remove_from_cart(g.actor, product_id)
    return jsonify({"released": released}), 200


@cart_bp.delete("")
@require_auth
def clear_cart_route():
    released = cart_service.clear_cart(g.actor)
    return jsonify({"released": released}), 200
