# Overview: Flask API routes for checkout, orders and payment status.

# backend/shoptrack/routes/orders.py
"""
Order API Routes

- POST /api/orders/checkout turns the caller's cart into an order
- Customers see their own orders; admins see all and move statuses
- Payment status is recorded only; no gateway is called
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# CHECKOUT
# =============================================================================

@orders_bp.post("/checkout")
@require_auth
def checkout_route():
    """
    Request body:
    {
        "payment_mode": "UPI" | "Card" | "COD",  (optional, default: UPI)
        "customer_notes": "Leave at the door"  (optional)
    }

    Returns:
        201: order with lines and its pending payment
        400: empty cart or invalid input
        404: a cart product has been archived
    """
    data = request.get_json(silent=True) or {}
    order = order_service.checkout(
        g.actor,
        payment_mode=data.get("payment_mode", "UPI"),
        customer_notes=data.get("customer_notes"),
    )
    return jsonify({"order": order.to_dict()}), 201


# =============================================================================
# ORDERS
# =============================================================================

@orders_bp.get("")
@require_auth
def list_orders_route():
    orders = order_service.list_orders(
        g.actor,
        user_id=request.args.get("user_id"),
        status=request.args.get("status"),
    )
    return jsonify({"orders": [o.to_dict(include_lines=False) for o in orders]}), 200


@orders_bp.get("/<order_id>")
@require_auth
def get_order_route(order_id: str):
    order = order_service.get_order(g.actor, order_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.patch("/<order_id>/status")
@require_auth
def update_order_status_route(order_id: str):
    data = request.get_json(silent=True) or {}
    order = order_service.update_order_status(g.actor, order_id, data.get("status"))
    return jsonify({"order": order.to_dict(include_lines=False)}), 200


@orders_bp.get("/<order_id>/payments")
@require_auth
def list_payments_route(order_id: str):
    payments = order_service.list_payments(g.actor, order_id)
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200


# =============================================================================
# PAYMENTS
# =============================================================================

@payments_bp.patch("/<payment_id>/status")
@require_auth
def update_payment_status_route(payment_id: str):
    data = request.get_json(silent=True) or {}
    payment = order_service.update_payment_status(g.actor, payment_id, data.get("status"))
    return jsonify({"payment": payment.to_dict()}), 200
