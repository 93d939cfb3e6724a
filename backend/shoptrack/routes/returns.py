# Overview: Flask API routes for returns; customers file them, admins review and restock.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_auth
def create_return_route():
    """
    Request body:
    {
        "order_id": "...",
        "product_id": "...",
        "quantity": 1,
        "reason": "Arrived damaged"
    }

    Returns:
        201: return created with status pending
        400: product not on the order, or quantity exceeds what is returnable
        403: order belongs to another user
    """
    data = request.get_json(silent=True) or {}
    ret = return_service.create_return(
        g.actor,
        order_id=data.get("order_id"),
        product_id=data.get("product_id"),
        quantity=data.get("quantity"),
        reason=data.get("reason"),
    )
    return jsonify({"return": ret.to_dict()}), 201


@returns_bp.get("")
@require_auth
def list_returns_route():
    returns = return_service.list_returns(
        g.actor,
        user_id=request.args.get("user_id"),
        status=request.args.get("status"),
    )
    return jsonify({"returns": [r.to_dict() for r in returns]}), 200


@returns_bp.get("/<return_id>")
@require_auth
def get_return_route(return_id: str):
    return jsonify({"return": return_service.get_return(g.actor, return_id).to_dict()}), 200


@returns_bp.patch("/<return_id>/status")
@require_auth
def transition_return_route(return_id: str):
    """
    Admin review. status: approved | rejected | restocked.

    Returns:
        200: updated return
        409: already restocked, or the transition is not allowed
    """
    data = request.get_json(silent=True) or {}
    ret = return_service.transition_return(g.actor, return_id, data.get("status"))
    return jsonify({"return": ret.to_dict()}), 200
