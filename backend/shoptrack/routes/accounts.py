# Overview: Flask API routes for account registration and the caller's own profile.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import account_service


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.post("")
@require_auth
def register_route():
    """
    Create the local profile for the identity in the request header and
    grant it the customer role. Called once after sign-up.

    Request body:
    {
        "email": "user@example.com"
    }

    Returns:
        201: profile with roles
        409: profile already exists
    """
    data = request.get_json(silent=True) or {}
    profile = account_service.create_account(g.actor.user_id, data.get("email"))
    return jsonify({"account": profile.to_dict()}), 201


@accounts_bp.get("/me")
@require_auth
def me_route():
    profile = account_service.get_account(g.actor, g.actor.user_id)
    return jsonify({"account": profile.to_dict()}), 200
