# Overview: Flask API routes for stock adjustments, the inventory ledger and reconciliation.

# backend/shoptrack/routes/inventory.py
"""
Inventory API Routes

WHY: Admins need to restock, correct counts, and prove that every stock
counter still equals initial_stock plus its logged deltas.

SECURITY: every route here is admin-only.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from .. import permissions as perms
from ..services import catalog_service, ledger_service, forecast_service
from ..services.access_service import require
from ..time_utils import parse_iso_datetime
from ..errors import ValidationError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _limit_arg() -> int:
    default = current_app.config.get("RECENT_LOG_LIMIT", 50)
    limit = request.args.get("limit", default, type=int)
    if limit is None or limit <= 0:
        raise ValidationError("limit must be a positive integer")
    return limit


# =============================================================================
# ADJUSTMENTS
# =============================================================================

@inventory_bp.post("/products/<product_id>/adjust")
@require_auth
def adjust_route(product_id: str):
    """
    Request body:
    {
        "quantity_delta": 25,   (signed, non-zero)
        "change_type": "restock" | "adjustment"  (optional, default: adjustment)
    }

    Returns:
        200: new stock level
        409: the delta would take stock below zero
    """
    data = request.get_json(silent=True) or {}
    new_stock = catalog_service.adjust_inventory(
        g.actor,
        product_id,
        data.get("quantity_delta"),
        data.get("change_type", "adjustment"),
    )
    return jsonify({"product_id": product_id, "stock": new_stock}), 200


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    require(g.actor, perms.INVENTORY_LOG_READ)
    products = catalog_service.low_stock_products()
    return jsonify({"products": [p.to_dict() for p in products]}), 200


# =============================================================================
# LEDGER
# =============================================================================

@inventory_bp.get("/logs")
@require_auth
def recent_logs_route():
    require(g.actor, perms.INVENTORY_LOG_READ)
    entries = ledger_service.recent_logs(limit=_limit_arg(), change_type=request.args.get("change_type"))
    return jsonify({"logs": [e.to_dict() for e in entries]}), 200


@inventory_bp.get("/products/<product_id>/logs")
@require_auth
def product_logs_route(product_id: str):
    require(g.actor, perms.INVENTORY_LOG_READ)
    try:
        since = parse_iso_datetime(request.args.get("since"))
    except ValueError:
        raise ValidationError("since must be an ISO-8601 datetime")
    entries = ledger_service.logs_for_product(product_id, since=since)
    return jsonify({"logs": [e.to_dict() for e in entries]}), 200


@inventory_bp.get("/reconcile")
@require_auth
def reconcile_all_route():
    require(g.actor, perms.INVENTORY_LOG_READ)
    drifted = ledger_service.reconcile_all()
    return jsonify({"consistent": not drifted, "drifted": drifted}), 200


@inventory_bp.get("/reconcile/<product_id>")
@require_auth
def reconcile_product_route(product_id: str):
    require(g.actor, perms.INVENTORY_LOG_READ)
    return jsonify(ledger_service.reconcile_product(product_id)), 200


# =============================================================================
# FORECAST
# =============================================================================

@inventory_bp.get("/forecast")
@require_auth
def forecast_route():
    """
    Query params:
        window_months: trailing window (default FORECAST_WINDOW_MONTHS)
        safety_factor: demand multiplier (default FORECAST_SAFETY_FACTOR)
    """
    suggestions = forecast_service.forecast(
        g.actor,
        window_months=request.args.get("window_months", type=int),
        safety_factor=request.args.get("safety_factor", type=float),
    )
    return jsonify({"forecast": suggestions}), 200
