# Overview: Flask API routes for admin-only management: suppliers, roles, accounts and the audit log.

# backend/shoptrack/routes/admin.py
"""
Admin API Routes

SECURITY: Every route requires the admin role. The check is made by the
service layer (or by an explicit gate call for pure reads).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from .. import permissions as perms
from ..errors import ValidationError
from ..services import account_service, catalog_service, ledger_service
from ..services.access_service import require


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# SUPPLIERS
# =============================================================================

@admin_bp.get("/suppliers")
@require_auth
def list_suppliers_route():
    suppliers = catalog_service.list_suppliers(g.actor)
    return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200


@admin_bp.post("/suppliers")
@require_auth
def create_supplier_route():
    supplier = catalog_service.create_supplier(g.actor, request.get_json(silent=True))
    return jsonify({"supplier": supplier.to_dict()}), 201


@admin_bp.get("/suppliers/<supplier_id>")
@require_auth
def get_supplier_route(supplier_id: str):
    return jsonify({"supplier": catalog_service.get_supplier(g.actor, supplier_id).to_dict()}), 200


@admin_bp.patch("/suppliers/<supplier_id>")
@require_auth
def update_supplier_route(supplier_id: str):
    supplier = catalog_service.update_supplier(g.actor, supplier_id, request.get_json(silent=True))
    return jsonify({"supplier": supplier.to_dict()}), 200


@admin_bp.delete("/suppliers/<supplier_id>")
@require_auth
def delete_supplier_route(supplier_id: str):
    catalog_service.delete_supplier(g.actor, supplier_id)
    return "", 204


@admin_bp.post("/suppliers/<supplier_id>/performance")
@require_auth
def record_performance_route(supplier_id: str):
    """
    Request body:
    {
        "month": "2026-09-01",
        "total_orders": 12,
        "on_time_deliveries": 11,
        "quality_score": 4.5
    }
    """
    row = catalog_service.record_supplier_performance(g.actor, supplier_id, request.get_json(silent=True))
    return jsonify({"performance": row.to_dict()}), 201


@admin_bp.get("/suppliers/<supplier_id>/scorecard")
@require_auth
def scorecard_route(supplier_id: str):
    return jsonify(catalog_service.supplier_scorecard(g.actor, supplier_id)), 200


# =============================================================================
# ACCOUNTS AND ROLES
# =============================================================================

@admin_bp.get("/accounts")
@require_auth
def list_accounts_route():
    accounts = account_service.list_accounts(g.actor)
    return jsonify({"accounts": [a.to_dict() for a in accounts]}), 200


@admin_bp.post("/accounts/<user_id>/roles")
@require_auth
def grant_role_route(user_id: str):
    data = request.get_json(silent=True) or {}
    row = account_service.grant_role(g.actor, user_id, data.get("role"))
    return jsonify({"role": row.to_dict()}), 201


@admin_bp.delete("/accounts/<user_id>/roles/<role>")
@require_auth
def revoke_role_route(user_id: str, role: str):
    account_service.revoke_role(g.actor, user_id, role)
    return "", 204


# =============================================================================
# AUDIT LOG
# =============================================================================

@admin_bp.get("/audit-logs")
@require_auth
def audit_logs_route():
    """
    Query params:
        table_name + record_id: full trail of one record
        limit: most recent N entries otherwise
    """
    require(g.actor, perms.AUDIT_LOG_READ)
    table_name = request.args.get("table_name")
    record_id = request.args.get("record_id")
    if table_name and record_id:
        entries = ledger_service.audit_trail(table_name, record_id)
    elif table_name or record_id:
        raise ValidationError("table_name and record_id must be given together")
    else:
        limit = request.args.get("limit", current_app.config.get("RECENT_LOG_LIMIT", 50), type=int)
        entries = ledger_service.recent_audit_logs(limit=limit or 0)
    return jsonify({"audit_logs": [e.to_dict() for e in entries]}), 200
