# backend/shoptrack/routes/system.py
"""
System health endpoint.

Reports database connectivity and ledger consistency so a deployment can
be checked without credentials. Stock counters that drift from their
inventory log report as "degraded" with a 200 status.
"""

import time

from flask import Blueprint, jsonify, current_app
from sqlalchemy import text

from ..extensions import db
from ..services import ledger_service
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_ledger_health() -> dict:
    drifted = ledger_service.reconcile_all()
    if drifted:
        current_app.logger.warning("Health check found %s product(s) off their inventory log", len(drifted))
        return {"status": "inconsistent", "drifted_products": [row["product_id"] for row in drifted]}
    return {"status": "healthy"}


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "response_time_ms": round(elapsed_ms, 2)}
    except Exception as e:
        current_app.logger.error("Health check database query failed: %s", e.__class__.__name__)
        return {"status": "unhealthy", "error": e.__class__.__name__}


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    checks = {"database": database}
    status = "healthy" if healthy else "unhealthy"
    if healthy:
        checks["ledger"] = check_ledger_health()
        if checks["ledger"]["status"] != "healthy":
            status = "degraded"
    body = {
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }
    return jsonify(body), 200 if healthy else 503
