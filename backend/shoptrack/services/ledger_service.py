# Overview: Service-layer operations for the inventory and audit ledgers.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Product, InventoryLogEntry, AuditLogEntry
from ..models.ledger import CHANGE_TYPES, CHANGE_TYPE_SIGN, SYSTEM_ACTOR_ID
"""
ShopTrack Ledger Invariants (authoritative)

- Both ledgers are append-only: this module exposes no update or delete.
- Inventory entries are written inside the same DB transaction as the
  Product.stock change they record (see catalog_service.adjust_stock).
- The sign of an inventory delta matches its change type.
- Reconciliation: Product.stock == Product.initial_stock + SUM(quantity).
- Reads are most-recent-first.
"""


def _validate_delta(delta: int, change_type: str) -> None:
    if change_type not in CHANGE_TYPES:
        raise ValidationError(f"unknown change_type {change_type!r}")
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise ValidationError("quantity delta must be an integer")
    if delta == 0:
        raise ValidationError("quantity delta must be non-zero")
    sign = CHANGE_TYPE_SIGN[change_type]
    if sign and (delta > 0) != (sign > 0):
        direction = "positive" if sign > 0 else "negative"
        raise ValidationError(f"{change_type} delta must be {direction}")


def append_inventory_log(
    product_id: str,
    delta: int,
    change_type: str,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    actor_id: str | None = None,
) -> InventoryLogEntry:
    """
    Append one inventory log entry. Flushes, never commits: the caller owns
    the transaction so the entry lands with the stock change or not at all.
    """
    _validate_delta(delta, change_type)
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    entry = InventoryLogEntry(
        product_id=product_id,
        quantity=delta,
        change_type=change_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_id=actor_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def append_audit_log(
    actor_id: str | None,
    action: str,
    table_name: str,
    record_id: str | None,
    old_values: dict | None,
    new_values: dict | None,
) -> AuditLogEntry:
    """
    Append a before/after snapshot for a metadata change.

    A missing actor (system-initiated change) is recorded as the nil UUID.
    """
    entry = AuditLogEntry(
        user_id=actor_id or SYSTEM_ACTOR_ID,
        action=action,
        table_name=table_name,
        record_id=str(record_id) if record_id is not None else None,
        old_values=old_values,
        new_values=new_values,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def logs_for_product(product_id: str, since: datetime | None = None) -> list[InventoryLogEntry]:
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")
    q = InventoryLogEntry.query.filter_by(product_id=product_id)
    if since is not None:
        q = q.filter(InventoryLogEntry.date >= since)
    return q.order_by(InventoryLogEntry.date.desc(), InventoryLogEntry.id.desc()).all()


def recent_logs(limit: int = 50, change_type: str | None = None) -> list[InventoryLogEntry]:
    if limit <= 0:
        raise ValidationError("limit must be positive")
    q = InventoryLogEntry.query
    if change_type is not None:
        if change_type not in CHANGE_TYPES:
            raise ValidationError(f"unknown change_type {change_type!r}")
        q = q.filter_by(change_type=change_type)
    return q.order_by(InventoryLogEntry.date.desc(), InventoryLogEntry.id.desc()).limit(limit).all()


def audit_trail(table_name: str, record_id: str) -> list[AuditLogEntry]:
    return (
        AuditLogEntry.query.filter_by(table_name=table_name, record_id=str(record_id))
        .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .all()
    )


def recent_audit_logs(limit: int = 50) -> list[AuditLogEntry]:
    if limit <= 0:
        raise ValidationError("limit must be positive")
    return (
        AuditLogEntry.query.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .limit(limit)
        .all()
    )


def log_sum(product_id: str) -> int:
    total = db.session.query(
        func.coalesce(func.sum(InventoryLogEntry.quantity), 0)
    ).filter(InventoryLogEntry.product_id == product_id).scalar()
    return int(total or 0)


def reconcile_product(product_id: str) -> dict:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    delta_sum = log_sum(product_id)
    expected = product.initial_stock + delta_sum
    return {
        "product_id": product.id,
        "initial_stock": product.initial_stock,
        "log_sum": delta_sum,
        "expected": expected,
        "actual": product.stock,
        "consistent": expected == product.stock,
    }


def reconcile_all() -> list[dict]:
    """Reconciliation report for every product whose counter drifted from its log."""
    sums = dict(
        db.session.query(InventoryLogEntry.product_id, func.sum(InventoryLogEntry.quantity))
        .group_by(InventoryLogEntry.product_id)
        .all()
    )
    drifted = []
    for product in Product.query.order_by(Product.name).all():
        delta_sum = int(sums.get(product.id) or 0)
        expected = product.initial_stock + delta_sum
        if expected != product.stock:
            drifted.append({
                "product_id": product.id,
                "initial_stock": product.initial_stock,
                "log_sum": delta_sum,
                "expected": expected,
                "actual": product.stock,
                "consistent": False,
            })
    return drifted
