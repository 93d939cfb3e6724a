from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

"""
Append-only ledgers.

- InventoryLogEntry: one signed delta per stock mutation, written in the
  same transaction as the Product.stock update.
- AuditLogEntry: before/after row snapshots for metadata changes.

Rows are never updated or deleted; the mapper events below refuse it at
flush time so the rule holds even for code that bypasses ledger_service.
"""

CHANGE_SALE = "sale"
CHANGE_RETURN = "return"
CHANGE_RESTOCK = "restock"
CHANGE_ADJUSTMENT = "adjustment"
CHANGE_CART_RESERVED = "cart_reserved"
CHANGE_CART_RELEASED = "cart_released"

CHANGE_TYPES = (
    CHANGE_SALE,
    CHANGE_RETURN,
    CHANGE_RESTOCK,
    CHANGE_ADJUSTMENT,
    CHANGE_CART_RESERVED,
    CHANGE_CART_RELEASED,
)

# Required sign of the delta per change type (0 = either sign, non-zero)
CHANGE_TYPE_SIGN = {
    CHANGE_SALE: -1,
    CHANGE_CART_RESERVED: -1,
    CHANGE_RETURN: 1,
    CHANGE_RESTOCK: 1,
    CHANGE_CART_RELEASED: 1,
    CHANGE_ADJUSTMENT: 0,
}

SYSTEM_ACTOR_ID = "00000000-0000-0000-0000-000000000000"


class InventoryLogEntry(db.Model):
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_inventory_logs_product_date", "product_id", "date"),
        db.CheckConstraint(
            "change_type IN ('sale', 'return', 'restock', 'adjustment', 'cart_reserved', 'cart_released')",
            name="ck_inventory_logs_change_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    change_type = db.Column(db.String(16), nullable=False, index=True)

    # Signed delta applied to Product.stock
    quantity = db.Column(db.Integer, nullable=False)

    # Optional pointer to the row that caused the change (order, return, cart line)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(36), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "change_type": self.change_type,
            "quantity": self.quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_id": self.actor_id,
            "date": to_utc_z(self.date),
        }


class AuditLogEntry(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_table_record", "table_name", "record_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(32), nullable=False)
    table_name = db.Column(db.String(64), nullable=True)
    record_id = db.Column(db.String(64), nullable=True)
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "created_at": to_utc_z(self.created_at),
        }


def _refuse_mutation(mapper, connection, target):
    raise RuntimeError(f"{type(target).__name__} rows are append-only")


for _model in (InventoryLogEntry, AuditLogEntry):
    event.listen(_model, "before_update", _refuse_mutation)
    event.listen(_model, "before_delete", _refuse_mutation)
