from __future__ import annotations

import uuid
from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


CENT = Decimal("0.01")


def new_id() -> str:
    """Opaque identifier for catalog and order rows."""
    return str(uuid.uuid4())


def money(value) -> str | None:
    """Serialize a Numeric(10, 2) value for JSON (string keeps exact cents)."""
    if value is None:
        return None
    return str(Decimal(value).quantize(CENT))


def discounted_price(price, discount_percentage) -> Decimal:
    """Price less a percentage discount, rounded half-up to cents."""
    price = Decimal(price)
    discount = Decimal(discount_percentage or 0)
    return (price * (Decimal(100) - discount) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


def _decimal_str(value) -> str | None:
    return None if value is None else str(value)


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def snapshot(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}

    def to_dict(self) -> dict:
        return {**self.snapshot(), "created_at": to_utc_z(self.created_at)}


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = (
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_suppliers_rating"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    contact_person = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.Text, nullable=True)
    rating = db.Column(db.Numeric(3, 2), nullable=False, default=3)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "rating": _decimal_str(self.rating),
        }

    def to_dict(self) -> dict:
        return {**self.snapshot(), "created_at": to_utc_z(self.created_at)}


class SupplierPerformance(db.Model):
    """Monthly delivery scorecard row for a supplier."""
    __tablename__ = "supplier_performance"
    __table_args__ = (
        db.CheckConstraint("quality_score >= 0 AND quality_score <= 5", name="ck_supplier_perf_quality"),
        db.Index("ix_supplier_perf_supplier_month", "supplier_id", "month"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    supplier_id = db.Column(
        db.String(36), db.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    month = db.Column(db.Date, nullable=False)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    on_time_deliveries = db.Column(db.Integer, nullable=False, default=0)
    quality_score = db.Column(db.Numeric(3, 2), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("performance", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "month": self.month.isoformat() if self.month else None,
            "total_orders": self.total_orders,
            "on_time_deliveries": self.on_time_deliveries,
            "quality_score": _decimal_str(self.quality_score),
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog product and the authoritative stock counter.

    STOCK:
    - `stock` is mutated only through catalog_service.adjust_stock, which
      appends the matching InventoryLogEntry in the same transaction.
    - `initial_stock` is fixed at creation. At all times:
        stock == initial_stock + SUM(inventory_logs.quantity)
    - There is deliberately no CHECK (stock >= 0): the unchecked adjustment
      path (legacy double decrement at checkout) may drive it negative.

    Deletion archives the product (is_active=False); the inventory history
    and order lines that reference it are kept.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price >= 0 AND price <= 10000000", name="ck_products_price_range"),
        db.CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="ck_products_discount_range",
        ),
        db.Index("ix_products_category_stock", "category_id", "stock"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    sku = db.Column(db.String(50), nullable=True, unique=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    gst_rate = db.Column(db.Numeric(5, 2), nullable=False, default=18)

    stock = db.Column(db.Integer, nullable=False, default=0)
    initial_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=False, default=10)
    lead_time_days = db.Column(db.Integer, nullable=False, default=7)

    category_id = db.Column(db.String(36), db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    supplier_id = db.Column(db.String(36), db.ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    @property
    def effective_price(self) -> Decimal:
        return discounted_price(self.price, self.discount_percentage)

    @property
    def needs_reorder(self) -> bool:
        return self.stock <= self.reorder_point

    def snapshot(self) -> dict:
        """Full row state as stored in audit log old/new values."""
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "price": money(self.price),
            "discount_percentage": _decimal_str(self.discount_percentage),
            "gst_rate": _decimal_str(self.gst_rate),
            "stock": self.stock,
            "reorder_point": self.reorder_point,
            "lead_time_days": self.lead_time_days,
            "category_id": self.category_id,
            "supplier_id": self.supplier_id,
            "is_active": self.is_active,
        }

    def to_dict(self) -> dict:
        return {
            **self.snapshot(),
            "initial_stock": self.initial_stock,
            "effective_price": money(self.effective_price),
            "needs_reorder": self.needs_reorder,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
