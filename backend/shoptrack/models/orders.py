from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z
from .catalog import new_id, money

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled")
PAYMENT_MODES = ("UPI", "Card", "COD")
PAYMENT_STATUSES = ("pending", "paid", "failed")
RETURN_STATUSES = ("pending", "approved", "rejected", "restocked")


class CartLine(db.Model):
    """
    A stock reservation held by a user's cart.

    While the row exists its quantity has already been subtracted from
    Product.stock (a `cart_reserved` log entry exists for it).
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        db.CheckConstraint("quantity > 0", name="ck_cart_items_quantity"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(64), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money(self.product.effective_price) if self.product else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Order(db.Model):
    """
    Placed order. Immutable after creation except for `status`,
    which only an admin may transition.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total > 0", name="ck_orders_total_positive"),
        db.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'cancelled')", name="ck_orders_status"
        ),
        db.CheckConstraint("payment_mode IN ('UPI', 'Card', 'COD')", name="ck_orders_payment_mode"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(64), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    total = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_mode = db.Column(db.String(8), nullable=False, default="UPI")
    customer_notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    lines = db.relationship("OrderLine", backref="order", lazy=True, cascade="all, delete-orphan")
    payments = db.relationship("Payment", backref="order", lazy=True, cascade="all, delete-orphan")

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "total": money(self.total),
            "status": self.status,
            "payment_mode": self.payment_mode,
        }

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            **self.snapshot(),
            "customer_notes": self.customer_notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class OrderLine(db.Model):
    """Order item with the unit price snapshotted at purchase time."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        db.CheckConstraint("price >= 0", name="ck_order_items_price"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)

    product = db.relationship("Product")

    @property
    def line_total(self):
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price": money(self.price),
            "line_total": money(self.line_total),
        }


class Payment(db.Model):
    """Recorded payment state for an order; no gateway processing happens here."""
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        db.CheckConstraint("mode IN ('UPI', 'Card', 'COD')", name="ck_payments_mode"),
        db.CheckConstraint("status IN ('pending', 'paid', 'failed')", name="ck_payments_status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    mode = db.Column(db.String(8), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def user_id(self) -> str | None:
        return self.order.user_id if self.order else None

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": money(self.amount),
            "mode": self.mode,
            "status": self.status,
        }

    def to_dict(self) -> dict:
        return {**self.snapshot(), "created_at": to_utc_z(self.created_at), "updated_at": to_utc_z(self.updated_at)}


class Return(db.Model):
    """
    Customer return request for units of one product on one order.

    LIFECYCLE:
    pending -> approved | rejected | restocked
    approved -> rejected | restocked
    rejected -> approved | restocked
    restocked is terminal.

    The stock increment fires on the transition INTO restocked, and only
    once: `restocked_at` is set in the same transaction and a second
    restock attempt is a conflict.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_returns_quantity_positive"),
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'restocked')", name="ck_returns_status"
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by = db.Column(db.String(64), nullable=True)
    restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order = db.relationship("Order", backref=db.backref("returns", lazy=True))
    product = db.relationship("Product")

    @property
    def user_id(self) -> str | None:
        return self.order.user_id if self.order else None

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "reason": self.reason,
            "status": self.status,
        }

    def to_dict(self) -> dict:
        return {
            **self.snapshot(),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at),
            "processed_by": self.processed_by,
            "restocked_at": to_utc_z(self.restocked_at),
        }
