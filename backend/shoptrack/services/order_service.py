# Overview: Checkout and order lifecycle; converts cart reservations into orders and payments.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError, ConflictError
from ..models import CartLine, Order, OrderLine, Payment
from ..models.catalog import CENT, money
from ..models.ledger import CHANGE_SALE
from ..models.orders import ORDER_STATUSES, PAYMENT_STATUSES
from .. import permissions as perms
from ..validation import require_payment_mode
from .access_service import Actor, require
from .catalog_service import adjust_stock, get_product
from .concurrency import lock_for_update, unit_of_work, run_with_retry
from .ledger_service import append_audit_log
"""
Checkout Invariants (authoritative)

- Checkout is one atomic unit: Order, OrderLines, Payment and removal of
  the cart lines commit together or not at all.
- Cart reservation is the only stock decrement for a purchase. The cart
  lines are deleted WITHOUT a release, which converts the reservation into
  the sale.
- With CHECKOUT_DOUBLE_DECREMENT enabled, checkout also appends an
  unchecked `sale` delta per line (legacy behaviour, stock is taken twice).
- Each OrderLine snapshots the discounted unit price at checkout time.
- Order.total is the sum of line totals and must be positive.
- Status changes are admin-only, audited, and have no stock effect.
"""

MAX_NOTES_LENGTH = 1000

ORDER_TRANSITIONS = {
    "pending": frozenset({"processing", "completed", "cancelled"}),
    "processing": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

PAYMENT_TRANSITIONS = {
    "pending": frozenset({"paid", "failed"}),
    "failed": frozenset({"paid"}),
    "paid": frozenset(),
}


# =============================================================================
# CHECKOUT
# =============================================================================

def checkout(actor: Actor, payment_mode: str = "UPI", customer_notes: str | None = None) -> Order:
    """Turn the caller's cart into an order with a pending payment."""
    require(actor, perms.ORDER_CREATE, {"user_id": actor.user_id})
    mode = require_payment_mode(payment_mode)
    if customer_notes is not None:
        if not isinstance(customer_notes, str):
            raise ValidationError("customer_notes must be a string")
        customer_notes = customer_notes.strip() or None
        if customer_notes and len(customer_notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"customer_notes must be at most {MAX_NOTES_LENGTH} characters")
    double_decrement = bool(current_app.config.get("CHECKOUT_DOUBLE_DECREMENT", False))

    def _op():
        with unit_of_work():
            lines = lock_for_update(
                CartLine.query.filter_by(user_id=actor.user_id).order_by(CartLine.product_id)
            ).all()
            if not lines:
                raise ValidationError("Cart is empty")

            priced = []
            total = Decimal("0")
            for line in lines:
                # Archived products raise NotFoundError and abort the whole checkout
                product = get_product(line.product_id)
                unit_price = product.effective_price.quantize(CENT)
                priced.append((line, unit_price))
                total += unit_price * line.quantity
            if total <= 0:
                raise ValidationError("Order total must be greater than zero")

            order = Order(
                user_id=actor.user_id,
                total=total,
                status="pending",
                payment_mode=mode,
                customer_notes=customer_notes,
            )
            db.session.add(order)
            db.session.flush()

            for line, unit_price in priced:
                db.session.add(OrderLine(
                    order_id=order.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price=unit_price,
                ))
                if double_decrement:
                    adjust_stock(
                        line.product_id, -line.quantity, CHANGE_SALE,
                        reference_type="order", reference_id=order.id, actor_id=actor.user_id,
                    )
                db.session.delete(line)

            db.session.add(Payment(order_id=order.id, amount=total, mode=mode, status="pending"))
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Checkout: order %s by %s total=%s lines=%s",
        order.id, actor.user_id, money(order.total), len(order.lines),
    )
    return order


# =============================================================================
# ORDERS
# =============================================================================

def _get_order(order_id: str, *, lock: bool = False) -> Order:
    query = Order.query.filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def get_order(actor: Actor, order_id: str) -> Order:
    order = _get_order(order_id)
    require(actor, perms.ORDER_READ, order)
    return order


def list_orders(actor: Actor, *, user_id: str | None = None, status: str | None = None) -> list[Order]:
    """
    Orders newest first. Customers see their own; admins see everyone's
    unless `user_id` narrows the listing.
    """
    query = Order.query
    if user_id is None and actor.is_admin:
        require(actor, perms.ORDER_LIST_ALL)
    else:
        owner = user_id or actor.user_id
        require(actor, perms.ORDER_READ, {"user_id": owner})
        query = query.filter(Order.user_id == owner)
    if status is not None:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}")
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id).all()


def update_order_status(actor: Actor, order_id: str, status: str) -> Order:
    require(actor, perms.ORDER_UPDATE_STATUS)
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}")

    def _op():
        with unit_of_work():
            order = _get_order(order_id, lock=True)
            if order.status == status:
                return order
            if status not in ORDER_TRANSITIONS[order.status]:
                raise ConflictError(
                    f"Cannot move order from {order.status} to {status}",
                    current_status=order.status,
                )
            before = order.snapshot()
            order.status = status
            db.session.flush()
            append_audit_log(actor.user_id, "UPDATE", "orders", order.id, before, order.snapshot())
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s status -> %s by %s", order.id, order.status, actor.user_id)
    return order


# =============================================================================
# PAYMENTS
# =============================================================================

def list_payments(actor: Actor, order_id: str) -> list[Payment]:
    order = _get_order(order_id)
    require(actor, perms.PAYMENT_READ, order)
    return Payment.query.filter_by(order_id=order.id).order_by(Payment.created_at).all()


def update_payment_status(actor: Actor, payment_id: str, status: str) -> Payment:
    require(actor, perms.PAYMENT_WRITE)
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(PAYMENT_STATUSES)}")

    def _op():
        with unit_of_work():
            payment = lock_for_update(Payment.query.filter_by(id=payment_id)).first()
            if payment is None:
                raise NotFoundError(f"Payment {payment_id} not found")
            if payment.status == status:
                return payment
            if status not in PAYMENT_TRANSITIONS[payment.status]:
                raise ConflictError(
                    f"Cannot move payment from {payment.status} to {status}",
                    current_status=payment.status,
                )
            before = payment.snapshot()
            payment.status = status
            db.session.flush()
            append_audit_log(actor.user_id, "UPDATE", "payments", payment.id, before, payment.snapshot())
        return payment

    payment = run_with_retry(_op)
    current_app.logger.info("Payment %s status -> %s by %s", payment.id, payment.status, actor.user_id)
    return payment
