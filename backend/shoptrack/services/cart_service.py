# Overview: Reservation engine for carts; every cart change becomes a signed stock delta.

"""
Cart Reservations

WHY: Stock is reserved when an item enters a cart, so the catalog never
shows units that are already spoken for.

STATE MACHINE (per user and product):
    absent --add(q)--> reserved(q)          stock -q, cart_reserved -q
    reserved(q) --set(q+d)--> reserved(q+d) stock -d, cart_reserved -d
    reserved(q) --set(q-d)--> reserved(q-d) stock +d, cart_released +d
    reserved(q) --set(<1) / remove--> absent stock +q, cart_released +q
    reserved(q) --checkout--> absent         handled by order_service

Reservations use checked_adjust_stock: a cart can never reserve more
units than are on hand. Releases are unchecked (they only add stock).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import CartLine
from ..models.catalog import money
from ..models.ledger import CHANGE_CART_RESERVED, CHANGE_CART_RELEASED
from .. import permissions as perms
from ..time_utils import utcnow
from ..validation import require_quantity
from .access_service import Actor, require
from .catalog_service import adjust_stock, checked_adjust_stock, get_product
from .concurrency import lock_for_update, unit_of_work, run_with_retry


def _own_cart(actor: Actor) -> dict:
    return {"user_id": actor.user_id}


def _find_line(user_id: str, product_id: str, *, lock: bool = False) -> CartLine | None:
    query = CartLine.query.filter_by(user_id=user_id, product_id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _reserve(line: CartLine, quantity: int, actor_id: str | None) -> None:
    checked_adjust_stock(
        line.product_id, -quantity, CHANGE_CART_RESERVED,
        reference_type="cart_item", reference_id=line.id, actor_id=actor_id,
    )


def _release(line: CartLine, quantity: int, actor_id: str | None) -> None:
    adjust_stock(
        line.product_id, quantity, CHANGE_CART_RELEASED,
        reference_type="cart_item", reference_id=line.id, actor_id=actor_id,
    )


def get_cart(actor: Actor, user_id: str | None = None) -> dict:
    """Cart lines and running total at current (discounted) prices."""
    owner = user_id or actor.user_id
    require(actor, perms.CART_READ, {"user_id": owner})
    lines = CartLine.query.filter_by(user_id=owner).order_by(CartLine.created_at, CartLine.id).all()
    total = sum((line.product.effective_price * line.quantity for line in lines), Decimal("0"))
    return {
        "user_id": owner,
        "lines": [line.to_dict() for line in lines],
        "item_count": sum(line.quantity for line in lines),
        "total": money(total),
    }


def add_to_cart(actor: Actor, product_id: str, quantity: int = 1) -> CartLine:
    """Reserve `quantity` more units, creating the cart line if needed."""
    require_quantity(quantity)
    require(actor, perms.CART_WRITE, _own_cart(actor))

    def _op():
        with unit_of_work():
            get_product(product_id)
            line = _find_line(actor.user_id, product_id, lock=True)
            if line is None:
                line = CartLine(user_id=actor.user_id, product_id=product_id, quantity=quantity)
                db.session.add(line)
                db.session.flush()
            else:
                line.quantity += quantity
                line.updated_at = utcnow()
            _reserve(line, quantity, actor.user_id)
        return line

    return run_with_retry(_op)


def set_cart_quantity(actor: Actor, product_id: str, quantity: int) -> CartLine | None:
    """
    Set a line to an absolute quantity. Below 1 removes the line.
    Returns the updated line, or None when it was removed.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity < 1:
        remove_from_cart(actor, product_id)
        return None
    require(actor, perms.CART_WRITE, _own_cart(actor))

    def _op():
        with unit_of_work():
            line = _find_line(actor.user_id, product_id, lock=True)
            if line is None:
                raise NotFoundError(f"Cart line for product {product_id} not found")
            diff = quantity - line.quantity
            if diff > 0:
                get_product(product_id)
                _reserve(line, diff, actor.user_id)
            elif diff < 0:
                _release(line, -diff, actor.user_id)
            line.quantity = quantity
            line.updated_at = utcnow()
        return line

    return run_with_retry(_op)


def remove_from_cart(actor: Actor, product_id: str) -> int:
    """Delete the line and release its whole reservation. Returns units released."""
    require(actor, perms.CART_WRITE, _own_cart(actor))

    def _op():
        with unit_of_work():
            line = _find_line(actor.user_id, product_id, lock=True)
            if line is None:
                raise NotFoundError(f"Cart line for product {product_id} not found")
            released = line.quantity
            _release(line, released, actor.user_id)
            db.session.delete(line)
        return released

    return run_with_retry(_op)


def clear_cart(actor: Actor) -> int:
    """Release every reservation in the caller's cart. Returns units released."""
    require(actor, perms.CART_WRITE, _own_cart(actor))

    def _op():
        with unit_of_work():
            lines = lock_for_update(CartLine.query.filter_by(user_id=actor.user_id)).all()
            released = 0
            for line in lines:
                _release(line, line.quantity, actor.user_id)
                released += line.quantity
                db.session.delete(line)
        return released

    return run_with_retry(_op)


def release_stale_carts(actor: Actor, older_than: datetime | None = None) -> int:
    """
    Expire reservations on cart lines untouched since `older_than`
    (default: now minus CART_RESERVATION_TTL_MINUTES). Returns lines released.
    """
    require(actor, perms.CART_RELEASE_STALE)
    if older_than is None:
        ttl = current_app.config.get("CART_RESERVATION_TTL_MINUTES", 60)
        older_than = utcnow() - timedelta(minutes=ttl)

    def _op():
        with unit_of_work():
            lines = lock_for_update(CartLine.query.filter(CartLine.updated_at < older_than)).all()
            for line in lines:
                _release(line, line.quantity, actor.user_id)
                db.session.delete(line)
        return len(lines)

    released = run_with_retry(_op)
    if released:
        current_app.logger.info("Released %s stale cart reservations older than %s", released, older_than)
    return released
