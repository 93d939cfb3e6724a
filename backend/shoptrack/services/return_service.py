# Overview: Return requests and their review lifecycle, including the one-time restock.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError, ConflictError
from ..models import Order, OrderLine, Return
from ..models.ledger import CHANGE_RETURN
from ..models.orders import RETURN_STATUSES
from .. import permissions as perms
from ..time_utils import utcnow
from ..validation import require_quantity
from .access_service import Actor, require
from .catalog_service import adjust_stock
from .concurrency import lock_for_update, unit_of_work, run_with_retry
from .ledger_service import append_audit_log
"""
Return Invariants (authoritative)

- A customer may only file returns against their own orders, for a
  product on that order.
- Units claimed by non-rejected returns never exceed the units ordered. Reviving a
  rejected return re-checks that bound.
- Entering `restocked` adds the return quantity back to stock exactly
  once (`restocked_at` is set in the same transaction). A second restock
  is a ConflictError; `restocked` is terminal.
"""

MAX_REASON_LENGTH = 1000

RETURN_TRANSITIONS = {
    "pending": frozenset({"approved", "rejected", "restocked"}),
    "approved": frozenset({"rejected", "restocked"}),
    "rejected": frozenset({"approved", "restocked"}),
    "restocked": frozenset(),
}


def _ordered_quantity(order_id: str, product_id: str) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(OrderLine.quantity), 0))
        .filter(OrderLine.order_id == order_id, OrderLine.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def _claimed_quantity(order_id: str, product_id: str) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Return.quantity), 0))
        .filter(
            Return.order_id == order_id,
            Return.product_id == product_id,
            Return.status != "rejected",
        )
        .scalar()
    )
    return int(total or 0)


def create_return(actor: Actor, order_id: str, product_id: str, quantity, reason: str) -> Return:
    qty = require_quantity(quantity)
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required")
    reason = reason.strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"reason must be at most {MAX_REASON_LENGTH} characters")

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    require(actor, perms.RETURN_CREATE, order)
    if order.status == "cancelled":
        raise ConflictError("Cannot return items from a cancelled order", order_id=order.id)

    def _op():
        with unit_of_work():
            lock_for_update(Order.query.filter_by(id=order.id)).first()
            ordered = _ordered_quantity(order.id, product_id)
            if ordered == 0:
                raise ValidationError("Product is not part of this order", product_id=product_id)
            claimed = _claimed_quantity(order.id, product_id)
            if claimed + qty > ordered:
                raise ValidationError(
                    f"Return quantity exceeds the {ordered - claimed} unit(s) still returnable",
                    ordered=ordered,
                    already_claimed=claimed,
                )
            ret = Return(
                order_id=order.id,
                product_id=product_id,
                quantity=qty,
                reason=reason,
                status="pending",
            )
            db.session.add(ret)
            db.session.flush()
        return ret

    ret = run_with_retry(_op)
    current_app.logger.info("Return %s filed by %s for order %s (qty %s)", ret.id, actor.user_id, order.id, qty)
    return ret


def get_return(actor: Actor, return_id: str) -> Return:
    ret = db.session.get(Return, return_id)
    if ret is None:
        raise NotFoundError(f"Return {return_id} not found")
    require(actor, perms.RETURN_READ, ret)
    return ret


def list_returns(actor: Actor, *, user_id: str | None = None, status: str | None = None) -> list[Return]:
    query = Return.query.join(Order, Return.order_id == Order.id)
    if user_id is None and actor.is_admin:
        require(actor, perms.RETURN_LIST_ALL)
    else:
        owner = user_id or actor.user_id
        require(actor, perms.RETURN_READ, {"user_id": owner})
        query = query.filter(Order.user_id == owner)
    if status is not None:
        if status not in RETURN_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(RETURN_STATUSES)}")
        query = query.filter(Return.status == status)
    return query.order_by(Return.created_at.desc(), Return.id).all()


def transition_return(actor: Actor, return_id: str, status: str) -> Return:
    """
    Admin review step. Moving into `restocked` puts the units back on
    the shelf through the stock counter.
    """
    require(actor, perms.RETURN_UPDATE_STATUS)
    if status not in RETURN_STATUSES or status == "pending":
        raise ValidationError("status must be one of approved, rejected, restocked")

    def _op():
        with unit_of_work():
            ret = lock_for_update(Return.query.filter_by(id=return_id)).first()
            if ret is None:
                raise NotFoundError(f"Return {return_id} not found")
            if ret.status == "restocked" or ret.restocked_at is not None:
                raise ConflictError("Return has already been restocked", return_id=ret.id)
            if ret.status == status:
                return ret, False
            if status not in RETURN_TRANSITIONS[ret.status]:
                raise ConflictError(f"Cannot move return from {ret.status} to {status}")
            if ret.status == "rejected":
                lock_for_update(Order.query.filter_by(id=ret.order_id)).first()
                ordered = _ordered_quantity(ret.order_id, ret.product_id)
                claimed = _claimed_quantity(ret.order_id, ret.product_id)
                if claimed + ret.quantity > ordered:
                    raise ConflictError(
                        "Units of a rejected return have since been claimed by another return",
                        return_id=ret.id,
                        ordered=ordered,
                        already_claimed=claimed,
                    )

            before = ret.snapshot()
            now = utcnow()
            ret.status = status
            ret.processed_at = now
            ret.processed_by = actor.user_id
            if status == "restocked":
                adjust_stock(
                    ret.product_id, ret.quantity, CHANGE_RETURN,
                    reference_type="return", reference_id=ret.id, actor_id=actor.user_id,
                )
                ret.restocked_at = now
            db.session.flush()
            append_audit_log(actor.user_id, "UPDATE", "returns", ret.id, before, ret.snapshot())
        return ret, True

    ret, changed = run_with_retry(_op)
    if changed:
        current_app.logger.info("Return %s -> %s by %s", ret.id, ret.status, actor.user_id)
    return ret
