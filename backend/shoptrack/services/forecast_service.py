# Overview: Demand forecast and reorder suggestions from recent sales.

from __future__ import annotations

import math
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Order, OrderLine, Product
from .. import permissions as perms
from ..time_utils import months_ago
from .access_service import Actor, require

URGENCY_CRITICAL = "critical"
URGENCY_HIGH = "high"
URGENCY_NORMAL = "normal"


def _sold_since(since: datetime) -> dict[str, int]:
    """Units sold per product on non-cancelled orders placed since `since`."""
    rows = (
        db.session.query(OrderLine.product_id, func.sum(OrderLine.quantity))
        .join(Order, OrderLine.order_id == Order.id)
        .filter(Order.created_at >= since, Order.status != "cancelled")
        .group_by(OrderLine.product_id)
        .all()
    )
    return {product_id: int(total or 0) for product_id, total in rows}


def _urgency(days_until_stockout: int, lead_time_days: int) -> str:
    if days_until_stockout < lead_time_days:
        return URGENCY_CRITICAL
    if days_until_stockout < 30:
        return URGENCY_HIGH
    return URGENCY_NORMAL


def forecast(
    actor: Actor,
    *,
    window_months: int | None = None,
    safety_factor: float | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """
    Reorder suggestions for every active product that sold in the window.

    avg_monthly_sales = sold / window_months
    predicted_demand  = ceil(avg_monthly_sales * safety_factor)
    days_until_stockout = floor(stock / (avg_monthly_sales / 30)), 0 when out of stock
    suggested_reorder = max(predicted_demand, reorder_point)

    Sorted critical first, then by days until stockout.
    """
    require(actor, perms.FORECAST_READ)
    if window_months is None:
        window_months = current_app.config.get("FORECAST_WINDOW_MONTHS", 6)
    if safety_factor is None:
        safety_factor = current_app.config.get("FORECAST_SAFETY_FACTOR", 1.5)
    if isinstance(window_months, bool) or not isinstance(window_months, int) or window_months < 1:
        raise ValidationError("window_months must be a positive integer")
    if isinstance(safety_factor, bool) or not isinstance(safety_factor, (int, float)) or safety_factor <= 0:
        raise ValidationError("safety_factor must be a positive number")

    sold = _sold_since(months_ago(window_months, now=now))
    if not sold:
        return []

    products = Product.query.filter(Product.id.in_(list(sold)), Product.is_active.is_(True)).all()
    results = []
    for product in products:
        units = sold[product.id]
        if units <= 0:
            continue
        avg_monthly = units / window_months
        predicted = math.ceil(avg_monthly * safety_factor)
        if product.stock <= 0:
            days = 0
        else:
            days = math.floor(product.stock / (avg_monthly / 30))
        results.append({
            "product_id": product.id,
            "product_name": product.name,
            "sku": product.sku,
            "current_stock": product.stock,
            "units_sold": units,
            "avg_monthly_sales": round(avg_monthly, 2),
            "predicted_demand": predicted,
            "days_until_stockout": days,
            "reorder_point": product.reorder_point,
            "lead_time_days": product.lead_time_days,
            "suggested_reorder": max(predicted, product.reorder_point),
            "urgency": _urgency(days, product.lead_time_days),
        })

    results.sort(key=lambda r: (0 if r["urgency"] == URGENCY_CRITICAL else 1, r["days_until_stockout"]))
    return results
