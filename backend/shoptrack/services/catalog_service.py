# Overview: Catalog Store; products, categories, suppliers and the authoritative stock counter.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import NotFoundError, ValidationError, ConflictError, InsufficientStockError
from ..models import Category, Supplier, SupplierPerformance, Product
from ..models.ledger import CHANGE_ADJUSTMENT, CHANGE_RESTOCK
from .. import permissions as perms
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    enforce_rules_supplier,
    enforce_rules_supplier_performance,
)
from .access_service import Actor, require
from .concurrency import lock_for_update, unit_of_work, run_with_retry
from .ledger_service import append_inventory_log, append_audit_log
"""
ShopTrack Catalog Invariants (authoritative)

Stock:
- Product.stock is changed ONLY by adjust_stock / checked_adjust_stock.
- Each adjustment appends exactly one InventoryLogEntry with the same signed
  delta, in the same transaction (flush here, commit by the caller's unit).
- adjust_stock does not forbid a negative result; checked_adjust_stock does.
- The product row is locked (SELECT ... FOR UPDATE) for the read-modify-write.

Metadata:
- Product, category and supplier edits append an AuditLogEntry with full
  before/after snapshots. Stock-only changes are not audited (the
  inventory log covers them).
- Stock is not writable through update_product; use adjust_inventory.
- delete_product archives (is_active=False); history stays intact.
"""

PRODUCT_FIELDS = frozenset({
    "sku", "name", "description", "image_url", "price", "discount_percentage",
    "gst_rate", "reorder_point", "lead_time_days", "category_id", "supplier_id",
})

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS | {"stock"},
    required_on_create=frozenset({"name", "price"}),
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=PRODUCT_FIELDS)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description"}),
    required_on_create=frozenset({"name"}),
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "contact_person", "email", "phone", "address", "rating"}),
    required_on_create=frozenset({"name"}),
)

SUPPLIER_PERFORMANCE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"month", "total_orders", "on_time_deliveries", "quality_score"}),
    required_on_create=frozenset({"month"}),
)

MANUAL_CHANGE_TYPES = (CHANGE_RESTOCK, CHANGE_ADJUSTMENT)


# =============================================================================
# STOCK COUNTER
# =============================================================================

def _get_product(product_id: str, *, lock: bool = False, active_only: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None or (active_only and not product.is_active):
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_stock(product_id: str) -> int:
    return _get_product(product_id).stock


def adjust_stock(
    product_id: str,
    delta: int,
    change_type: str,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    actor_id: str | None = None,
) -> int:
    """
    Apply a signed delta to Product.stock and append the matching log entry.

    Internal engine call: no authorization here, the public operations that
    reach this function have already passed the gate. Flushes but does not
    commit; run inside a unit_of_work so both writes land together.
    """
    product = _get_product(product_id, lock=True)
    entry = append_inventory_log(
        product.id,
        delta,
        change_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_id=actor_id,
    )
    product.stock = product.stock + entry.quantity
    db.session.flush()
    return product.stock


def checked_adjust_stock(product_id: str, delta: int, change_type: str, **kwargs) -> int:
    """adjust_stock that refuses to take the counter below zero."""
    product = _get_product(product_id, lock=True)
    if product.stock + delta < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}: {product.stock} available, {-delta} requested",
            product_id=product.id,
            available=product.stock,
            requested=-delta,
        )
    return adjust_stock(product_id, delta, change_type, **kwargs)


def adjust_inventory(actor: Actor, product_id: str, delta: int, change_type: str = CHANGE_ADJUSTMENT) -> int:
    """
    Admin stock correction or supplier restock.

    Customers never reach this: the gate only lets admins adjust stock
    directly. Uses the checked variant.
    """
    require(actor, perms.STOCK_ADJUST)
    if change_type not in MANUAL_CHANGE_TYPES:
        raise ValidationError(f"change_type must be one of {', '.join(MANUAL_CHANGE_TYPES)}")
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("quantity delta must be a non-zero integer")

    def _op():
        with unit_of_work():
            _get_product(product_id, active_only=True)
            new_stock = checked_adjust_stock(
                product_id, delta, change_type,
                reference_type="manual", actor_id=actor.user_id,
            )
        return new_stock

    new_stock = run_with_retry(_op)
    current_app.logger.info(
        "Inventory %s on product %s by %s: %+d -> %s",
        change_type, product_id, actor.user_id, delta, new_stock,
    )
    return new_stock


# =============================================================================
# PRODUCTS
# =============================================================================

def _check_references(patch: dict) -> None:
    if patch.get("category_id") is not None and db.session.get(Category, patch["category_id"]) is None:
        raise NotFoundError(f"Category {patch['category_id']} not found")
    if patch.get("supplier_id") is not None and db.session.get(Supplier, patch["supplier_id"]) is None:
        raise NotFoundError(f"Supplier {patch['supplier_id']} not found")


def _check_sku_unique(sku: str | None, exclude_id: str | None = None) -> None:
    if sku is None:
        return
    q = Product.query.filter_by(sku=sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"SKU {sku} already exists")


def get_product(product_id: str, *, include_inactive: bool = False) -> Product:
    return _get_product(product_id, active_only=not include_inactive)


def list_products(
    *,
    category_id: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
) -> list[Product]:
    q = Product.query
    if not include_inactive:
        q = q.filter_by(is_active=True)
    if category_id:
        q = q.filter_by(category_id=category_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    return q.order_by(Product.created_at.desc(), Product.name).all()


def create_product(actor: Actor, payload: dict) -> Product:
    """
    Create a product. `stock` in the payload becomes initial_stock, the
    anchor of the reconciliation invariant; no log entry is written for it.
    """
    require(actor, perms.CATALOG_WRITE)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op():
        with unit_of_work():
            _check_references(patch)
            _check_sku_unique(patch.get("sku"))
            fields = dict(patch)
            initial = fields.pop("stock", None) or 0
            product = Product(**fields, stock=initial, initial_stock=initial)
            db.session.add(product)
            db.session.flush()
            append_audit_log(actor.user_id, "INSERT", "products", product.id, None, product.snapshot())
        return product

    return run_with_retry(_op)


def update_product(actor: Actor, product_id: str, payload: dict) -> Product:
    require(actor, perms.CATALOG_WRITE)
    if isinstance(payload, dict) and "stock" in payload:
        raise ValidationError("stock cannot be edited directly; record an inventory adjustment")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        with unit_of_work():
            product = _get_product(product_id, lock=True, active_only=True)
            _check_references(patch)
            if "sku" in patch:
                _check_sku_unique(patch["sku"], exclude_id=product.id)
            before = product.snapshot()
            for key, value in patch.items():
                setattr(product, key, value)
            db.session.flush()
            after = product.snapshot()
            if after != before:
                append_audit_log(actor.user_id, "UPDATE", "products", product.id, before, after)
        return product

    return run_with_retry(_op)


def delete_product(actor: Actor, product_id: str) -> Product:
    """Archive a product. Open cart reservations for it are left to expire."""
    require(actor, perms.CATALOG_WRITE)

    def _op():
        with unit_of_work():
            product = _get_product(product_id, lock=True, active_only=True)
            before = product.snapshot()
            product.is_active = False
            db.session.flush()
            append_audit_log(actor.user_id, "DELETE", "products", product.id, before, product.snapshot())
        return product

    return run_with_retry(_op)


def bulk_update_discount(actor: Actor, category_id: str, discount_percentage) -> int:
    """
    Set the discount on every active product of a category.

    Metadata only: one audit entry per changed product, no inventory log.
    Returns the number of products affected.
    """
    require(actor, perms.CATALOG_WRITE)
    try:
        discount = Decimal(str(discount_percentage)).quantize(Decimal("0.01"))
    except Exception:
        raise ValidationError("discount_percentage must be a number")
    if discount < 0 or discount > 100:
        raise ValidationError("discount_percentage must be between 0 and 100")

    def _op():
        with unit_of_work():
            if db.session.get(Category, category_id) is None:
                raise NotFoundError(f"Category {category_id} not found")
            products = lock_for_update(
                Product.query.filter_by(category_id=category_id, is_active=True)
            ).all()
            for product in products:
                before = product.snapshot()
                product.discount_percentage = discount
                db.session.flush()
                append_audit_log(actor.user_id, "UPDATE", "products", product.id, before, product.snapshot())
        return len(products)

    affected = run_with_retry(_op)
    current_app.logger.info("Bulk discount %s%% applied to %s products in category %s", discount, affected, category_id)
    return affected


def low_stock_products() -> list[Product]:
    """Active products at or below their reorder point, lowest stock first."""
    return (
        Product.query.filter(Product.is_active.is_(True), Product.stock <= Product.reorder_point)
        .order_by(Product.stock.asc(), Product.name)
        .all()
    )


def _detach_products(actor: Actor, column: str, value: str) -> None:
    """Clear a category or supplier reference, one audited update per product."""
    products = lock_for_update(Product.query.filter_by(**{column: value})).all()
    for product in products:
        before = product.snapshot()
        setattr(product, column, None)
        db.session.flush()
        append_audit_log(actor.user_id, "UPDATE", "products", product.id, before, product.snapshot())


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories() -> list[Category]:
    return Category.query.order_by(Category.name).all()


def create_category(actor: Actor, payload: dict) -> Category:
    require(actor, perms.CATALOG_WRITE)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)

    def _op():
        with unit_of_work():
            category = Category(**patch)
            db.session.add(category)
            db.session.flush()
            append_audit_log(actor.user_id, "INSERT", "categories", category.id, None, category.snapshot())
        return category

    return run_with_retry(_op)


def update_category(actor: Actor, category_id: str, payload: dict) -> Category:
    require(actor, perms.CATALOG_WRITE)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)

    def _op():
        with unit_of_work():
            category = db.session.get(Category, category_id)
            if category is None:
                raise NotFoundError(f"Category {category_id} not found")
            before = category.snapshot()
            for key, value in patch.items():
                setattr(category, key, value)
            db.session.flush()
            append_audit_log(actor.user_id, "UPDATE", "categories", category.id, before, category.snapshot())
        return category

    return run_with_retry(_op)


def delete_category(actor: Actor, category_id: str) -> None:
    """Delete a category; its products become uncategorised."""
    require(actor, perms.CATALOG_WRITE)

    def _op():
        with unit_of_work():
            category = db.session.get(Category, category_id)
            if category is None:
                raise NotFoundError(f"Category {category_id} not found")
            before = category.snapshot()
            _detach_products(actor, "category_id", category_id)
            db.session.delete(category)
            append_audit_log(actor.user_id, "DELETE", "categories", category_id, before, None)

    run_with_retry(_op)


# =============================================================================
# SUPPLIERS
# =============================================================================

def list_suppliers(actor: Actor) -> list[Supplier]:
    require(actor, perms.SUPPLIER_READ)
    return Supplier.query.order_by(Supplier.name).all()


def get_supplier(actor: Actor, supplier_id: str) -> Supplier:
    require(actor, perms.SUPPLIER_READ)
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def create_supplier(actor: Actor, payload: dict) -> Supplier:
    require(actor, perms.SUPPLIER_WRITE)
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    enforce_rules_supplier(patch)

    def _op():
        with unit_of_work():
            supplier = Supplier(**patch)
            db.session.add(supplier)
            db.session.flush()
            append_audit_log(actor.user_id, "INSERT", "suppliers", supplier.id, None, supplier.snapshot())
        return supplier

    return run_with_retry(_op)


def update_supplier(actor: Actor, supplier_id: str, payload: dict) -> Supplier:
    require(actor, perms.SUPPLIER_WRITE)
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    enforce_rules_supplier(patch)

    def _op():
        with unit_of_work():
            supplier = db.session.get(Supplier, supplier_id)
            if supplier is None:
                raise NotFoundError(f"Supplier {supplier_id} not found")
            before = supplier.snapshot()
            for key, value in patch.items():
                setattr(supplier, key, value)
            db.session.flush()
            append_audit_log(actor.user_id, "UPDATE", "suppliers", supplier.id, before, supplier.snapshot())
        return supplier

    return run_with_retry(_op)


def delete_supplier(actor: Actor, supplier_id: str) -> None:
    require(actor, perms.SUPPLIER_WRITE)

    def _op():
        with unit_of_work():
            supplier = db.session.get(Supplier, supplier_id)
            if supplier is None:
                raise NotFoundError(f"Supplier {supplier_id} not found")
            before = supplier.snapshot()
            _detach_products(actor, "supplier_id", supplier_id)
            db.session.delete(supplier)
            append_audit_log(actor.user_id, "DELETE", "suppliers", supplier_id, before, None)

    run_with_retry(_op)


def record_supplier_performance(actor: Actor, supplier_id: str, payload: dict) -> SupplierPerformance:
    require(actor, perms.SUPPLIER_WRITE)
    patch = validate_payload(
        model=SupplierPerformance, payload=payload, policy=SUPPLIER_PERFORMANCE_POLICY, partial=False
    )
    enforce_rules_supplier_performance(patch)

    def _op():
        with unit_of_work():
            if db.session.get(Supplier, supplier_id) is None:
                raise NotFoundError(f"Supplier {supplier_id} not found")
            row = SupplierPerformance(supplier_id=supplier_id, **patch)
            db.session.add(row)
            db.session.flush()
        return row

    return run_with_retry(_op)


def supplier_scorecard(actor: Actor, supplier_id: str) -> dict:
    """On-time delivery rate and average quality across recorded months."""
    supplier = get_supplier(actor, supplier_id)
    rows = (
        SupplierPerformance.query.filter_by(supplier_id=supplier_id)
        .order_by(SupplierPerformance.month.desc())
        .all()
    )
    total_orders = sum(r.total_orders for r in rows)
    on_time = sum(r.on_time_deliveries for r in rows)
    scores = [Decimal(r.quality_score) for r in rows if r.quality_score is not None]
    return {
        "supplier_id": supplier.id,
        "supplier_name": supplier.name,
        "months": len(rows),
        "total_orders": total_orders,
        "on_time_deliveries": on_time,
        "on_time_rate": round(on_time / total_orders, 4) if total_orders else None,
        "average_quality": str((sum(scores) / len(scores)).quantize(Decimal("0.01"))) if scores else None,
        "history": [r.to_dict() for r in rows],
    }
