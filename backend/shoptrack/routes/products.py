# Overview: Flask API routes for the product catalog and categories.

# backend/shoptrack/routes/products.py
"""
Catalog API Routes

Reads are public. Writes require the admin role; the gate check happens
inside catalog_service so every caller path is covered.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import load_identity, require_auth
from ..services import catalog_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


# =============================================================================
# PRODUCTS
# =============================================================================

@products_bp.get("")
@load_identity
def list_products_route():
    """
    Query params:
        category_id: filter by category
        q: case-insensitive match on name or SKU
        include_inactive: "true" to include archived products (admin only)
    """
    include_inactive = request.args.get("include_inactive", "").lower() == "true" and g.actor.is_admin
    products = catalog_service.list_products(
        category_id=request.args.get("category_id"),
        search=request.args.get("q"),
        include_inactive=include_inactive,
    )
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/<product_id>")
@load_identity
def get_product_route(product_id: str):
    product = catalog_service.get_product(product_id, include_inactive=g.actor.is_admin)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("")
@require_auth
def create_product_route():
    product = catalog_service.create_product(g.actor, request.get_json(silent=True))
    return jsonify({"product": product.to_dict()}), 201


@products_bp.patch("/<product_id>")
@require_auth
def update_product_route(product_id: str):
    product = catalog_service.update_product(g.actor, product_id, request.get_json(silent=True))
    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<product_id>")
@require_auth
def delete_product_route(product_id: str):
    product = catalog_service.delete_product(g.actor, product_id)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/bulk-discount")
@require_auth
def bulk_discount_route():
    """
    Request body:
    {
        "category_id": "...",
        "discount_percentage": 15
    }
    """
    data = request.get_json(silent=True) or {}
    affected = catalog_service.bulk_update_discount(
        g.actor, data.get("category_id"), data.get("discount_percentage")
    )
    return jsonify({"updated": affected}), 200


# =============================================================================
# CATEGORIES
# =============================================================================

@categories_bp.get("")
def list_categories_route():
    return jsonify({"categories": [c.to_dict() for c in catalog_service.list_categories()]}), 200


@categories_bp.post("")
@require_auth
def create_category_route():
    category = catalog_service.create_category(g.actor, request.get_json(silent=True))
    return jsonify({"category": category.to_dict()}), 201


@categories_bp.patch("/<category_id>")
@require_auth
def update_category_route(category_id: str):
    category = catalog_service.update_category(g.actor, category_id, request.get_json(silent=True))
    return jsonify({"category": category.to_dict()}), 200


@categories_bp.delete("/<category_id>")
@require_auth
def delete_category_route(category_id: str):
    catalog_service.delete_category(g.actor, category_id)
    return "", 204
