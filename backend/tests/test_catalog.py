"""
Catalog tests.

Verifies:
- Products carry initial_stock as the reconciliation anchor
- Stock is never editable through product metadata
- Catalog writes are admin-only and audited
- Archiving keeps history but hides the product
"""

from decimal import Decimal

import pytest

from shoptrack.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from shoptrack.models import AuditLogEntry, InventoryLogEntry
from shoptrack.services import catalog_service, ledger_service
from shoptrack.services.access_service import ANONYMOUS


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductLifecycle:

    def test_create_sets_initial_stock(self, product):
        assert product.stock == 10
        assert product.initial_stock == 10
        assert InventoryLogEntry.query.filter_by(product_id=product.id).count() == 0
        assert ledger_service.reconcile_product(product.id)["consistent"] is True

    def test_create_is_audited(self, admin, product):
        trail = ledger_service.audit_trail("products", product.id)
        assert len(trail) == 1
        assert trail[0].action == "INSERT"
        assert trail[0].user_id == admin.user_id
        assert trail[0].new_values["name"] == "Chef Knife"

    def test_update_rejects_stock(self, admin, product):
        with pytest.raises(ValidationError):
            catalog_service.update_product(admin, product.id, {"stock": 50})
        assert catalog_service.get_stock(product.id) == 10

    def test_update_records_before_and_after(self, admin, product):
        catalog_service.update_product(admin, product.id, {"price": "120.00"})
        latest = ledger_service.audit_trail("products", product.id)[0]
        assert latest.action == "UPDATE"
        assert latest.old_values["price"] == "100.00"
        assert latest.new_values["price"] == "120.00"

    def test_noop_update_is_not_audited(self, admin, product):
        catalog_service.update_product(admin, product.id, {"name": "Chef Knife"})
        assert len(ledger_service.audit_trail("products", product.id)) == 1

    def test_duplicate_sku_conflicts(self, admin, product):
        with pytest.raises(ConflictError):
            catalog_service.create_product(admin, {"sku": "KIT-001", "name": "Copy", "price": "1.00"})

    def test_delete_archives(self, admin, product):
        catalog_service.delete_product(admin, product.id)
        with pytest.raises(NotFoundError):
            catalog_service.get_product(product.id)
        assert catalog_service.get_product(product.id, include_inactive=True).is_active is False
        assert product.id not in [p.id for p in catalog_service.list_products()]

    def test_search_matches_name_and_sku(self, product, other_product):
        assert [p.id for p in catalog_service.list_products(search="board")] == [other_product.id]
        assert [p.id for p in catalog_service.list_products(search="kit-001")] == [product.id]


class TestProductAccess:

    def test_customer_cannot_create(self, alice, category):
        with pytest.raises(UnauthorizedError) as exc:
            catalog_service.create_product(alice, {"name": "Nope", "price": "1.00"})
        assert exc.value.status_code == 403

    def test_anonymous_cannot_create(self, db_session):
        with pytest.raises(UnauthorizedError) as exc:
            catalog_service.create_product(ANONYMOUS, {"name": "Nope", "price": "1.00"})
        assert exc.value.status_code == 401

    def test_customer_cannot_adjust_stock(self, alice, product):
        with pytest.raises(UnauthorizedError):
            catalog_service.adjust_inventory(alice, product.id, 5, "restock")
        assert catalog_service.get_stock(product.id) == 10
        assert InventoryLogEntry.query.count() == 0


class TestProductValidation:

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "X", "price": "-1"},
            {"name": "X", "price": "10000000.01"},
            {"name": "X", "price": "5", "discount_percentage": 101},
            {"name": "X", "price": "5", "lead_time_days": 0},
            {"name": "X", "price": "5", "image_url": "ftp://example.com/a.png"},
            {"name": "X", "price": "5", "sku": "AB"},
            {"name": "X", "price": "5", "stock": -1},
            {"price": "5"},
            {"name": "X", "price": "5", "is_active": False},
        ],
    )
    def test_rejects_invalid_payload(self, admin, payload):
        with pytest.raises(ValidationError):
            catalog_service.create_product(admin, payload)

    def test_unknown_category(self, admin):
        with pytest.raises(NotFoundError):
            catalog_service.create_product(admin, {"name": "X", "price": "5", "category_id": "missing"})


# =============================================================================
# DISCOUNTS AND LOW STOCK
# =============================================================================


class TestBulkDiscount:

    def test_updates_category_and_audits(self, admin, category, product, other_product):
        affected = catalog_service.bulk_update_discount(admin, category.id, 15)
        assert affected == 2
        assert catalog_service.get_product(product.id).effective_price == Decimal("85.00")
        assert AuditLogEntry.query.filter_by(table_name="products", action="UPDATE").count() == 2
        assert InventoryLogEntry.query.count() == 0

    def test_rejects_out_of_range(self, admin, category):
        with pytest.raises(ValidationError):
            catalog_service.bulk_update_discount(admin, category.id, 150)


class TestReferenceDeletes:

    def test_delete_category_audits_detached_products(self, admin, category, product, other_product):
        category_id = category.id
        catalog_service.delete_category(admin, category_id)
        for item in (product, other_product):
            assert catalog_service.get_product(item.id).category_id is None
            latest = ledger_service.audit_trail("products", item.id)[0]
            assert latest.action == "UPDATE"
            assert latest.old_values["category_id"] == category_id
            assert latest.new_values["category_id"] is None
        assert ledger_service.audit_trail("categories", category_id)[0].action == "DELETE"
        assert InventoryLogEntry.query.count() == 0

    def test_delete_supplier_audits_detached_products(self, admin, product):
        supplier = catalog_service.create_supplier(admin, {"name": "Acme"})
        catalog_service.update_product(admin, product.id, {"supplier_id": supplier.id})
        supplier_id = supplier.id
        catalog_service.delete_supplier(admin, supplier_id)
        assert catalog_service.get_product(product.id).supplier_id is None
        actions = [entry.action for entry in ledger_service.audit_trail("products", product.id)]
        assert actions == ["UPDATE", "UPDATE", "INSERT"]
        latest = ledger_service.audit_trail("products", product.id)[0]
        assert latest.old_values["supplier_id"] == supplier_id
        assert latest.new_values["supplier_id"] is None


def test_low_stock_products(admin, product, other_product):
    # other_product has 5 units and the default reorder point of 10
    assert [p.id for p in catalog_service.low_stock_products()] == [other_product.id, product.id]
    catalog_service.adjust_inventory(admin, product.id, 5, "restock")
    assert [p.id for p in catalog_service.low_stock_products()] == [other_product.id]


# =============================================================================
# SUPPLIERS
# =============================================================================


class TestSuppliers:

    def test_supplier_reads_are_admin_only(self, alice):
        with pytest.raises(UnauthorizedError):
            catalog_service.list_suppliers(alice)

    def test_scorecard(self, admin):
        supplier = catalog_service.create_supplier(admin, {"name": "Acme", "email": "ops@acme.example", "rating": 4})
        catalog_service.record_supplier_performance(admin, supplier.id, {
            "month": "2026-08-01", "total_orders": 10, "on_time_deliveries": 9, "quality_score": "4.0",
        })
        catalog_service.record_supplier_performance(admin, supplier.id, {
            "month": "2026-09-01", "total_orders": 10, "on_time_deliveries": 7, "quality_score": "5.0",
        })
        card = catalog_service.supplier_scorecard(admin, supplier.id)
        assert card["months"] == 2
        assert card["on_time_rate"] == 0.8
        assert card["average_quality"] == "4.50"
        assert card["history"][0]["month"] == "2026-09-01"

    def test_rejects_bad_rating_and_email(self, admin):
        with pytest.raises(ValidationError):
            catalog_service.create_supplier(admin, {"name": "Acme", "rating": 6})
        with pytest.raises(ValidationError):
            catalog_service.create_supplier(admin, {"name": "Acme", "email": "not-an-email"})

    def test_on_time_cannot_exceed_total(self, admin):
        supplier = catalog_service.create_supplier(admin, {"name": "Acme"})
        with pytest.raises(ValidationError):
            catalog_service.record_supplier_performance(admin, supplier.id, {
                "month": "2026-09-01", "total_orders": 3, "on_time_deliveries": 4,
            })
