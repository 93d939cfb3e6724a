"""
Inventory ledger tests.

Verifies:
- Every stock mutation appends exactly one signed log entry
- stock == initial_stock + sum(log deltas) after any sequence of operations
- Ledger rows are append-only
- Change-type sign rules are enforced
"""

import pytest
from sqlalchemy.exc import OperationalError

from shoptrack.errors import InsufficientStockError, StorageFailure, ValidationError
from shoptrack.extensions import db
from shoptrack.models import InventoryLogEntry, Product
from shoptrack.services import catalog_service, ledger_service
from shoptrack.services.concurrency import run_with_retry


class TestManualAdjustments:

    def test_restock_appends_log(self, admin, product):
        new_stock = catalog_service.adjust_inventory(admin, product.id, 5, "restock")
        assert new_stock == 15
        entries = ledger_service.logs_for_product(product.id)
        assert len(entries) == 1
        assert entries[0].change_type == "restock"
        assert entries[0].quantity == 5
        assert entries[0].actor_id == admin.user_id
        assert ledger_service.reconcile_product(product.id)["consistent"] is True

    def test_negative_adjustment(self, admin, product):
        assert catalog_service.adjust_inventory(admin, product.id, -4) == 6
        assert ledger_service.logs_for_product(product.id)[0].quantity == -4

    def test_cannot_go_below_zero(self, admin, product):
        with pytest.raises(InsufficientStockError) as exc:
            catalog_service.adjust_inventory(admin, product.id, -11)
        assert exc.value.details["available"] == 10
        assert catalog_service.get_stock(product.id) == 10
        assert InventoryLogEntry.query.count() == 0

    @pytest.mark.parametrize("change_type", ["sale", "return", "cart_reserved", "bogus"])
    def test_manual_change_types_only(self, admin, product, change_type):
        with pytest.raises(ValidationError):
            catalog_service.adjust_inventory(admin, product.id, 1, change_type)

    def test_restock_must_be_positive(self, admin, product):
        with pytest.raises(ValidationError):
            catalog_service.adjust_inventory(admin, product.id, -1, "restock")
        assert catalog_service.get_stock(product.id) == 10

    def test_zero_delta_rejected(self, admin, product):
        with pytest.raises(ValidationError):
            catalog_service.adjust_inventory(admin, product.id, 0)


class TestSignRules:

    @pytest.mark.parametrize(
        "change_type,delta",
        [
            ("sale", 1),
            ("cart_reserved", 2),
            ("return", -1),
            ("restock", -3),
            ("cart_released", -1),
            ("adjustment", 0),
        ],
    )
    def test_wrong_sign_rejected(self, product, change_type, delta):
        with pytest.raises(ValidationError):
            ledger_service.append_inventory_log(product.id, delta, change_type)
        db.session.rollback()


class TestAppendOnly:

    def test_log_entries_cannot_be_updated(self, admin, product):
        catalog_service.adjust_inventory(admin, product.id, 2, "restock")
        entry = InventoryLogEntry.query.first()
        entry.quantity = 99
        with pytest.raises(RuntimeError):
            db.session.flush()
        db.session.rollback()
        assert InventoryLogEntry.query.first().quantity == 2

    def test_log_entries_cannot_be_deleted(self, admin, product):
        catalog_service.adjust_inventory(admin, product.id, 2, "restock")
        db.session.delete(InventoryLogEntry.query.first())
        with pytest.raises(RuntimeError):
            db.session.flush()
        db.session.rollback()
        assert InventoryLogEntry.query.count() == 1


class TestReconciliation:

    def test_consistent_after_mixed_operations(self, admin, alice, product, other_product):
        from shoptrack.services import cart_service, order_service

        catalog_service.adjust_inventory(admin, product.id, 7, "restock")
        cart_service.add_to_cart(alice, product.id, 4)
        cart_service.add_to_cart(alice, other_product.id, 2)
        cart_service.set_cart_quantity(alice, product.id, 1)
        order_service.checkout(alice, "COD")
        catalog_service.adjust_inventory(admin, other_product.id, -1)

        assert ledger_service.reconcile_all() == []
        report = ledger_service.reconcile_product(product.id)
        assert report == {
            "product_id": product.id,
            "initial_stock": 10,
            "log_sum": 6,
            "expected": 16,
            "actual": 16,
            "consistent": True,
        }

    def test_detects_drift(self, product):
        Product.query.filter_by(id=product.id).update({"stock": 42})
        db.session.commit()
        drifted = ledger_service.reconcile_all()
        assert [row["product_id"] for row in drifted] == [product.id]
        assert drifted[0]["expected"] == 10
        assert drifted[0]["actual"] == 42


class TestLedgerReads:

    def test_recent_logs_newest_first_and_filtered(self, admin, product, other_product):
        catalog_service.adjust_inventory(admin, product.id, 1, "restock")
        catalog_service.adjust_inventory(admin, other_product.id, -1)
        entries = ledger_service.recent_logs(limit=10)
        assert [e.product_id for e in entries] == [other_product.id, product.id]
        assert [e.change_type for e in ledger_service.recent_logs(change_type="restock")] == ["restock"]
        assert len(ledger_service.recent_logs(limit=1)) == 1

    def test_recent_logs_rejects_unknown_type(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.recent_logs(change_type="theft")


class TestStorageRetry:

    def test_zero_attempts_still_runs_once(self, app, admin, product, monkeypatch):
        monkeypatch.setitem(app.config, "STORAGE_RETRY_ATTEMPTS", 0)
        assert run_with_retry(lambda: "done") == "done"
        catalog_service.adjust_inventory(admin, product.id, 2, "restock")
        assert catalog_service.get_stock(product.id) == 12

    def test_exhausted_retries_raise_storage_failure(self, db_session):
        calls = []

        def locked():
            calls.append(1)
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with pytest.raises(StorageFailure):
            run_with_retry(locked, attempts=2, backoff_base=0)
        assert len(calls) == 2
