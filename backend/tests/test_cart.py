"""
Cart reservation tests.

Verifies:
- Adding to a cart reserves stock immediately
- Every release puts back exactly what was reserved
- A cart cannot reserve more than is on hand
- Carts are private to their owner
"""

from datetime import timedelta

import pytest

from shoptrack.errors import InsufficientStockError, NotFoundError, UnauthorizedError, ValidationError
from shoptrack.extensions import db
from shoptrack.models import CartLine, InventoryLogEntry
from shoptrack.services import cart_service, catalog_service, ledger_service
from shoptrack.time_utils import utcnow


def _stock(product) -> int:
    return catalog_service.get_stock(product.id)


class TestReservations:

    def test_add_reserves_stock(self, alice, product):
        line = cart_service.add_to_cart(alice, product.id, 3)
        assert line.quantity == 3
        assert _stock(product) == 7
        entry = ledger_service.logs_for_product(product.id)[0]
        assert (entry.change_type, entry.quantity) == ("cart_reserved", -3)
        assert entry.reference_id == line.id

    def test_add_accumulates(self, alice, product):
        cart_service.add_to_cart(alice, product.id, 2)
        line = cart_service.add_to_cart(alice, product.id, 3)
        assert line.quantity == 5
        assert CartLine.query.count() == 1
        assert _stock(product) == 5

    def test_cannot_reserve_more_than_stock(self, alice, product):
        with pytest.raises(InsufficientStockError):
            cart_service.add_to_cart(alice, product.id, 11)
        assert _stock(product) == 10
        assert CartLine.query.count() == 0
        assert InventoryLogEntry.query.count() == 0

    def test_two_carts_share_the_counter(self, alice, bob, product):
        cart_service.add_to_cart(alice, product.id, 6)
        with pytest.raises(InsufficientStockError):
            cart_service.add_to_cart(bob, product.id, 5)
        cart_service.add_to_cart(bob, product.id, 4)
        assert _stock(product) == 0

    @pytest.mark.parametrize("quantity", [0, -2, 1.5, "3", True])
    def test_invalid_quantity(self, alice, product, quantity):
        with pytest.raises(ValidationError):
            cart_service.add_to_cart(alice, product.id, quantity)

    def test_archived_product_cannot_be_added(self, admin, alice, product):
        catalog_service.delete_product(admin, product.id)
        with pytest.raises(NotFoundError):
            cart_service.add_to_cart(alice, product.id, 1)


class TestReleases:

    def test_set_quantity_up_and_down(self, alice, product):
        cart_service.add_to_cart(alice, product.id, 2)
        cart_service.set_cart_quantity(alice, product.id, 6)
        assert _stock(product) == 4
        cart_service.set_cart_quantity(alice, product.id, 1)
        assert _stock(product) == 9
        types = [e.change_type for e in ledger_service.logs_for_product(product.id)]
        assert types == ["cart_released", "cart_reserved", "cart_reserved"]

    def test_set_below_one_removes(self, alice, product):
        cart_service.add_to_cart(alice, product.id, 2)
        assert cart_service.set_cart_quantity(alice, product.id, 0) is None
        assert CartLine.query.count() == 0
        assert _stock(product) == 10

    def test_set_quantity_checks_stock(self, alice, product):
        cart_service.add_to_cart(alice, product.id, 2)
        with pytest.raises(InsufficientStockError):
            cart_service.set_cart_quantity(alice, product.id, 11)
        assert CartLine.query.first().quantity == 2
        assert _stock(product) == 8

    def test_remove_restores_exactly(self, alice, product):
        cart_service.add_to_cart(alice, product.id, 3)
        cart_service.add_to_cart(alice, product.id, 1)
        assert cart_service.remove_from_cart(alice, product.id) == 4
        assert _stock(product) == 10
        assert ledger_service.log_sum(product.id) == 0

    def test_remove_missing_line(self, alice, product):
        with pytest.raises(NotFoundError):
            cart_service.remove_from_cart(alice, product.id)

    def test_clear_cart(self, alice, product, other_product):
        cart_service.add_to_cart(alice, product.id, 3)
        cart_service.add_to_cart(alice, other_product.id, 2)
        assert cart_service.clear_cart(alice) == 5
        assert _stock(product) == 10
        assert _stock(other_product) == 5
        assert cart_service.get_cart(alice)["lines"] == []

    def test_remove_after_archive_still_releases(self, admin, alice, product):
        cart_service.add_to_cart(alice, product.id, 3)
        catalog_service.delete_product(admin, product.id)
        cart_service.remove_from_cart(alice, product.id)
        assert _stock(product) == 10


class TestStaleCarts:

    def _age(self, user_id, minutes):
        CartLine.query.filter_by(user_id=user_id).update(
            {"updated_at": utcnow() - timedelta(minutes=minutes)}
        )
        db.session.commit()

    def test_releases_only_stale_lines(self, admin, alice, bob, product):
        cart_service.add_to_cart(alice, product.id, 3)
        cart_service.add_to_cart(bob, product.id, 2)
        self._age("alice", 120)

        assert cart_service.release_stale_carts(admin) == 1
        assert _stock(product) == 8
        assert [line.user_id for line in CartLine.query.all()] == ["bob"]
        assert ledger_service.reconcile_product(product.id)["consistent"] is True

    def test_explicit_cutoff(self, admin, alice, product):
        cart_service.add_to_cart(alice, product.id, 3)
        self._age("alice", 5)
        assert cart_service.release_stale_carts(admin) == 0
        assert cart_service.release_stale_carts(admin, older_than=utcnow()) == 1

    def test_customers_cannot_release(self, alice):
        with pytest.raises(UnauthorizedError):
            cart_service.release_stale_carts(alice)


class TestCartOwnership:

    def test_get_cart_totals(self, admin, alice, product, other_product):
        catalog_service.update_product(admin, product.id, {"discount_percentage": 10})
        cart_service.add_to_cart(alice, product.id, 2)
        cart_service.add_to_cart(alice, other_product.id, 1)
        cart = cart_service.get_cart(alice)
        assert cart["item_count"] == 3
        assert cart["total"] == "205.50"

    def test_other_customer_cannot_read(self, alice, bob, product):
        cart_service.add_to_cart(alice, product.id, 1)
        with pytest.raises(UnauthorizedError):
            cart_service.get_cart(bob, user_id="alice")

    def test_admin_can_read(self, admin, alice, product):
        cart_service.add_to_cart(alice, product.id, 1)
        assert cart_service.get_cart(admin, user_id="alice")["item_count"] == 1
