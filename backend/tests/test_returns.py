"""
Return lifecycle tests.

Verifies:
- Customers file returns only against their own orders
- Returnable quantity is bounded by what was ordered
- Restocking happens exactly once
"""

import pytest

from shoptrack.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from shoptrack.models import InventoryLogEntry
from shoptrack.services import cart_service, catalog_service, ledger_service, order_service, return_service


@pytest.fixture
def order(alice, product):
    cart_service.add_to_cart(alice, product.id, 3)
    return order_service.checkout(alice)


class TestCreateReturn:

    def test_creates_pending_return(self, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 2, "Chipped blade")
        assert ret.status == "pending"
        assert ret.user_id == "alice"
        assert ret.restocked_at is None
        assert catalog_service.get_stock(product.id) == 7

    def test_other_customer_denied(self, bob, order, product):
        with pytest.raises(UnauthorizedError):
            return_service.create_return(bob, order.id, product.id, 1, "Not mine")

    def test_product_must_be_on_order(self, alice, order, other_product):
        with pytest.raises(ValidationError):
            return_service.create_return(alice, order.id, other_product.id, 1, "Wrong item")

    def test_quantity_bounded_by_order(self, alice, order, product):
        return_service.create_return(alice, order.id, product.id, 2, "First")
        with pytest.raises(ValidationError):
            return_service.create_return(alice, order.id, product.id, 2, "Second")
        return_service.create_return(alice, order.id, product.id, 1, "Last one")

    def test_rejected_returns_free_up_quantity(self, admin, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 3, "All of them")
        return_service.transition_return(admin, ret.id, "rejected")
        return_service.create_return(alice, order.id, product.id, 3, "Trying again")

    def test_reviving_rejected_return_respects_claims(self, admin, alice, order, product):
        first = return_service.create_return(alice, order.id, product.id, 3, "All of them")
        return_service.transition_return(admin, first.id, "rejected")
        second = return_service.create_return(alice, order.id, product.id, 3, "Trying again")
        return_service.transition_return(admin, second.id, "restocked")
        assert catalog_service.get_stock(product.id) == 10

        for status in ("approved", "restocked"):
            with pytest.raises(ConflictError):
                return_service.transition_return(admin, first.id, status)
        assert return_service.get_return(admin, first.id).status == "rejected"
        assert catalog_service.get_stock(product.id) == 10
        assert ledger_service.reconcile_product(product.id)["consistent"] is True

    def test_reviving_rejected_return_when_units_are_free(self, admin, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 2, "Changed my mind")
        return_service.transition_return(admin, ret.id, "rejected")
        revived = return_service.transition_return(admin, ret.id, "approved")
        assert revived.status == "approved"

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, alice, order, product, reason):
        with pytest.raises(ValidationError):
            return_service.create_return(alice, order.id, product.id, 1, reason)

    def test_cancelled_order(self, admin, alice, order, product):
        order_service.update_order_status(admin, order.id, "cancelled")
        with pytest.raises(ConflictError):
            return_service.create_return(alice, order.id, product.id, 1, "Cancelled anyway")

    def test_missing_order(self, alice, product):
        with pytest.raises(NotFoundError):
            return_service.create_return(alice, "nope", product.id, 1, "?")


class TestTransitions:

    def test_restock_is_idempotent(self, admin, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 2, "Too many")
        restocked = return_service.transition_return(admin, ret.id, "restocked")
        assert restocked.restocked_at is not None
        assert restocked.processed_by == admin.user_id
        assert catalog_service.get_stock(product.id) == 9

        with pytest.raises(ConflictError):
            return_service.transition_return(admin, ret.id, "restocked")

        assert catalog_service.get_stock(product.id) == 9
        assert InventoryLogEntry.query.filter_by(change_type="return").count() == 1
        assert ledger_service.reconcile_product(product.id)["consistent"] is True

    def test_restocked_is_terminal(self, admin, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 1, "Extra")
        return_service.transition_return(admin, ret.id, "restocked")
        with pytest.raises(ConflictError):
            return_service.transition_return(admin, ret.id, "rejected")

    def test_approve_then_restock(self, admin, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 1, "Extra")
        approved = return_service.transition_return(admin, ret.id, "approved")
        assert approved.status == "approved"
        assert catalog_service.get_stock(product.id) == 7
        return_service.transition_return(admin, ret.id, "restocked")
        assert catalog_service.get_stock(product.id) == 8

    def test_transition_is_audited(self, admin, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 1, "Extra")
        return_service.transition_return(admin, ret.id, "approved")
        entry = ledger_service.audit_trail("returns", ret.id)[0]
        assert entry.old_values["status"] == "pending"
        assert entry.new_values["status"] == "approved"

    def test_cannot_return_to_pending(self, admin, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 1, "Extra")
        with pytest.raises(ValidationError):
            return_service.transition_return(admin, ret.id, "pending")

    def test_customer_cannot_transition(self, alice, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 1, "Extra")
        with pytest.raises(UnauthorizedError):
            return_service.transition_return(alice, ret.id, "restocked")
        assert catalog_service.get_stock(product.id) == 7


class TestReturnReads:

    def test_listing_is_scoped(self, admin, alice, bob, order, product):
        ret = return_service.create_return(alice, order.id, product.id, 1, "Extra")
        assert [r.id for r in return_service.list_returns(alice)] == [ret.id]
        assert return_service.list_returns(bob) == []
        assert [r.id for r in return_service.list_returns(admin, status="pending")] == [ret.id]
        with pytest.raises(UnauthorizedError):
            return_service.get_return(bob, ret.id)
