"""
Access control gate tests.

Verifies:
- Public, owner-scoped and admin-only actions are decided correctly
- Unknown actions fail closed
- Account bootstrap grants exactly one customer role
- Role changes apply on the next request
"""

import logging

import pytest

from shoptrack import permissions as perms
from shoptrack.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from shoptrack.models import UserRole
from shoptrack.services import account_service
from shoptrack.services.access_service import ANONYMOUS, Actor, authorize, load_actor, require


# =============================================================================
# DECISIONS
# =============================================================================


class TestAuthorize:

    def test_catalog_read_is_public(self):
        assert authorize(ANONYMOUS, perms.CATALOG_READ)

    def test_anonymous_denied_owner_actions(self):
        decision = authorize(ANONYMOUS, perms.CART_READ, {"user_id": "alice"})
        assert not decision
        assert decision.reason == "authentication required"

    def test_unknown_action_denied(self):
        admin = Actor("root", frozenset({"admin", "customer"}))
        assert not authorize(admin, "stock.teleport")

    def test_customer_denied_admin_actions(self):
        customer = Actor("alice", frozenset({"customer"}))
        for action in perms.ADMIN_ACTIONS:
            assert not authorize(customer, action), action

    def test_owner_scoping(self):
        customer = Actor("alice", frozenset({"customer"}))
        assert authorize(customer, perms.CART_WRITE, {"user_id": "alice"})
        assert not authorize(customer, perms.CART_WRITE, {"user_id": "bob"})
        assert not authorize(customer, perms.CART_WRITE)

    def test_admin_reads_but_never_writes_others(self):
        admin = Actor("root", frozenset({"admin", "customer"}))
        assert authorize(admin, perms.ORDER_READ, {"user_id": "alice"})
        assert not authorize(admin, perms.CART_WRITE, {"user_id": "alice"})
        assert not authorize(admin, perms.ORDER_CREATE, {"user_id": "alice"})

    def test_account_without_roles(self):
        ghost = Actor("ghost", frozenset())
        assert not authorize(ghost, perms.CART_READ, {"user_id": "ghost"})

    def test_denials_are_logged(self, app, caplog):
        with caplog.at_level(logging.WARNING):
            with pytest.raises(UnauthorizedError):
                require(Actor("alice", frozenset({"customer"})), perms.ROLE_MANAGE)
        assert "Access denied" in caplog.text
        assert "role.manage" in caplog.text


# =============================================================================
# ACCOUNTS AND ROLES
# =============================================================================


class TestAccountBootstrap:

    def test_new_account_has_one_customer_role(self, alice):
        rows = UserRole.query.filter_by(user_id="alice").all()
        assert [r.role for r in rows] == ["customer"]
        assert alice.roles == frozenset({"customer"})

    def test_duplicate_account(self, alice):
        with pytest.raises(ConflictError):
            account_service.create_account("alice", "alice@example.com")

    @pytest.mark.parametrize("user_id,email", [("", "a@example.com"), ("x", "nope"), ("x" * 65, "a@example.com")])
    def test_invalid_account(self, db_session, user_id, email):
        with pytest.raises(ValidationError):
            account_service.create_account(user_id, email)

    def test_unknown_identity_has_no_roles(self, db_session):
        assert load_actor("stranger").roles == frozenset()

    def test_own_account_readable(self, alice, bob):
        assert account_service.get_account(alice, "alice").email == "alice@example.com"
        with pytest.raises(UnauthorizedError):
            account_service.get_account(alice, "bob")


class TestRoleManagement:

    def test_grant_and_revoke_take_effect_immediately(self, admin, alice):
        account_service.grant_role(admin, "alice", "admin")
        assert load_actor("alice").is_admin
        account_service.revoke_role(admin, "alice", "admin")
        assert not load_actor("alice").is_admin
        assert load_actor("alice").is_customer

    def test_duplicate_grant(self, admin, alice):
        with pytest.raises(ConflictError):
            account_service.grant_role(admin, "alice", "customer")

    def test_customer_role_cannot_be_revoked(self, admin, alice):
        with pytest.raises(ConflictError):
            account_service.revoke_role(admin, "alice", "customer")
        assert load_actor("alice").is_customer

    def test_revoke_missing_role(self, admin, alice):
        with pytest.raises(NotFoundError):
            account_service.revoke_role(admin, "alice", "admin")

    def test_unknown_role(self, admin, alice):
        with pytest.raises(ValidationError):
            account_service.grant_role(admin, "alice", "superuser")

    def test_customer_cannot_grant(self, alice, bob):
        with pytest.raises(UnauthorizedError):
            account_service.grant_role(alice, "alice", "admin")

    def test_role_changes_are_audited(self, admin, alice):
        from shoptrack.models import AuditLogEntry

        account_service.grant_role(admin, "alice", "admin")
        account_service.revoke_role(admin, "alice", "admin")
        actions = [
            e.action
            for e in AuditLogEntry.query.filter_by(table_name="user_roles", user_id=admin.user_id)
            .order_by(AuditLogEntry.id)
        ]
        assert actions == ["INSERT", "DELETE"]
