# Overview: Account bootstrap and role management.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError, ConflictError
from ..models import Profile, UserRole
from ..models.accounts import ROLES, ROLE_CUSTOMER
from .. import permissions as perms
from ..validation import validate_email
from .access_service import Actor, require
from .concurrency import unit_of_work, run_with_retry
from .ledger_service import append_audit_log

MAX_USER_ID_LENGTH = 64


def _require_role_name(role) -> str:
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    return role


def create_account(user_id: str, email: str) -> Profile:
    """
    Register a profile for an identity-provider user and grant exactly
    one `customer` role. Called once per user, after sign-up.
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id is required")
    user_id = user_id.strip()
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise ValidationError(f"user_id must be at most {MAX_USER_ID_LENGTH} characters")
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("email is required")
    email = email.strip().lower()
    validate_email(email)

    def _op():
        with unit_of_work():
            if db.session.get(Profile, user_id) is not None:
                raise ConflictError(f"Account {user_id} already exists")
            profile = Profile(id=user_id, email=email)
            db.session.add(profile)
            db.session.flush()
            role = UserRole(user_id=user_id, role=ROLE_CUSTOMER)
            db.session.add(role)
            db.session.flush()
            append_audit_log(None, "INSERT", "user_roles", role.id, None, role.snapshot())
        return profile

    profile = run_with_retry(_op)
    current_app.logger.info("Account created: %s", profile.id)
    return profile


def get_account(actor: Actor, user_id: str) -> Profile:
    if not actor.is_authenticated or actor.user_id != user_id:
        require(actor, perms.ACCOUNT_LIST)
    profile = db.session.get(Profile, user_id)
    if profile is None:
        raise NotFoundError(f"Account {user_id} not found")
    return profile


def list_accounts(actor: Actor) -> list[Profile]:
    require(actor, perms.ACCOUNT_LIST)
    return Profile.query.order_by(Profile.created_at, Profile.id).all()


def grant_role(actor: Actor, user_id: str, role: str) -> UserRole:
    require(actor, perms.ROLE_MANAGE)
    role = _require_role_name(role)

    def _op():
        with unit_of_work():
            if db.session.get(Profile, user_id) is None:
                raise NotFoundError(f"Account {user_id} not found")
            if UserRole.query.filter_by(user_id=user_id, role=role).first() is not None:
                raise ConflictError(f"{user_id} already has role {role}")
            row = UserRole(user_id=user_id, role=role)
            db.session.add(row)
            db.session.flush()
            append_audit_log(actor.user_id, "INSERT", "user_roles", row.id, None, row.snapshot())
        return row

    row = run_with_retry(_op)
    current_app.logger.info("Role %s granted to %s by %s", role, user_id, actor.user_id)
    return row


def revoke_role(actor: Actor, user_id: str, role: str) -> None:
    """Remove a role. The bootstrap customer role is never revocable."""
    require(actor, perms.ROLE_MANAGE)
    role = _require_role_name(role)
    if role == ROLE_CUSTOMER:
        raise ConflictError("The customer role cannot be revoked")

    def _op():
        with unit_of_work():
            row = UserRole.query.filter_by(user_id=user_id, role=role).first()
            if row is None:
                raise NotFoundError(f"{user_id} does not have role {role}")
            before = row.snapshot()
            db.session.delete(row)
            db.session.flush()
            append_audit_log(actor.user_id, "DELETE", "user_roles", before["id"], before, None)

    run_with_retry(_op)
    current_app.logger.info("Role %s revoked from %s by %s", role, user_id, actor.user_id)
