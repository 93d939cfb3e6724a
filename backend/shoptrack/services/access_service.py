# Overview: The access control gate; role and ownership checks evaluated before every mutation.

"""
Access Control Gate

WHY: Row-level policies that used to live in the storage layer are
evaluated here, explicitly, before any service touches the database.

DESIGN PRINCIPLES:
- Fail closed: unknown actions and missing roles are denied
- Stateless: a decision depends only on current role rows and the
  resource's owner, so role revocation applies on the next request
- Denials are logged at WARNING; grants are not logged
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from ..extensions import db
from ..errors import UnauthorizedError
from ..models import UserRole
from ..models.accounts import ROLE_ADMIN, ROLE_CUSTOMER
from ..models.ledger import SYSTEM_ACTOR_ID
from .. import permissions as perms


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as vouched for by the identity provider."""
    user_id: str | None
    roles: frozenset = field(default_factory=frozenset)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles

    @property
    def is_customer(self) -> bool:
        return ROLE_CUSTOMER in self.roles


ANONYMOUS = Actor(user_id=None)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def get_roles(user_id: str) -> frozenset:
    rows = db.session.query(UserRole.role).filter_by(user_id=user_id).all()
    return frozenset(r for (r,) in rows)


def load_actor(user_id: str | None) -> Actor:
    """Build an Actor with role membership read fresh from storage."""
    if not user_id:
        return ANONYMOUS
    return Actor(user_id=user_id, roles=get_roles(user_id))


def _owner_of(resource: Any) -> str | None:
    if resource is None:
        return None
    if isinstance(resource, dict):
        return resource.get("user_id")
    return getattr(resource, "user_id", None)


def authorize(actor: Actor, action: str, resource: Any = None) -> Decision:
    """
    Evaluate one action against the policy table in permissions.py.

    `resource` is any object (or dict) with a `user_id`; it is required for
    owner-scoped actions and ignored otherwise.
    """
    if action not in perms.ALL_ACTIONS:
        return Decision(False, f"unknown action {action}")

    if action in perms.PUBLIC_ACTIONS:
        return ALLOW

    if not actor.is_authenticated:
        return Decision(False, "authentication required")

    if action in perms.ADMIN_ACTIONS:
        if actor.is_admin:
            return ALLOW
        return Decision(False, f"{action} requires the admin role")

    if action in perms.OWNER_ACTIONS:
        if not actor.roles:
            return Decision(False, "account has no roles")
        owner = _owner_of(resource)
        if owner is None:
            return Decision(False, f"{action} requires an owned resource")
        if owner == actor.user_id:
            return ALLOW
        if actor.is_admin and action in perms.ADMIN_READABLE_OWNER_ACTIONS:
            return ALLOW
        return Decision(False, "resource belongs to another user")

    return Decision(False, "denied by default")


def require(actor: Actor, action: str, resource: Any = None) -> None:
    """Raise UnauthorizedError unless the gate allows the action."""
    decision = authorize(actor, action, resource)
    if decision:
        return
    current_app.logger.warning(
        "Access denied: user=%s action=%s reason=%s",
        actor.user_id or "anonymous", action, decision.reason,
    )
    raise UnauthorizedError(
        decision.reason,
        authenticated=actor.is_authenticated,
        action=action,
    )


# Used by CLI maintenance commands that run outside any request
SYSTEM = Actor(user_id=SYSTEM_ACTOR_ID, roles=frozenset({ROLE_ADMIN}))
