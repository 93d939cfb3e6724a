# Overview: Request decorators that establish the caller's identity for API routes.

from functools import wraps

from flask import request, g, current_app

from .errors import UnauthorizedError
from .services.access_service import load_actor


def _identity_from_request() -> str | None:
    header = current_app.config.get("IDENTITY_HEADER", "X-User-Id")
    value = request.headers.get(header, "").strip()
    return value or None


def load_identity(f):
    """
    Resolve the caller into g.actor (anonymous when no identity header).

    Roles are read from storage on every request, so a revoked role takes
    effect immediately.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.actor = load_actor(_identity_from_request())
        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """Like load_identity, but answers 401 for anonymous callers."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = load_actor(_identity_from_request())
        if not actor.is_authenticated:
            raise UnauthorizedError("authentication required", authenticated=False)
        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function
