# backend/shoptrack/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shoptrack.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///shoptrack.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Header set by the upstream identity provider with the authenticated user id
    IDENTITY_HEADER = os.environ.get("IDENTITY_HEADER", "X-User-Id")

    # Legacy storefront behaviour: decrement stock again at checkout on top of
    # the cart reservation. Off by default: the reservation is the only decrement.
    CHECKOUT_DOUBLE_DECREMENT = _env_bool("CHECKOUT_DOUBLE_DECREMENT", False)

    CART_RESERVATION_TTL_MINUTES = int(os.environ.get("CART_RESERVATION_TTL_MINUTES", "60"))

    FORECAST_WINDOW_MONTHS = int(os.environ.get("FORECAST_WINDOW_MONTHS", "6"))
    FORECAST_SAFETY_FACTOR = float(os.environ.get("FORECAST_SAFETY_FACTOR", "1.5"))

    RECENT_LOG_LIMIT = int(os.environ.get("RECENT_LOG_LIMIT", "50"))

    STORAGE_RETRY_ATTEMPTS = int(os.environ.get("STORAGE_RETRY_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
