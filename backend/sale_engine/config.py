# backend/sale_engine/config.py
from __future__ import annotations
import os


# Backing stores selectable per session. The choice is resolved once when the
# app is created and never re-read by the engine mid-operation.
ENVIRONMENTS = ("production", "test")


def resolve_database_uri(environment: str) -> str:
    if environment not in ENVIRONMENTS:
        raise ValueError(f"Unknown engine environment: {environment!r}")
    if environment == "test":
        return os.environ.get("TEST_DATABASE_URL", "sqlite:///sale_engine_test.sqlite3")
    return os.environ.get("DATABASE_URL", "sqlite:///sale_engine.sqlite3")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    ENGINE_ENVIRONMENT = os.environ.get("ENGINE_ENVIRONMENT", "production")

    # Filled in by create_app from ENGINE_ENVIRONMENT unless overridden
    SQLALCHEMY_DATABASE_URI = None
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Optimistic stock reservation: attempts before "stock changed, please retry"
    STOCK_RESERVE_ATTEMPTS = int(os.environ.get("STOCK_RESERVE_ATTEMPTS", "3"))
    STOCK_RETRY_BACKOFF_SECONDS = float(os.environ.get("STOCK_RETRY_BACKOFF_SECONDS", "0.05"))

    # Exact phrase required to purge the audit log
    AUDIT_PURGE_CONFIRMATION = os.environ.get("AUDIT_PURGE_CONFIRMATION", "deletare")

    # Authorization capability (see decorators.require_admin)
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN")
    ADMIN_AUTHORIZER = None

    MAX_INSTALLMENTS = int(os.environ.get("MAX_INSTALLMENTS", "12"))
