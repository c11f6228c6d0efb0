# backend/sale_engine/__init__.py
from __future__ import annotations

from flask import Flask

from .config import Config, resolve_database_uri
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Environment selection happens exactly once, here.
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = resolve_database_uri(app.config["ENGINE_ENVIRONMENT"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.pricing import pricing_bp
    from .routes.sales import sales_bp
    from .routes.inventory import inventory_bp
    from .routes.promotions import promotions_bp
    from .routes.audit import audit_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(promotions_bp)
    app.register_blueprint(audit_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
