# backend/possync/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate

ENGINE_EXTENSION_KEY = "possync.engine"


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.getLogger("possync").setLevel(app.config["LOG_LEVEL"])
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One engine per app; it owns the drain lock and per-entity locks
    from .services.reconciliation_service import build_engine
    app.extensions[ENGINE_EXTENSION_KEY] = build_engine(
        db.session,
        max_retries=app.config["SYNC_MAX_RETRIES"],
        dead_letter_exhausted=app.config["SYNC_DEAD_LETTER_EXHAUSTED"],
        commit_attempts=app.config["SYNC_COMMIT_ATTEMPTS"],
        logger=logging.getLogger("possync.sync"),
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sync import sync_bp
    from .routes.catalog import catalog_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(catalog_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def get_engine(app: Flask | None = None):
    """Reconciliation engine bound to app (defaults to current_app)."""
    if app is None:
        from flask import current_app
        app = current_app
    return app.extensions[ENGINE_EXTENSION_KEY]
