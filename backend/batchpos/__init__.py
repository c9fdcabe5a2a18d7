# backend/batchpos/__init__.py
from __future__ import annotations

import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Bound every remote call; a timeout becomes a ConnectivityError
    from .services.concurrency import engine_options
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options(app.config["SQLALCHEMY_DATABASE_URI"], app.config["REMOTE_TIMEOUT_SECONDS"]),
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One local queue per process, owned by the app
    from .services.queue_service import SaleQueue
    queue = SaleQueue(app.config["QUEUE_DATABASE_URL"])
    app.extensions["sale_queue"] = queue

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.batches import batches_bp
    from .routes.sales import sales_bp
    from .routes.queue import queue_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(batches_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(queue_bp)

    # A sync that died mid-flight leaves entries in "syncing"; recover them now
    with app.app_context():
        queue.reset_stale(app.config["SYNC_STALE_THRESHOLD_SECONDS"])

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
