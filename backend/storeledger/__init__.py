# backend/storeledger/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .logging_config import configure_logging


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Tenant isolation on every ORM Session
    from .services.tenant_guard import install_tenant_guard
    install_tenant_guard()

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from .routes import ALL_BLUEPRINTS
    for blueprint in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint)

    allowed_origins = set(app.config.get("CORS_ORIGINS") or ())

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, Idempotency-Key, X-Tenant-Id, X-User-Id"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
