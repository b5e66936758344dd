# backend/configurator/__init__.py
import logging

from flask import Flask, request, jsonify

from .config import Config
from .extensions import db, migrate


def create_app(config_object=None) -> Flask:
    """
    Application factory.

    config_object may be a class/object (loaded with from_object) or a dict
    of overrides applied on top of Config.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if isinstance(config_object, dict):
        app.config.update(config_object)
    elif config_object is not None:
        app.config.from_object(config_object)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.admin import admin_bp
    from .routes.customers import customers_bp
    from .routes.machine_groups import machine_groups_bp
    from .routes.machines import machines_bp
    from .routes.configurations import configurations_bp
    from .routes.configuration_tabs import configuration_tabs_bp
    from .routes.quotations import quotations_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(machine_groups_bp)
    app.register_blueprint(machines_bp)
    app.register_blueprint(configurations_bp)
    app.register_blueprint(configuration_tabs_bp)
    app.register_blueprint(quotations_bp)

    @app.errorhandler(500)
    def internal_error(error):
        original = getattr(error, "original_exception", None)
        app.logger.exception("Unhandled error on %s %s", request.method, request.path, exc_info=original)
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ORIGINS") or [])
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
