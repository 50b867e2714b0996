# backend/codebook/__init__.py
import uuid

from flask import Flask, current_app, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import CodebookError, Internal
from .extensions import db, migrate, init_clients


def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # External clients (payments, notifier, shipping), one set per app
    init_clients(app)

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.users import users_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.notifications import notifications_bp
    from .routes.admin import admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(admin_bp)

    @app.before_request
    def answer_preflight():
        if request.method == "OPTIONS":
            return app.make_default_options_response()
        return None

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        return response

    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(CodebookError)
    def handle_codebook_error(e: CodebookError):
        if e.status_code >= 500:
            current_app.logger.error("%s on %s %s: %s", type(e).__name__, request.method, request.path, e.message)
        return e.to_dict(), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return {"error": e.name}, e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        correlation_id = uuid.uuid4().hex
        current_app.logger.exception("Unhandled error %s on %s %s", correlation_id, request.method, request.path)
        body = Internal().to_dict()
        body["correlation_id"] = correlation_id
        return body, 500
