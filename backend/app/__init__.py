"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise extensions (SQLAlchemy, Marshmallow, Mail) via init_app()
  3. Register the notifier in app.extensions["notifier"]
  4. Register all route blueprints under /api/v1, plus /health
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a custom JSON provider to serialise Decimal as string
     (monetary amounts are transmitted as strings, never JS numbers)
  7. Register the `flask init-db` command
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

import click
from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("backend").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from backend.app.extensions import db, ma, mail
    db.init_app(app)
    ma.init_app(app)
    mail.init_app(app)

    from backend.app.services.notifications import build_notifier
    app.extensions["notifier"] = build_notifier(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated before
    # create_all() runs. The side effect is the point.
    with app.app_context():
        from backend.app.models import (  # noqa: F401
            expense,
            group,
            membership,
            reminder_preference,
            settlement,
            split,
            user,
        )

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)
    _register_cors(app)
    _register_commands(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "/" and "/<int:group_id>").
    """
    from backend.app.routes.contacts import contacts_bp
    from backend.app.routes.dashboard import dashboard_bp
    from backend.app.routes.expenses import expenses_bp
    from backend.app.routes.groups import groups_bp
    from backend.app.routes.reminders import reminders_bp
    from backend.app.routes.settlements import settlements_bp
    from backend.app.routes.users import users_bp

    app.register_blueprint(users_bp,       url_prefix="/api/v1/users")
    app.register_blueprint(groups_bp,      url_prefix="/api/v1/groups")
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1/expenses")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1/settlements")
    app.register_blueprint(dashboard_bp,   url_prefix="/api/v1/dashboard")
    app.register_blueprint(contacts_bp,    url_prefix="/api/v1/contacts")
    app.register_blueprint(reminders_bp,   url_prefix="/api/v1/reminders")

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"data": {"status": "ok"}, "warnings": []}), 200


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD / registered-code responses (400)
      HTTPException   → werkzeug 404/405/... in the same envelope
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from backend.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, ledger, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        if error.http_status >= 500:
            app.logger.error("AppError %s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST schema error only: one error, not many.

        The error code from the ValidationError message is used directly if it
        matches a known ErrorCode constant; otherwise INVALID_FIELD is used.
        """
        messages = error.messages  # e.g. {"amount": ["INVALID_AMOUNT_PRECISION"]}

        field = None
        raw_message = "Invalid input."

        if isinstance(messages, dict):
            field, raw_message = _first_error(messages)
        elif isinstance(messages, list) and messages:
            raw_message = str(messages[0])

        code = _classify(raw_message)
        response_body = {
            "error": {
                "code": code,
                "message": _code_to_message(code) if raw_message == code else raw_message,
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        codes = {
            400: ErrorCode.INVALID_FIELD,   # e.g. malformed JSON body
            404: ErrorCode.ROUTE_NOT_FOUND,
            405: ErrorCode.METHOD_NOT_ALLOWED,
        }
        code = codes.get(error.code, ErrorCode.INTERNAL_ERROR)
        return jsonify({
            "error": {
                "code": code,
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.
        The full traceback is logged to the application logger.
        """
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _first_error(messages: dict, prefix: str = "") -> tuple[str | None, str]:
    """
    Walks marshmallow's nested messages to the first leaf.

    {"splits": {0: {"amount": ["..."]}}} → ("splits.0.amount", "...")
    """
    for key, value in messages.items():
        name = None if key == "_schema" else f"{prefix}{key}"
        if isinstance(value, dict):
            return _first_error(value, f"{name}." if name else "")
        if isinstance(value, list):
            return name, str(value[0]) if value else "Invalid value."
        return name, str(value)
    return None, "Invalid input."


def _classify(raw_message: str) -> str:
    from backend.app.errors import ErrorCode

    if raw_message in vars(ErrorCode).values():
        return raw_message
    if raw_message.startswith("Missing data for required field"):
        return ErrorCode.MISSING_FIELD
    return ErrorCode.INVALID_FIELD


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with the identity headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-User-Email, X-User-Name, X-User-Image"
            )

        return response


def _register_commands(app: Flask) -> None:

    @app.cli.command("init-db")
    @click.option("--drop", is_flag=True, help="Drop all tables first.")
    def init_db(drop: bool) -> None:
        """Create every table from the models."""
        from backend.app.extensions import db

        if drop:
            db.drop_all()
        db.create_all()
        click.echo("Database tables created.")


def _code_to_message(code: str) -> str:
    """
    Human-readable default message for a known error code, used when a
    ValidationError message IS the code constant itself.
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_SPLIT_TYPE": "split_type must be 'equal', 'percentage' or 'exact'.",
        "INVALID_SCOPE_TYPE": "scope_type must be 'group' or 'contact'.",
        "INVALID_FREQUENCY": "frequency must be 'weekly' or 'monthly'.",
        "DUPLICATE_SPLIT_USER": "The same user_id appears more than once in the splits array.",
    }
    return _messages.get(code, "Invalid input.")
