"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy, marshmallow and Flask-Mail as module-level objects so
they can be imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db`, `ma` or `mail` from here wherever needed.

    from backend.app.extensions import db, ma

Do not pass the app object directly to SQLAlchemy(), Marshmallow() or Mail()
at import time — that would prevent running tests with a separate test app.
"""

from flask_mail import Mail
from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Marshmallow instance — available for SQLAlchemy model serialization helpers.
#
# IMPORTANT — schema inheritance rule:
#   All validation Schema classes (in app/schemas/) must inherit from
#   marshmallow.Schema directly, NOT from ma.Schema.
#
#   ma.Schema requires an active Flask application context. Unit tests in
#   tests/unit/ run without a Flask app.
#
#   Correct:
#       from marshmallow import Schema, fields
#       class CreateExpenseSchema(Schema): ...
#
#   Incorrect:
#       class CreateExpenseSchema(ma.Schema): ...   # breaks unit tests
ma = Marshmallow()

# Only MailNotifier (services/notifications.py) talks to this directly.
mail = Mail()
