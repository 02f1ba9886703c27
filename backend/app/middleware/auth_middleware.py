"""
middleware/auth_middleware.py — Header-based identity decorator.

The @require_user decorator:
  1. Reads X-User-Email (required), X-User-Name and X-User-Image
  2. Finds or creates the user (user_service.get_or_create_user)
  3. Commits if the user row was created or refreshed
  4. Attaches user_id (int) and the User to flask.g for the request

Responsibility boundary:
  - This middleware establishes identity only (401 IDENTITY_MISSING).
  - It does NOT perform business authorization (group membership, admin
    role, settlement party). That belongs in the service layer (403).
  - Services receive user_id as a plain integer argument, with no knowledge
    of HTTP headers.
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import g, request

from backend.app.extensions import db
from backend.app.services import user_service

EMAIL_HEADER = "X-User-Email"
NAME_HEADER  = "X-User-Name"
IMAGE_HEADER = "X-User-Image"


def require_user(f: Callable) -> Callable:
    """
    Route decorator that resolves the calling user from request headers.

    Raises AppError(IDENTITY_MISSING, 401) when X-User-Email is absent; the
    global error handler converts it to JSON. Routes never catch AppError.

    Usage:
        @groups_bp.get("/")
        @require_user
        def list_groups():
            user_id = g.user_id  # always an int when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _resolve_current_user()
        return f(*args, **kwargs)

    return decorated


def _resolve_current_user() -> None:
    """
    Separated from the decorator wrapper so tests can call it directly
    inside a test request context.
    """
    user, changed = user_service.get_or_create_user(
        request.headers.get(EMAIL_HEADER),
        db.session,
        name=request.headers.get(NAME_HEADER),
        image_url=request.headers.get(IMAGE_HEADER),
    )
    if changed:
        db.session.commit()

    g.user = user
    g.user_id = user.id
