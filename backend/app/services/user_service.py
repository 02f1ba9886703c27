"""
services/user_service.py — User lookup and find-or-create.

Identity is external: whoever fronts the API passes the signed-in user's
email (and optionally name and avatar) in headers. The first request with a
new email creates the user; later requests refresh name and avatar.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the caller's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.user import User

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image_url": user.image_url,
    }


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _default_name(email: str) -> str:
    return email.split("@", 1)[0] or "Anonymous"


def get_user_or_404(user_id: int, session: Session) -> User:
    """Returns the User or raises USER_NOT_FOUND (404)."""
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
            404,
        )
    return user


def find_by_email(email: str, session: Session) -> User | None:
    return session.execute(
        select(User).where(User.email == normalize_email(email))
    ).scalar_one_or_none()


def get_or_create_user(
        email: str | None,
        session: Session,
        name: str | None = None,
        image_url: str | None = None,
) -> tuple[User, bool]:
    """
    Finds the user by email, creating them if needed.

    A supplied name or image_url overwrites the stored one when it differs;
    a missing one never clears it.

    Returns (user, changed) where changed is True if anything was written.

    Raises:
        AppError(IDENTITY_MISSING, 401) — no email.
    """
    email = normalize_email(email)
    if not email:
        raise AppError(
            ErrorCode.IDENTITY_MISSING,
            "Identify yourself with the X-User-Email header.",
            401,
        )

    name = (name or "").strip() or None
    image_url = (image_url or "").strip() or None

    user = find_by_email(email, session)
    if user is None:
        user = User(email=email, name=name or _default_name(email), image_url=image_url)
        session.add(user)
        session.flush()
        logger.info("created user id=%s email=%s", user.id, email)
        return user, True

    changed = False
    if name and name != user.name:
        user.name = name
        changed = True
    if image_url and image_url != user.image_url:
        user.image_url = image_url
        changed = True
    if changed:
        session.flush()
    return user, changed


def ensure_user(email: str, session: Session, name: str | None = None,
                image_url: str | None = None) -> dict:
    """POST /users/ensure — find-or-create and return the serialised user."""
    user, _ = get_or_create_user(email, session, name=name, image_url=image_url)
    return serialize_user(user)


def search_users(query: str, caller_id: int, session: Session) -> list[dict]:
    """
    Case-insensitive substring match on name or email, excluding the caller.
    The schema guarantees at least two characters.
    """
    pattern = f"%{query.strip().lower()}%"
    stmt = (
        select(User)
        .where(
            User.id != caller_id,
            or_(
                func.lower(User.name).like(pattern),
                func.lower(User.email).like(pattern),
            ),
        )
        .order_by(User.name.asc(), User.id.asc())
        .limit(SEARCH_LIMIT)
    )
    return [serialize_user(u) for u in session.execute(stmt).scalars().all()]
