"""
services/user_service.py — User registration and profile updates.

Identity itself comes from the caller (the X-Username header); this module
only keeps the users table that memberships and payment handles hang off.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from splitchat.app.errors import AppError, ErrorCode
from splitchat.app.models.user import User


def get_user_or_404(username: str, session: Session) -> User:
    user = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {username} does not exist.",
            404,
        )
    return user


def create_user(data: dict, session: Session) -> User:
    """
    Registers a username.

    Raises:
      AppError(DUPLICATE_USERNAME, 409) — username already taken
    """
    existing = session.execute(
        select(User).where(User.username == data["username"])
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{data['username']}' is already taken.",
            409,
            field="username",
        )

    user = User(
        username=data["username"],
        payment_handle=data.get("payment_handle"),
        profile_picture=data.get("profile_picture"),
    )
    session.add(user)
    session.flush()
    return user


def update_user(username: str, caller: str, data: dict, session: Session) -> User:
    """
    Updates the caller's own payment handle / profile picture.

    Raises:
      AppError(FORBIDDEN, 403)      — editing someone else's profile
      AppError(USER_NOT_FOUND, 404)
    """
    if username != caller:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only edit your own profile.",
            403,
        )

    user = get_user_or_404(username, session)
    if "payment_handle" in data:
        user.payment_handle = data["payment_handle"]
    if "profile_picture" in data:
        user.profile_picture = data["profile_picture"]
    session.flush()
    return user


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "payment_handle": user.payment_handle,
        "profile_picture": user.profile_picture,
    }
