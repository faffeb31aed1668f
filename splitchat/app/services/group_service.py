"""
services/group_service.py — Group and membership business logic.

Authorization rules:
  - Reading a group:   members only (FORBIDDEN 403)
  - Adding a member:   group admin only
  - Removing a member: admin may remove anyone; a member may remove self

Membership changes do not touch expense rows. An entry whose payer or
debtor has left is kept and simply skipped by the balance calculator.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from splitchat.app.errors import AppError, ErrorCode
from splitchat.app.models.group import Group
from splitchat.app.models.membership import Membership
from splitchat.app.models.user import User
from splitchat.app.services import user_service


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: str, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _get_membership(group_id: str, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


# ── Public service functions ───────────────────────────────────────────────

def create_group(name: str, admin_username: str, session: Session) -> Group:
    """
    Creates a new group. The creator becomes the admin and first member.

    Raises:
      AppError(USER_NOT_FOUND, 404) — the caller has not registered a username
    """
    admin = user_service.get_user_or_404(admin_username, session)

    group = Group(name=name, admin_user_id=admin.id)
    session.add(group)
    session.flush()  # populate group.id before creating membership

    session.add(Membership(user_id=admin.id, group_id=group.id))
    session.flush()
    return group


def add_member(
        group_id: str,
        caller: str,
        username: str,
        session: Session,
) -> User:
    """
    Adds a user to a group. Only the group admin may call this.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(FORBIDDEN, 403)        — caller is not the group admin
      AppError(USER_NOT_FOUND, 404)   — target user does not exist
      AppError(ALREADY_MEMBER, 409)   — user is already in the group
    """
    group = _get_group_or_404(group_id, session)

    if caller != group.admin.username:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the group admin may add members.",
            403,
        )

    target = user_service.get_user_or_404(username, session)
    if _get_membership(group_id, target.id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"{username} is already a member of this group.",
            409,
            field="username",
        )

    session.add(Membership(user_id=target.id, group_id=group_id))
    session.flush()
    return target


def remove_member(
        group_id: str,
        caller: str,
        username: str,
        session: Session,
) -> None:
    """
    Removes a user from a group (or lets a member leave).

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(FORBIDDEN, 403)        — caller not a member, or not allowed to remove this user
      AppError(USER_NOT_FOUND, 404)   — target user is not a member of the group
    """
    group = _get_group_or_404(group_id, session)

    caller_user = user_service.get_user_or_404(caller, session)
    if _get_membership(group_id, caller_user.id, session) is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )

    is_admin = caller_user.id == group.admin_user_id
    if not (is_admin or caller == username):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you are the admin.",
            403,
        )

    target = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    membership = _get_membership(group_id, target.id, session) if target is not None else None
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"{username} is not a member of this group.",
            404,
        )

    session.delete(membership)
    session.flush()
