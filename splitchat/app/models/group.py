"""
models/group.py — Group table definition.

Group ids are opaque strings (uuid4 hex) because they double as socket
room names and ledger keys on the client.

FK policy: admin_user_id ON DELETE RESTRICT — a user who administers a
group cannot be deleted while the group exists.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitchat.app.extensions import db


def _new_group_id() -> str:
    return uuid.uuid4().hex


class Group(db.Model):
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=_new_group_id,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    admin_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    admin: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[admin_user_id],
    )

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    events: Mapped[list["Event"]] = relationship(  # noqa: F821
        "Event",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r}>"
