"""
models/event.py — Event (outing) table definition.

A group has at most one ACTIVE event: the row with cancelled_at IS NULL.
Cancelling an event sets cancelled_at instead of deleting the row, so the
expense history of past outings stays in the backing store (archive).

`event_id` is the client-facing id carried in ledger messages; `id` is the
surrogate key expenses hang off.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitchat.app.extensions import db


class Event(db.Model):
    __tablename__ = "events"

    __table_args__ = (
        UniqueConstraint("group_id", "event_id", name="uq_events_group_event"),
        # at most one active event per group
        Index(
            "idx_events_active",
            "group_id",
            unique=True,
            postgresql_where=text("cancelled_at IS NULL"),
            sqlite_where=text("cancelled_at IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    event_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    group_id: Mapped[str] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    # Free-form, as entered ("2024-11-02", "Saturday night").
    date: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="",
        server_default="",
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default="",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # NULL = active; NOT NULL = cancelled (archived).
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="events",
    )

    # Ordered by insertion so the ledger sees expenses in the order added.
    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Expense.id",
    )

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Event id={self.id} "
            f"event_id={self.event_id!r} "
            f"group_id={self.group_id} "
            f"cancelled={self.is_cancelled}>"
        )
