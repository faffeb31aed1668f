"""
models/expense.py — Expense entry table definition.

One row per ledger entry. Exactly one debtor model is populated:
  - `debtor`         primary model (one debtor per entry)
  - `split_between`  legacy even-split model (JSON list of usernames)

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - payer / debtor / added_by are usernames, matching the wire format. An
    entry may outlive its participants' memberships; the balance calculator
    skips non-members.
  - `expense_id` is the client-generated id, unique within its event.
    Writes are additive INSERTs, so concurrent adds commute.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitchat.app.extensions import db


class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(item_name)) > 0",
            name="ck_expenses_item_name_nonempty",
        ),
        UniqueConstraint("event_id", "expense_id", name="uq_expenses_event_expense"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # NUMERIC(12, 2). Input with >2 decimal places is rejected by the schema
    # (INVALID_AMOUNT_PRECISION), not rounded.
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    payer: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    debtor: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    split_between: Mapped[list[str] | None] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
    )

    added_by: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    event: Mapped["Event"] = relationship(  # noqa: F821
        "Event",
        back_populates="expenses",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"expense_id={self.expense_id!r} "
            f"amount={self.amount} "
            f"payer={self.payer!r}>"
        )
