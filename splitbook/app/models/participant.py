"""
models/participant.py — Expense participant table definition.

One row per (expense, user). No business logic.

  - expense_id is ON DELETE CASCADE; participant rows are owned by their expense.
  - UNIQUE(expense_id, user_id): a user appears at most once per expense.
  - share is NULL for EQUAL expenses and a non-negative amount for UNEQUAL ones.
    The split normalizer guarantees sum(share) is within 0.01 of the amount.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitbook.app.extensions import db


class ExpenseParticipant(db.Model):
    __tablename__ = "expense_participants"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_participants_expense_user"),
        CheckConstraint("share IS NULL OR share >= 0", name="ck_participants_share_nonneg"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[str] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    share: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Order of the participant within split_between.
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="participants",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseParticipant expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"share={self.share}>"
        )
