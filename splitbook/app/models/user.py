"""
models/user.py — User directory table definition.

The user directory is an external collaborator as far as the ledger engine is
concerned; this table is its storage for this deployment. Credentials are not
stored here.

No business logic. No imports from services or routes.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitbook.app.extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_users_name_nonempty",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    name: Mapped[str] = mapped_column(String(120), nullable=False)

    # Normalized form: digits with an optional leading "+".
    mobile: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Digits-only form of `mobile`. Invited users are matched on this column.
    mobile_key: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    # Expo push address. NULL means the user cannot be notified.
    push_token: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="user",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} name={self.name!r}>"
