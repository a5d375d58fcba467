"""
models/user.py — User table definition.

Keyed by the Telegram user id. Rows are upserted on every successful init-data
verification (display attributes are overwritten, language is kept).
No business logic. No imports from services or routes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from triobuy.app.extensions import db


SUPPORTED_LANGUAGES: tuple[str, ...] = ("en", "ru", "uz")
DEFAULT_LANGUAGE = "en"


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "language IN ('en', 'ru', 'uz')",
            name="ck_users_language_supported",
        ),
    )

    # Platform identity key; never generated locally.
    tg_id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
    )

    username: Mapped[str | None] = mapped_column(String(64), nullable=True)

    first_name: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        default="",
        server_default="",
    )

    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)

    language: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        default=DEFAULT_LANGUAGE,
        server_default=DEFAULT_LANGUAGE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["GroupMember"]] = relationship(  # noqa: F821
        "GroupMember",
        back_populates="user",
        foreign_keys="[GroupMember.user_tg_id]",
    )

    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="user",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User tg_id={self.tg_id} username={self.username!r}>"
