"""
models/group_member.py — GroupMember table definition.

One row per participant seat. The initiator owns INVITES_PER_GROUP extra rows,
each carrying an invite_code; redeeming a code stamps redeemed_by_tg_id /
redeemed_at on that row and adds a plain row for the redeeming user.

Consequently (group_id, user_tg_id) is NOT unique here: the initiator appears
once per issued code. The one-payment-per-participant rule is enforced by
UNIQUE(group_id, user_tg_id) on payments instead.
No business logic. No imports from services or routes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from triobuy.app.extensions import db


class GroupMember(db.Model):
    __tablename__ = "group_members"

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    user_tg_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.tg_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Unique system-wide; NULL on rows created by redemption.
    invite_code: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        unique=True,
    )

    # Consumption marker for invite_code. Written only through the
    # compare-and-set in invite_service.redeem().
    redeemed_by_tg_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("users.tg_id", ondelete="RESTRICT"),
        nullable=True,
    )

    redeemed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="memberships",
        foreign_keys=[user_tg_id],
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="members",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupMember id={self.id} "
            f"group_id={self.group_id} "
            f"user_tg_id={self.user_tg_id} "
            f"paid={self.paid}>"
        )
