"""
models/group.py — Group table definition and group-buy domain constants.

State machine: forming → completed | failed. Both outcomes are terminal; the
transition is performed only by group_service.evaluate().
No business logic. No imports from services or routes.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from triobuy.app.extensions import db


# ── Domain constants ───────────────────────────────────────────────────────
# Fixed by the product, not configurable per group.

GROUP_SIZE = 3                       # paid participants needed to complete
GROUP_WINDOW = timedelta(hours=24)   # from start_time to deadline
INVITES_PER_GROUP = 2                # codes issued to the initiator


class GroupStatus(str, enum.Enum):
    FORMING   = "forming"
    COMPLETED = "completed"
    FAILED    = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not GroupStatus.FORMING


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g. 'forming'), not names ('FORMING')."""
    return [member.value for member in enum_cls]


class Group(db.Model):
    __tablename__ = "groups"

    __table_args__ = (
        # The expiry sweep scans forming groups by start_time.
        Index("idx_groups_status_start", "status", "start_time"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    initiator_tg_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.tg_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
    )

    status: Mapped[GroupStatus] = mapped_column(
        Enum(
            GroupStatus,
            name="group_status",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=GroupStatus.FORMING,
    )

    # Set once at creation; the 24h deadline is derived from it.
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Set together with the terminal status.
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    initiator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[initiator_tg_id],
    )

    product: Mapped["Product"] = relationship("Product")  # noqa: F821

    members: Mapped[list["GroupMember"]] = relationship(  # noqa: F821
        "GroupMember",
        back_populates="group",
        order_by="GroupMember.id",
    )

    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="group",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} status={self.status.value!r}>"
