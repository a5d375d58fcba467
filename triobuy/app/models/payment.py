"""
models/payment.py — Payment table definition.

One Payment per participant, created when the participant joins. Tracks the
member's obligation independently of the gateway's own transaction record.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - status only moves pending → paid (payment_service.apply_outcome).
  - transaction_id is written once (payment_service.bind_transaction) and is
    unique, so a callback resolves to at most one payment.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from triobuy.app.extensions import db
from triobuy.app.models.group import _enum_values


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID    = "paid"


class PaymentProvider(str, enum.Enum):
    PAYME = "payme"
    CLICK = "click"


class Payment(db.Model):
    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        UniqueConstraint("group_id", "user_tg_id", name="uq_payments_group_user"),
    )

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

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        Enum(
            PaymentStatus,
            name="payment_status",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    transaction_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        unique=True,
    )

    provider: Mapped[PaymentProvider | None] = mapped_column(
        Enum(
            PaymentProvider,
            name="payment_provider",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="payments",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="payments",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Payment id={self.id} "
            f"group_id={self.group_id} "
            f"user_tg_id={self.user_tg_id} "
            f"status={self.status.value!r}>"
        )
