"""Initial schema — users, products, groups, group_members, payments.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order (FK dependency order):
  users → products → groups → group_members → payments

Status/provider columns are VARCHAR with CHECK constraints rather than native
PostgreSQL enums; the models map them with Enum(native_enum=False).

ON DELETE policies:
  every FK → RESTRICT (ledger rows are never cascaded away)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration, no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: users ──────────────────────────────────────────────────────
    # Keyed by the Telegram user id, which is assigned by Telegram.

    op.create_table(
        "users",
        sa.Column("tg_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("username", sa.String(64), nullable=True),
        sa.Column("first_name", sa.String(128), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("language", sa.String(8), nullable=False, server_default="en"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("tg_id", name="pk_users"),
        sa.CheckConstraint(
            "language IN ('en', 'ru', 'uz')",
            name="ck_users_language_supported",
        ),
    )

    # ── Step 2: products ───────────────────────────────────────────────────

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("discounted_price", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("TRUE"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sa.CheckConstraint("price > 0", name="ck_products_price_positive"),
        sa.CheckConstraint(
            "discounted_price > 0",
            name="ck_products_discounted_price_positive",
        ),
    )

    # ── Step 3: groups ─────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "initiator_tg_id",
            sa.BigInteger(),
            sa.ForeignKey("users.tg_id", ondelete="RESTRICT", name="fk_groups_initiator"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="RESTRICT", name="fk_groups_product"),
            nullable=False,
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default="forming"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint(
            "status IN ('forming', 'completed', 'failed')",
            name="ck_groups_status",
        ),
    )

    # ── Step 4: group_members ──────────────────────────────────────────────
    # invite_code is UNIQUE; NULL for seats created by redemption.

    op.create_table(
        "group_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_group_members_group"),
            nullable=False,
        ),
        sa.Column(
            "user_tg_id",
            sa.BigInteger(),
            sa.ForeignKey("users.tg_id", ondelete="RESTRICT", name="fk_group_members_user"),
            nullable=False,
        ),
        sa.Column("invite_code", sa.String(32), nullable=True),
        sa.Column(
            "redeemed_by_tg_id",
            sa.BigInteger(),
            sa.ForeignKey(
                "users.tg_id", ondelete="RESTRICT", name="fk_group_members_redeemed_by",
            ),
            nullable=True,
        ),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "paid",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_group_members"),
        sa.UniqueConstraint("invite_code", name="uq_group_members_invite_code"),
    )

    # ── Step 5: payments ───────────────────────────────────────────────────
    # One payment per (group, user). transaction_id is written once.

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_payments_group"),
            nullable=False,
        ),
        sa.Column(
            "user_tg_id",
            sa.BigInteger(),
            sa.ForeignKey("users.tg_id", ondelete="RESTRICT", name="fk_payments_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("transaction_id", sa.String(128), nullable=True),
        sa.Column("provider", sa.String(16), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_payments"),
        sa.UniqueConstraint("group_id", "user_tg_id", name="uq_payments_group_user"),
        sa.UniqueConstraint("transaction_id", name="uq_payments_transaction_id"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.CheckConstraint("status IN ('pending', 'paid')", name="ck_payments_status"),
        sa.CheckConstraint(
            "provider IS NULL OR provider IN ('payme', 'click')",
            name="ck_payments_provider",
        ),
    )

    # ── Step 6: indexes ────────────────────────────────────────────────────

    op.create_index("ix_groups_initiator_tg_id", "groups", ["initiator_tg_id"])
    # Serves the expire-groups sweep: forming groups ordered by start_time.
    op.create_index("idx_groups_status_start", "groups", ["status", "start_time"])
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_tg_id", "group_members", ["user_tg_id"])
    op.create_index("ix_payments_group_id", "payments", ["group_id"])
    op.create_index("ix_payments_user_tg_id", "payments", ["user_tg_id"])


def downgrade() -> None:
    op.drop_index("ix_payments_user_tg_id", table_name="payments")
    op.drop_index("ix_payments_group_id", table_name="payments")
    op.drop_index("ix_group_members_user_tg_id", table_name="group_members")
    op.drop_index("ix_group_members_group_id", table_name="group_members")
    op.drop_index("idx_groups_status_start", table_name="groups")
    op.drop_index("ix_groups_initiator_tg_id", table_name="groups")

    op.drop_table("payments")
    op.drop_table("group_members")
    op.drop_table("groups")
    op.drop_table("products")
    op.drop_table("users")
