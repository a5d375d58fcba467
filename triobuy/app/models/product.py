"""
models/product.py — Product catalog table.

The catalog is maintained outside this service (admin tooling / migrations);
the core only reads a product's discounted_price when opening payments.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from triobuy.app.extensions import db


class Product(db.Model):
    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("price > 0", name="ck_products_price_positive"),
        CheckConstraint(
            "discounted_price > 0",
            name="ck_products_discounted_price_positive",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # NUMERIC(12, 2). Never Float.
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # What each of the three participants pays.
    discounted_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Product id={self.id} name={self.name!r} "
            f"discounted_price={self.discounted_price}>"
        )
