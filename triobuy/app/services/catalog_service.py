"""
services/catalog_service.py — Product lookups for pricing.

The group price is the product's discounted_price. When the client does not
name a product, the first active product is used.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.product import Product


def get_product(product_id: int | None, session: Session) -> Product:
    """
    Returns the requested active product, or the default one.

    Raises:
      AppError(PRODUCT_NOT_FOUND, 404) — unknown / inactive id, or empty catalog.
    """
    if product_id is not None:
        product = session.get(Product, product_id)
        if product is None or not product.is_active:
            raise AppError(
                ErrorCode.PRODUCT_NOT_FOUND,
                f"Product {product_id} does not exist.",
                404,
                field="product_id",
            )
        return product

    product = session.execute(
        select(Product)
        .where(Product.is_active.is_(True))
        .order_by(Product.id.asc())
        .limit(1)
    ).scalar_one_or_none()

    if product is None:
        raise AppError(
            ErrorCode.PRODUCT_NOT_FOUND,
            "No product is currently available for group purchase.",
            404,
        )
    return product
