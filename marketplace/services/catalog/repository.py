"""
Catalog read access for order placement.

Products, stock levels and vouchers belong to the catalog. Order placement
only needs to look them up; stock and voucher usage are adjusted by
:class:`~marketplace.services.orders.repository.OrderRepository` inside the
order transaction.
"""

import uuid
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import RepositoryError
from marketplace.core.logging import get_logger
from marketplace.database.models.catalog import Product, Voucher

logger = get_logger(__name__)


class CatalogRepository:
    """Read-only lookups of products and vouchers."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_products(
        self, product_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, Product]:
        """
        Fetch active products by id.

        Args:
            product_ids: Product identifiers to resolve

        Returns:
            Mapping of product id to product; unknown or inactive ids are absent
        """
        ids = list(set(product_ids))
        if not ids:
            return {}

        try:
            stmt = select(Product).where(
                Product.id.in_(ids),
                Product.is_active.is_(True),
            )
            result = await self.session.execute(stmt)
            products = {product.id: product for product in result.scalars().all()}

            logger.debug(
                "Products resolved",
                requested=len(ids),
                found=len(products),
            )
            return products

        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch products",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RepositoryError(
                "Failed to fetch products",
                product_count=len(ids),
                error=str(e),
            ) from e

    async def get_voucher_by_code(self, code: str) -> Optional[Voucher]:
        """Look up a voucher by code, case insensitively."""
        try:
            stmt = select(Voucher).where(func.upper(Voucher.code) == code.strip().upper())
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch voucher",
                voucher_code=code,
                error=str(e),
            )
            raise RepositoryError(
                "Failed to fetch voucher",
                voucher_code=code,
                error=str(e),
            ) from e
