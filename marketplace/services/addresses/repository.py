"""Address book read access."""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import RepositoryError
from marketplace.core.logging import get_logger
from marketplace.database.models.catalog import Address

logger = get_logger(__name__)


class AddressRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_buyer_address(
        self,
        buyer_id: uuid.UUID,
        address_id: Optional[uuid.UUID] = None,
    ) -> Optional[Address]:
        """
        Resolve the address an order ships to.

        Args:
            buyer_id: Buyer the address must belong to
            address_id: Explicit address; when omitted the buyer's default
                address is used

        Returns:
            The address, or None when no matching address exists
        """
        try:
            stmt = select(Address).where(Address.user_id == buyer_id)
            if address_id is not None:
                stmt = stmt.where(Address.id == address_id)
            else:
                stmt = stmt.where(Address.is_default.is_(True))

            result = await self.session.execute(stmt.limit(1))
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch address",
                buyer_id=str(buyer_id),
                address_id=str(address_id) if address_id else None,
                error=str(e),
            )
            raise RepositoryError(
                "Failed to fetch address",
                buyer_id=str(buyer_id),
                error=str(e),
            ) from e
