"""
Order data access repository with transaction support.

Order creation is a single transaction: stock is decremented with
conditional updates, the voucher redemption is counted, and the order is
inserted together with its line items. Any failure rolls the whole unit
back so partially created orders are never visible.

Status changes use single-row conditional updates guarded by the observed
status, so two concurrent writers can never both apply a transition.
"""

import uuid
from decimal import Decimal
from typing import Any, Collection, Optional, Sequence

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import (
    InsufficientInventoryError,
    InvalidVoucherError,
    RepositoryError,
)
from marketplace.core.logging import get_logger
from marketplace.database.models.catalog import Inventory, Voucher
from marketplace.database.models.order import LineItem, Order
from marketplace.services.orders.enums import LineItemStatus, OrderStatus

logger = get_logger(__name__)


class OrderRepository:
    """
    Repository for order and line item persistence.

    Methods that complete a unit of work commit it; the conditional status
    helpers only execute their statement so the caller can group several of
    them and then call :meth:`commit`.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_order_with_items(
        self,
        buyer_id: uuid.UUID,
        address_id: uuid.UUID,
        shipping_address: dict[str, Any],
        subtotal: Decimal,
        discount_amount: Decimal,
        total_price: Decimal,
        items: Sequence[dict[str, Any]],
        buyer_email: Optional[str] = None,
        voucher: Optional[Voucher] = None,
    ) -> Order:
        """
        Create an order with its line items atomically.

        Args:
            buyer_id: Buyer placing the order
            address_id: Resolved shipping address id
            shipping_address: Address snapshot stored on the order
            subtotal: Priced subtotal
            discount_amount: Voucher discount actually granted
            total_price: Amount due
            items: Dicts with product_id, seller_id, quantity and unit_price
            buyer_email: Contact snapshot for notifications
            voucher: Voucher to count a redemption for, when it was applied

        Returns:
            Created order with line items loaded

        Raises:
            InsufficientInventoryError: If stock cannot cover a line
            InvalidVoucherError: If the voucher ran out of redemptions
            RepositoryError: If the database rejects the order
        """
        try:
            logger.info(
                "Creating order with items",
                buyer_id=str(buyer_id),
                item_count=len(items),
                total_price=str(total_price),
            )

            for item in items:
                await self._reserve_stock(item["product_id"], item["quantity"])

            if voucher is not None:
                await self._redeem_voucher(voucher)

            order = Order(
                buyer_id=buyer_id,
                buyer_email=buyer_email,
                address_id=address_id,
                shipping_address=shipping_address,
                subtotal=subtotal,
                discount_amount=discount_amount,
                total_price=total_price,
                voucher_code=voucher.code if voucher is not None else None,
                status=OrderStatus.PENDING,
                line_items=[
                    LineItem(
                        product_id=item["product_id"],
                        seller_id=item["seller_id"],
                        quantity=item["quantity"],
                        unit_price_snapshot=item["unit_price"],
                        status=LineItemStatus.PENDING,
                    )
                    for item in items
                ],
            )

            self.session.add(order)
            await self.session.flush()
            await self.session.refresh(order, ["line_items", "payment"])
            await self.session.commit()

            logger.info(
                "Order created successfully",
                order_id=str(order.id),
                buyer_id=str(buyer_id),
                item_count=len(order.line_items),
            )

            return order

        except (InsufficientInventoryError, InvalidVoucherError):
            await self.session.rollback()
            raise
        except IntegrityError as e:
            await self.session.rollback()
            logger.error(
                "Order creation failed - integrity error",
                buyer_id=str(buyer_id),
                error=str(e),
            )
            raise RepositoryError(
                "Order creation failed due to data integrity violation",
                buyer_id=str(buyer_id),
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Order creation failed - database error",
                buyer_id=str(buyer_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RepositoryError(
                "Order creation failed due to database error",
                buyer_id=str(buyer_id),
                error=str(e),
            ) from e

    async def _reserve_stock(self, product_id: uuid.UUID, quantity: int) -> None:
        stmt = (
            update(Inventory)
            .where(
                Inventory.product_id == product_id,
                Inventory.quantity >= quantity,
            )
            .values(quantity=Inventory.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            logger.warning(
                "Insufficient inventory",
                product_id=str(product_id),
                requested=quantity,
            )
            raise InsufficientInventoryError(product_id, requested=quantity)

    async def _redeem_voucher(self, voucher: Voucher) -> None:
        stmt = (
            update(Voucher)
            .where(
                Voucher.id == voucher.id,
                Voucher.is_active.is_(True),
                or_(
                    Voucher.usage_limit.is_(None),
                    Voucher.used_count < Voucher.usage_limit,
                ),
            )
            .values(used_count=Voucher.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise InvalidVoucherError(voucher.code, "usage limit reached")

    async def get_order_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        """
        Get order by ID with line items and payment loaded.

        Raises:
            RepositoryError: If query fails
        """
        try:
            result = await self.session.execute(
                select(Order).where(Order.id == order_id)
            )
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=str(order_id), error=str(e))
            raise RepositoryError(
                "Failed to fetch order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def get_line_item_by_id(self, line_item_id: uuid.UUID) -> Optional[LineItem]:
        try:
            result = await self.session.execute(
                select(LineItem).where(LineItem.id == line_item_id)
            )
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch line item",
                line_item_id=str(line_item_id),
                error=str(e),
            )
            raise RepositoryError(
                "Failed to fetch line item",
                line_item_id=str(line_item_id),
                error=str(e),
            ) from e

    async def get_seller_line_items(
        self,
        order_id: uuid.UUID,
        seller_id: uuid.UUID,
        status: Optional[LineItemStatus] = None,
    ) -> list[LineItem]:
        """Line items of an order that belong to one seller."""
        try:
            conditions = [LineItem.order_id == order_id, LineItem.seller_id == seller_id]
            if status is not None:
                conditions.append(LineItem.status == status)

            result = await self.session.execute(
                select(LineItem).where(and_(*conditions)).order_by(LineItem.created_at)
            )
            return list(result.scalars().all())

        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to fetch seller line items",
                order_id=str(order_id),
                seller_id=str(seller_id),
                error=str(e),
            ) from e

    async def lock_order_status(self, order_id: uuid.UUID) -> Optional[OrderStatus]:
        """
        Lock the order row until the transaction ends and return its status.

        Aggregations of the same order take this lock before reading line
        item statuses, so each one sees the items the previous one committed.
        """
        try:
            result = await self.session.execute(
                select(Order.status).where(Order.id == order_id).with_for_update()
            )
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RepositoryError(
                "Failed to lock order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def get_line_item_statuses(self, order_id: uuid.UUID) -> list[LineItemStatus]:
        """Current status of every line item of an order, read from the database."""
        try:
            result = await self.session.execute(
                select(LineItem.status).where(LineItem.order_id == order_id)
            )
            return list(result.scalars().all())

        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to fetch line item statuses",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def transition_line_item_status(
        self,
        line_item_id: uuid.UUID,
        current_status: LineItemStatus,
        new_status: LineItemStatus,
        tracking_number: Optional[str] = None,
    ) -> bool:
        """
        Move a line item to ``new_status`` if it is still in ``current_status``.

        Returns:
            True if the row was updated, False if another writer got there first
        """
        values: dict[str, Any] = {"status": new_status}
        if tracking_number is not None:
            values["tracking_number"] = tracking_number

        try:
            result = await self.session.execute(
                update(LineItem)
                .where(
                    LineItem.id == line_item_id,
                    LineItem.status == current_status,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            applied = result.rowcount == 1

            logger.debug(
                "Line item transition executed",
                line_item_id=str(line_item_id),
                from_status=current_status.value,
                to_status=new_status.value,
                applied=applied,
            )
            return applied

        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RepositoryError(
                "Failed to update line item status",
                line_item_id=str(line_item_id),
                error=str(e),
            ) from e

    async def transition_order_status(
        self,
        order_id: uuid.UUID,
        expected_statuses: Collection[OrderStatus],
        new_status: OrderStatus,
    ) -> bool:
        """
        Set the order status if it currently is one of ``expected_statuses``.

        Returns:
            True if the row was updated
        """
        try:
            result = await self.session.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.status.in_(list(expected_statuses)),
                )
                .values(status=new_status)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RepositoryError(
                "Failed to update order status",
                order_id=str(order_id),
                new_status=new_status.value,
                error=str(e),
            ) from e

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Commit failed", error=str(e), error_type=type(e).__name__)
            raise RepositoryError("Failed to commit transaction", error=str(e)) from e

    async def rollback(self) -> None:
        await self.session.rollback()
