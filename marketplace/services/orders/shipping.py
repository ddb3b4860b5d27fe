"""
Seller driven line item shipping.

Each seller progresses only the line items of its own products. After every
item transition the order level status is recomputed from all of the
order's items within the same transaction, and the buyer is notified once
the transaction has committed.
"""

import secrets
import time
import uuid
from typing import Any, Optional

from marketplace.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    LineItemNotFoundError,
    OrderNotFoundError,
    OrderNotFulfillableError,
)
from marketplace.core.logging import get_logger
from marketplace.database.models.order import LineItem, Order
from marketplace.services.notifications.service import (
    NotificationPublisher,
    NotificationType,
)
from marketplace.services.orders.enums import LineItemStatus, OrderStatus
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.orders.state_machine import (
    LineItemStateMachine,
    aggregate_order_status,
    is_order_fulfillable,
)

logger = get_logger(__name__)

# Order statuses the aggregate may overwrite. Terminal and rejected orders
# are never touched.
AGGREGATABLE_ORDER_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.SHIPPING}
)


def generate_tracking_number() -> str:
    return f"TRK-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


class ShippingCoordinator:
    """
    Applies seller shipping updates to line items.

    Attributes:
        repository: Order persistence
        state_machine: Line item transition rules
        notifier: Fire-and-forget notification publisher
    """

    def __init__(
        self,
        repository: OrderRepository,
        state_machine: Optional[LineItemStateMachine] = None,
        notifier: Optional[NotificationPublisher] = None,
    ):
        self.repository = repository
        self.state_machine = state_machine or LineItemStateMachine()
        self.notifier = notifier or NotificationPublisher()

    async def update_line_item_status(
        self,
        line_item_id: uuid.UUID,
        seller_id: uuid.UUID,
        target_status: LineItemStatus,
        tracking_number: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Move one of the seller's line items to a new shipping status.

        Args:
            line_item_id: Line item to update
            seller_id: Seller performing the update
            target_status: shipping, shipped or failed_to_ship
            tracking_number: Carrier tracking number; generated when an item
                starts shipping without one

        Returns:
            Updated line item and the resulting order status

        Raises:
            LineItemNotFoundError: If the line item does not exist
            ForbiddenError: If the seller does not own the line item
            InvalidTransitionError: If the move is not a legal successor or a
                concurrent update won the race
            OrderNotFulfillableError: If the order has not been paid or
                accepted for cash on delivery
        """
        item = await self.repository.get_line_item_by_id(line_item_id)
        if item is None:
            raise LineItemNotFoundError(line_item_id)

        if item.seller_id != seller_id:
            logger.warning(
                "Seller attempted to update foreign line item",
                line_item_id=str(line_item_id),
                seller_id=str(seller_id),
            )
            raise ForbiddenError(
                "Line item belongs to another seller",
                code="LINE_ITEM_FORBIDDEN",
                line_item_id=str(line_item_id),
            )

        current_status = item.status
        self.state_machine.validate_transition(
            current_status, target_status, line_item_id=str(line_item_id)
        )

        order = item.order
        self._ensure_fulfillable(order)

        if target_status == LineItemStatus.SHIPPING and not tracking_number:
            tracking_number = generate_tracking_number()

        applied = await self.repository.transition_line_item_status(
            line_item_id, current_status, target_status, tracking_number
        )
        if not applied:
            await self.repository.rollback()
            raise InvalidTransitionError(
                current_status,
                target_status,
                line_item_id=str(line_item_id),
                reason="line item was updated concurrently",
            )

        order_status = await self._aggregate(order)
        await self.repository.commit()

        logger.info(
            "Line item status updated",
            line_item_id=str(line_item_id),
            order_id=str(order.id),
            from_status=current_status.value,
            to_status=target_status.value,
            order_status=order_status.value,
        )

        self._notify_buyer(order, item, target_status, tracking_number, order_status)

        return {
            "line_item": {
                "id": str(item.id),
                "order_id": str(order.id),
                "status": target_status.value,
                "tracking_number": tracking_number or item.tracking_number,
            },
            "order_status": order_status.value,
        }

    async def confirm_seller_items(
        self,
        order_id: uuid.UUID,
        seller_id: uuid.UUID,
    ) -> dict[str, Any]:
        """
        Start shipping every pending item the seller has in an order.

        Each confirmed item gets its own tracking number.

        Raises:
            OrderNotFoundError: If the order does not exist
            ForbiddenError: If the seller has no items in the order
            OrderNotFulfillableError: If the order is not ready for fulfillment
        """
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        items = await self.repository.get_seller_line_items(order_id, seller_id)
        if not items:
            raise ForbiddenError(
                "Seller has no items in this order",
                code="ORDER_FORBIDDEN",
                order_id=str(order_id),
            )

        self._ensure_fulfillable(order)

        confirmed: list[tuple[LineItem, str]] = []
        for item in items:
            if item.status != LineItemStatus.PENDING:
                continue
            tracking_number = generate_tracking_number()
            if await self.repository.transition_line_item_status(
                item.id, LineItemStatus.PENDING, LineItemStatus.SHIPPING, tracking_number
            ):
                confirmed.append((item, tracking_number))

        order_status = await self._aggregate(order) if confirmed else order.status
        await self.repository.commit()

        logger.info(
            "Seller items confirmed",
            order_id=str(order_id),
            seller_id=str(seller_id),
            confirmed_count=len(confirmed),
            order_status=order_status.value,
        )

        for item, tracking_number in confirmed:
            self._notify_buyer(
                order, item, LineItemStatus.SHIPPING, tracking_number, order_status
            )

        return {
            "order_id": str(order_id),
            "order_status": order_status.value,
            "confirmed_items": [
                {"id": str(item.id), "tracking_number": tracking_number}
                for item, tracking_number in confirmed
            ],
        }

    def _ensure_fulfillable(self, order: Order) -> None:
        payment = order.payment
        if not is_order_fulfillable(
            order.status,
            payment.method if payment is not None else None,
            payment.status if payment is not None else None,
        ):
            raise OrderNotFulfillableError(order.id, order.status)

    async def _aggregate(self, order: Order) -> OrderStatus:
        """Recompute and persist the order status implied by its items."""
        current = await self.repository.lock_order_status(order.id) or order.status
        statuses = await self.repository.get_line_item_statuses(order.id)
        implied = aggregate_order_status(statuses)

        if implied is None or implied == current:
            return current

        expected = AGGREGATABLE_ORDER_STATUSES - {implied}
        if await self.repository.transition_order_status(order.id, expected, implied):
            logger.info(
                "Order status aggregated",
                order_id=str(order.id),
                from_status=current.value,
                to_status=implied.value,
            )
            return implied

        # A concurrent aggregation already moved the order.
        logger.warning(
            "Order status aggregation skipped",
            order_id=str(order.id),
            implied_status=implied.value,
        )
        return implied

    def _notify_buyer(
        self,
        order: Order,
        item: LineItem,
        status: LineItemStatus,
        tracking_number: Optional[str],
        order_status: OrderStatus,
    ) -> None:
        self.notifier.publish(
            NotificationType.LINE_ITEM_STATUS_CHANGED,
            order.buyer_email,
            {
                "order_id": str(order.id),
                "line_item_id": str(item.id),
                "status": status.value,
                "tracking_number": tracking_number,
                "order_status": order_status.value,
            },
        )
