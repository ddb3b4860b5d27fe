"""Line item state machine and order status aggregation.

Sellers move their own line items through
``pending -> shipping -> shipped | failed_to_ship``. Whenever an item moves,
the order level status is recomputed from all of the order's items:

* every item shipped -> order ``shipped``
* every item failed to ship -> order ``failed``
* every item terminal, mixed outcomes -> order ``shipped`` (partial delivery)
* otherwise, once any item has left ``pending`` -> order ``shipping``
* all items still pending -> order status unchanged
"""

from typing import Iterable, Optional

from marketplace.core.exceptions import InvalidTransitionError
from marketplace.core.logging import get_logger
from marketplace.services.orders.enums import (
    LineItemStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    get_allowed_line_item_transitions,
    validate_line_item_status_transition,
)

logger = get_logger(__name__)

FULFILLABLE_ORDER_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.SHIPPING})


class LineItemStateMachine:
    """Validates seller driven line item transitions."""

    def validate_transition(
        self,
        current_status: LineItemStatus,
        target_status: LineItemStatus,
        **context,
    ) -> None:
        """
        Check that ``target_status`` is a legal successor of ``current_status``.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if validate_line_item_status_transition(current_status, target_status):
            return

        allowed = get_allowed_line_item_transitions(current_status)
        logger.info(
            "Rejected line item transition",
            current_status=current_status.value,
            target_status=target_status.value,
            **context,
        )
        raise InvalidTransitionError(
            current_status,
            target_status,
            allowed_transitions=sorted(s.value for s in allowed),
            **context,
        )


def aggregate_order_status(statuses: Iterable[LineItemStatus]) -> Optional[OrderStatus]:
    """
    Derive the order status implied by its line item statuses.

    Returns:
        The implied order status, or None when no item has left ``pending``
    """
    statuses = list(statuses)
    if not statuses:
        return None

    if all(s == LineItemStatus.PENDING for s in statuses):
        return None

    if all(s.is_terminal() for s in statuses):
        if all(s == LineItemStatus.FAILED_TO_SHIP for s in statuses):
            return OrderStatus.FAILED
        return OrderStatus.SHIPPED

    return OrderStatus.SHIPPING


def is_order_fulfillable(
    order_status: OrderStatus,
    payment_method: Optional[PaymentMethod],
    payment_status: Optional[PaymentStatus],
) -> bool:
    """
    Whether sellers may ship items of an order.

    Paid orders and orders already shipping are fulfillable. A pending order
    is fulfillable only when it was accepted for cash on delivery.
    """
    if order_status in FULFILLABLE_ORDER_STATUSES:
        return True

    return (
        order_status == OrderStatus.PENDING
        and payment_method == PaymentMethod.CASH_ON_DELIVERY
        and payment_status == PaymentStatus.PENDING
    )
