"""Status enums and transition rules for orders, line items and payments.

Orders, line items and payments each follow a small state machine. The
transition tables below are the single source of truth for which moves are
legal; repositories enforce them again at write time with conditional
updates on the observed status.
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions:
    - PENDING -> PAID, REJECTED, SHIPPING (cash on delivery)
    - PAID -> SHIPPING, SHIPPED, FAILED
    - SHIPPING -> SHIPPED, FAILED
    - REJECTED, SHIPPED, FAILED -> (terminal)
    """

    PENDING = "pending"
    PAID = "paid"
    REJECTED = "rejected"
    SHIPPING = "shipping"
    SHIPPED = "shipped"
    FAILED = "failed"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid order status: {value}. Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        return self in {OrderStatus.REJECTED, OrderStatus.SHIPPED, OrderStatus.FAILED}


class LineItemStatus(str, Enum):
    """Per-item shipping status driven by the item's seller."""

    PENDING = "pending"
    SHIPPING = "shipping"
    SHIPPED = "shipped"
    FAILED_TO_SHIP = "failed_to_ship"

    @classmethod
    def from_string(cls, value: str) -> "LineItemStatus":
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid line item status: {value}. Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        return self in {LineItemStatus.SHIPPED, LineItemStatus.FAILED_TO_SHIP}


class PaymentStatus(str, Enum):
    """Payment status. A payment leaves PENDING exactly once."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentMethod(str, Enum):
    """Supported ways of paying for an order."""

    CASH_ON_DELIVERY = "cash_on_delivery"
    QR_GATEWAY = "qr_gateway"
    REDIRECT_GATEWAY = "redirect_gateway"

    @property
    def uses_gateway(self) -> bool:
        return self is not PaymentMethod.CASH_ON_DELIVERY


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.PAID,
        OrderStatus.REJECTED,
        OrderStatus.SHIPPING,
    },
    OrderStatus.PAID: {
        OrderStatus.SHIPPING,
        OrderStatus.SHIPPED,
        OrderStatus.FAILED,
    },
    OrderStatus.SHIPPING: {
        OrderStatus.SHIPPED,
        OrderStatus.FAILED,
    },
    OrderStatus.REJECTED: set(),  # Terminal
    OrderStatus.SHIPPED: set(),  # Terminal
    OrderStatus.FAILED: set(),  # Terminal
}

LINE_ITEM_STATUS_TRANSITIONS: Dict[LineItemStatus, Set[LineItemStatus]] = {
    LineItemStatus.PENDING: {LineItemStatus.SHIPPING},
    LineItemStatus.SHIPPING: {
        LineItemStatus.SHIPPED,
        LineItemStatus.FAILED_TO_SHIP,
    },
    LineItemStatus.SHIPPED: set(),  # Terminal
    LineItemStatus.FAILED_TO_SHIP: set(),  # Terminal
}

PAYMENT_STATUS_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: set(),  # Terminal
    PaymentStatus.FAILED: set(),  # Terminal
}


def validate_order_status_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def validate_line_item_status_transition(
    current: LineItemStatus, new: LineItemStatus
) -> bool:
    return new in LINE_ITEM_STATUS_TRANSITIONS.get(current, set())


def validate_payment_status_transition(
    current: PaymentStatus, new: PaymentStatus
) -> bool:
    return new in PAYMENT_STATUS_TRANSITIONS.get(current, set())


def get_allowed_line_item_transitions(current: LineItemStatus) -> Set[LineItemStatus]:
    """Get all allowed transitions from the current line item status."""
    return LINE_ITEM_STATUS_TRANSITIONS.get(current, set()).copy()
