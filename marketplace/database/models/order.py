"""
Order and line item models.

An order is created together with its line items in one transaction. Prices
are snapshotted at creation: ``unit_price_snapshot`` on each line item and
``subtotal``/``discount_amount``/``total_price`` on the order are never
written again afterwards.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.database.base import BaseModel, enum_type
from marketplace.services.orders.enums import LineItemStatus, OrderStatus


class Order(BaseModel):
    """
    Buyer order spanning one or more sellers.

    Attributes:
        buyer_id: Identity of the buyer who placed the order
        buyer_email: Contact snapshot used for notifications
        address_id: Address book entry the order ships to
        shipping_address: Snapshot of the resolved address
        subtotal: Sum of quantity x unit price snapshot over line items
        discount_amount: Voucher discount applied at creation
        total_price: Amount due, ``max(subtotal - discount, 0)``
        voucher_code: Voucher redeemed for this order, if any
        status: Order level status
    """

    __tablename__ = "orders"

    buyer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Buyer identity",
    )

    buyer_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Buyer contact email at order time",
    )

    address_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("addresses.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Shipping address identifier",
    )

    shipping_address: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Shipping address snapshot",
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Sum of line item prices before discount",
    )

    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Voucher discount",
    )

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Amount due, fixed at creation",
    )

    voucher_code: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Voucher applied to this order",
    )

    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Order status",
    )

    line_items: Mapped[list["LineItem"]] = relationship(
        "LineItem",
        back_populates="order",
        lazy="selectin",
        order_by="LineItem.created_at",
    )

    payment: Mapped[Optional["Payment"]] = relationship(
        "Payment",
        back_populates="order",
        uselist=False,
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_orders_buyer_created", "buyer_id", "created_at"),
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint(
            "discount_amount >= 0", name="ck_orders_discount_non_negative"
        ),
        CheckConstraint("total_price >= 0", name="ck_orders_total_non_negative"),
        {"comment": "Buyer orders"},
    )

    def is_owned_by(self, buyer_id: uuid.UUID) -> bool:
        return self.buyer_id == buyer_id

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, buyer_id={self.buyer_id}, "
            f"status={self.status.value}, total_price={self.total_price})>"
        )


class LineItem(BaseModel):
    """
    Single product line of an order, owned for fulfillment by its seller.

    ``seller_id`` is copied from the product when the order is placed so that
    ownership checks never depend on later catalog changes.
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Parent order identifier",
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Ordered product",
    )

    seller_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Seller responsible for shipping this item",
    )

    quantity: Mapped[int] = mapped_column(nullable=False, comment="Units ordered")

    unit_price_snapshot: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Product price at order time",
    )

    status: Mapped[LineItemStatus] = mapped_column(
        enum_type(LineItemStatus, "line_item_status"),
        nullable=False,
        default=LineItemStatus.PENDING,
        comment="Shipping status",
    )

    tracking_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Carrier tracking number",
    )

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="line_items",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_order_items_order_seller", "order_id", "seller_id"),
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "unit_price_snapshot >= 0",
            name="ck_order_items_unit_price_non_negative",
        ),
        {"comment": "Individual items in an order"},
    )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price_snapshot * self.quantity

    def __repr__(self) -> str:
        return (
            f"<LineItem(id={self.id}, order_id={self.order_id}, "
            f"seller_id={self.seller_id}, status={self.status.value})>"
        )
