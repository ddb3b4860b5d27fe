"""
Payment model and payment status audit trail.

There is at most one payment per order, enforced by a unique constraint on
``order_id``. A payment leaves ``pending`` exactly once; every applied
transition writes a :class:`PaymentStatusHistory` row in the same
transaction.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.database.base import BaseModel, enum_type
from marketplace.services.orders.enums import PaymentMethod, PaymentStatus

ORDER_UNIQUE_CONSTRAINT = "uq_payments_order_id"


class Payment(BaseModel):
    """
    Payment for a single order.

    Attributes:
        order_id: Order being paid (unique)
        buyer_id: Buyer that created the payment
        method: Payment method chosen by the buyer
        amount: Copy of the order total at creation
        status: pending, paid or failed
        provider_reference: Gateway side order code used to match callbacks
        display_payload: QR data or checkout URL returned by the gateway
        transaction_id: Provider transaction id, set on settlement
        paid_at: Settlement time
        failure_reason: Why the payment failed, when it did
    """

    __tablename__ = "payments"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Order this payment settles",
    )

    buyer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Buyer identity",
    )

    method: Mapped[PaymentMethod] = mapped_column(
        enum_type(PaymentMethod, "payment_method"),
        nullable=False,
        comment="Payment method",
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Amount due",
    )

    status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
        comment="Payment status",
    )

    provider_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Gateway order code",
    )

    display_payload: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Data the buyer needs to complete payment",
    )

    transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Provider transaction id",
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Settlement timestamp",
    )

    failure_reason: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Failure description",
    )

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="payment",
        lazy="selectin",
    )

    status_history: Mapped[list["PaymentStatusHistory"]] = relationship(
        "PaymentStatusHistory",
        back_populates="payment",
        lazy="selectin",
        order_by="PaymentStatusHistory.created_at",
    )

    __table_args__ = (
        Index("ix_payments_status_created", "status", "created_at"),
        UniqueConstraint("order_id", name=ORDER_UNIQUE_CONSTRAINT),
        UniqueConstraint("provider_reference", name="uq_payments_provider_reference"),
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
        CheckConstraint(
            "paid_at IS NULL OR status = 'paid'",
            name="ck_payments_paid_at_only_when_paid",
        ),
        {"comment": "One payment per order"},
    )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, order_id={self.order_id}, "
            f"method={self.method.value}, status={self.status.value})>"
        )


class PaymentStatusHistory(BaseModel):
    """Audit row written whenever a payment changes status."""

    __tablename__ = "payment_status_history"

    payment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    from_status: Mapped[Optional[PaymentStatus]] = mapped_column(
        enum_type(PaymentStatus, "payment_status"),
        nullable=True,
    )

    to_status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus, "payment_status"),
        nullable=False,
    )

    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    payment: Mapped["Payment"] = relationship(
        "Payment",
        back_populates="status_history",
    )
