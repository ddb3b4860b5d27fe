"""
Catalog, voucher and address book read models.

These tables are owned by the catalog and address book collaborators. The
order core only reads them, apart from the conditional stock decrement and
voucher usage increment performed inside the order creation transaction.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import BaseModel, enum_type
from marketplace.services.pricing.engine import DiscountType, VoucherTerms


class Product(BaseModel):
    """Sellable product listed by a single seller."""

    __tablename__ = "products"

    seller_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Seller that lists and ships the product",
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Current unit price",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        {"comment": "Catalog products"},
    )


class Inventory(BaseModel):
    """Available stock for a product."""

    __tablename__ = "inventory"

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        {"comment": "Product stock levels"},
    )


class Voucher(BaseModel):
    """
    Discount code a buyer may apply to one order.

    Attributes:
        code: Code entered by the buyer
        discount_type: fixed or percentage
        discount_value: Amount or percentage
        min_order_value: Subtotal below which the voucher grants nothing
        max_discount: Cap for percentage vouchers; NULL or 0 means uncapped
        usage_limit: Maximum redemptions; NULL means unlimited
        used_count: Redemptions so far
        valid_until: Expiry; NULL means no expiry
    """

    __tablename__ = "vouchers"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    discount_type: Mapped[DiscountType] = mapped_column(
        enum_type(DiscountType, "discount_type"),
        nullable=False,
    )

    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2), nullable=False
    )

    min_order_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )

    max_discount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=12, scale=2), nullable=True
    )

    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    valid_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "discount_value >= 0", name="ck_vouchers_discount_value_non_negative"
        ),
        CheckConstraint("used_count >= 0", name="ck_vouchers_used_count_non_negative"),
        CheckConstraint(
            "usage_limit IS NULL OR used_count <= usage_limit",
            name="ck_vouchers_usage_within_limit",
        ),
        {"comment": "Discount vouchers"},
    )

    def unavailable_reason(self, now: Optional[datetime] = None) -> Optional[str]:
        """
        Explain why the voucher cannot be redeemed right now.

        Returns:
            A short reason, or None when the voucher is redeemable
        """
        now = now or datetime.now(timezone.utc)
        if not self.is_active:
            return "inactive"
        if self.valid_until is not None and now > self.valid_until:
            return "expired"
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            return "usage limit reached"
        return None

    def to_terms(self) -> VoucherTerms:
        return VoucherTerms(
            discount_type=self.discount_type,
            value=self.discount_value,
            min_order_value=self.min_order_value,
            max_discount=self.max_discount,
            code=self.code,
        )


class Address(BaseModel):
    """Buyer address book entry."""

    __tablename__ = "addresses"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="VN")
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_addresses_user_default", "user_id", "is_default"),
        {"comment": "Buyer address book"},
    )

    def snapshot(self) -> dict[str, Any]:
        """Address fields copied onto an order."""
        return {
            "recipient_name": self.recipient_name,
            "phone": self.phone,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }
