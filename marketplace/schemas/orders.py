"""
Order Pydantic schemas for API request/response validation.

Buyers only ever send product ids and quantities; every price in a response
comes from the catalog snapshot taken at placement time.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from marketplace.services.orders.enums import LineItemStatus, OrderStatus, PaymentStatus


class OrderItemRequest(BaseModel):
    """One product and quantity in an order request."""

    model_config = {"validate_assignment": True}

    product_id: UUID = Field(
        ...,
        description="Catalog product ID",
    )
    quantity: int = Field(
        ...,
        ge=1,
        description="Quantity to order",
    )


class OrderCreateRequest(BaseModel):
    """Request schema for creating a new order."""

    items: list[OrderItemRequest] = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Order items",
    )
    address_id: Optional[UUID] = Field(
        None,
        description="Shipping address; the buyer's default address when omitted",
    )
    voucher_code: Optional[str] = Field(
        None,
        min_length=1,
        max_length=50,
        description="Voucher code to apply",
    )

    @field_validator("voucher_code")
    @classmethod
    def normalize_voucher_code(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {
                            "product_id": "123e4567-e89b-12d3-a456-426614174000",
                            "quantity": 2,
                        }
                    ],
                    "address_id": "123e4567-e89b-12d3-a456-426614174001",
                    "voucher_code": "SPRING10",
                }
            ]
        },
    }


class LineItemResponse(BaseModel):
    """Line item of an order."""

    id: UUID
    product_id: UUID
    seller_id: UUID
    quantity: int
    unit_price: Decimal
    status: LineItemStatus
    tracking_number: Optional[str] = None


class OrderResponse(BaseModel):
    """Complete order response schema."""

    id: UUID
    buyer_id: UUID
    status: OrderStatus
    address_id: UUID
    shipping_address: dict[str, Any]
    subtotal: Decimal
    discount_amount: Decimal
    total_price: Decimal
    voucher_code: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    created_at: Optional[datetime] = None
    line_items: list[LineItemResponse]


class ConfirmedItemResponse(BaseModel):
    id: UUID
    tracking_number: str


class SellerConfirmationResponse(BaseModel):
    """Result of a seller confirming its items of an order."""

    order_id: UUID
    order_status: OrderStatus
    confirmed_items: list[ConfirmedItemResponse]
