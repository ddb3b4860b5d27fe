"""Line item shipping schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from marketplace.services.orders.enums import LineItemStatus, OrderStatus


class LineItemStatusUpdateRequest(BaseModel):
    """Seller update of one line item's shipping status."""

    status: LineItemStatus = Field(
        ...,
        description="shipping, shipped or failed_to_ship",
    )
    tracking_number: Optional[str] = Field(
        None,
        min_length=1,
        max_length=100,
        description="Carrier tracking number; generated when omitted on shipping",
    )

    @field_validator("status")
    @classmethod
    def validate_target(cls, v: LineItemStatus) -> LineItemStatus:
        if v == LineItemStatus.PENDING:
            raise ValueError("Line items cannot be moved back to pending")
        return v


class LineItemStatusResponse(BaseModel):
    id: UUID
    order_id: UUID
    status: LineItemStatus
    tracking_number: Optional[str] = None


class LineItemUpdateResponse(BaseModel):
    line_item: LineItemStatusResponse
    order_status: OrderStatus
