"""Seller shipping updates for individual line items."""

from uuid import UUID

from fastapi import APIRouter

from marketplace.api.deps import CurrentSeller, ShippingCoordinatorDep
from marketplace.core.logging import get_logger
from marketplace.schemas.line_items import (
    LineItemStatusUpdateRequest,
    LineItemUpdateResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/line-items", tags=["line-items"])


@router.patch(
    "/{line_item_id}/status",
    response_model=LineItemUpdateResponse,
    summary="Update line item shipping status",
)
async def update_line_item_status(
    line_item_id: UUID,
    body: LineItemStatusUpdateRequest,
    seller: CurrentSeller,
    coordinator: ShippingCoordinatorDep,
) -> dict:
    """
    Move one of the seller's line items along its shipping lifecycle.

    Raises:
        403 if the item belongs to another seller, 409 on an illegal
        transition or when the order is not ready for fulfillment
    """
    logger.info(
        "Line item status update requested",
        line_item_id=str(line_item_id),
        seller_id=str(seller.user_id),
        target_status=body.status.value,
    )
    return await coordinator.update_line_item_status(
        line_item_id,
        seller.user_id,
        body.status,
        tracking_number=body.tracking_number,
    )
