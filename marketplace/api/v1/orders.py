"""
Order API endpoints.

Buyers place and read orders; sellers read orders containing their items
and confirm their pending items for shipping. Domain errors raised by the
services are rendered by the application's exception handlers.
"""

from uuid import UUID

from fastapi import APIRouter, Request, status

from marketplace.api.deps import (
    CurrentBuyer,
    CurrentPrincipal,
    CurrentSeller,
    OrderServiceDep,
    ShippingCoordinatorDep,
)
from marketplace.core.logging import get_logger
from marketplace.core.rate_limit import CREATE_LIMIT, limiter
from marketplace.schemas.orders import (
    OrderCreateRequest,
    OrderResponse,
    SellerConfirmationResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    description="Create a pending order priced from the catalog",
)
@limiter.limit(CREATE_LIMIT)
async def create_order(
    request: Request,
    body: OrderCreateRequest,
    buyer: CurrentBuyer,
    service: OrderServiceDep,
) -> dict:
    """
    Create a pending order for the authenticated buyer.

    Raises:
        400 on invalid quantities, vouchers or insufficient stock;
        404 on unknown products or addresses
    """
    logger.info(
        "Order placement requested",
        buyer_id=str(buyer.user_id),
        item_count=len(body.items),
    )

    return await service.create_order(
        buyer_id=buyer.user_id,
        items=[item.model_dump() for item in body.items],
        address_id=body.address_id,
        voucher_code=body.voucher_code,
        buyer_email=buyer.email,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order(
    order_id: UUID,
    principal: CurrentPrincipal,
    service: OrderServiceDep,
) -> dict:
    return await service.get_order(order_id, principal.user_id)


@router.post(
    "/{order_id}/confirm",
    response_model=SellerConfirmationResponse,
    summary="Confirm seller items",
    description="Start shipping every pending item the seller has in the order",
)
async def confirm_seller_items(
    order_id: UUID,
    seller: CurrentSeller,
    coordinator: ShippingCoordinatorDep,
) -> dict:
    return await coordinator.confirm_seller_items(order_id, seller.user_id)
