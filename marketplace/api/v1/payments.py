"""
Payment API endpoints.

Buyers create the payment of a pending order and poll its status. Gateways
report outcomes through the public callback routes, which are idempotent:
repeated deliveries are acknowledged without side effects.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from marketplace.api.deps import (
    CurrentBuyer,
    CurrentPrincipal,
    CurrentSeller,
    PaymentServiceDep,
    ReconcilerDep,
    RedirectGatewayDep,
)
from marketplace.core.exceptions import ValidationError
from marketplace.core.logging import get_logger
from marketplace.core.rate_limit import CREATE_LIMIT, limiter
from marketplace.schemas.payments import (
    CallbackAcknowledgement,
    CODDeliveryResponse,
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentStatusResponse,
    QRCallbackRequest,
    RedirectCallbackQuery,
)
from marketplace.services.payments.gateways import RedirectGatewayClient
from marketplace.services.payments.reconciler import CallbackReconciler

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Pay an order",
    description="Create the payment of a pending order with the chosen method",
)
@limiter.limit(CREATE_LIMIT)
async def create_payment(
    request: Request,
    body: PaymentCreateRequest,
    buyer: CurrentBuyer,
    service: PaymentServiceDep,
) -> dict:
    """
    Create and dispatch a payment.

    Raises:
        402 if the gateway declined, 502 if it could not be reached,
        409 if the order is not payable or already has a payment
    """
    return await service.create_payment(body.order_id, buyer.user_id, body.method)


@router.get(
    "/status/{order_id}",
    response_model=PaymentStatusResponse,
    summary="Get payment status",
)
async def get_payment_status(
    order_id: UUID,
    principal: CurrentPrincipal,
    service: PaymentServiceDep,
) -> dict:
    return await service.get_payment_status(order_id, principal.user_id)


@router.post(
    "/{order_id}/cod-delivery",
    response_model=CODDeliveryResponse,
    summary="Report cash on delivery handover",
    description="Publish a delivery confirmation for a cash on delivery order",
)
async def record_cod_delivery(
    order_id: UUID,
    seller: CurrentSeller,
    service: PaymentServiceDep,
) -> dict:
    return await service.record_cod_delivery(
        order_id, seller.user_id, is_admin=seller.is_admin
    )


@router.post(
    "/callbacks/qr",
    response_model=CallbackAcknowledgement,
    summary="QR gateway callback",
)
async def qr_callback(
    body: QRCallbackRequest,
    reconciler: ReconcilerDep,
) -> dict:
    logger.info(
        "QR gateway callback received",
        order_reference=body.order_id,
        provider_status=body.status,
    )
    return await reconciler.handle_callback(body.to_notification())


async def _handle_redirect(
    query: RedirectCallbackQuery,
    reconciler: CallbackReconciler,
    gateway: RedirectGatewayClient,
    cancelled: bool,
) -> dict:
    logger.info(
        "Redirect gateway callback received",
        order_reference=query.order_code,
        provider_status=query.status,
        cancelled=cancelled,
    )

    if not gateway.verify_signature(query.signed_fields(), query.signature):
        logger.warning(
            "Redirect callback signature rejected",
            order_reference=query.order_code,
            signature_present=query.signature is not None,
        )
        raise ValidationError(
            "Callback signature is missing or invalid",
            code="INVALID_SIGNATURE",
            order_reference=query.order_code,
        )

    return await reconciler.handle_callback(query.to_notification(cancelled=cancelled))


@router.get(
    "/callbacks/redirect",
    response_model=CallbackAcknowledgement,
    summary="Redirect gateway return URL",
)
async def redirect_callback(
    reconciler: ReconcilerDep,
    gateway: RedirectGatewayDep,
    order_code: Annotated[str, Query(alias="orderCode", min_length=1)],
    status_: Annotated[Optional[str], Query(alias="status")] = None,
    code: Optional[str] = None,
    id: Optional[str] = None,
    cancel: Optional[bool] = None,
    signature: Optional[str] = None,
) -> dict:
    query = RedirectCallbackQuery(
        order_code=order_code,
        status=status_,
        code=code,
        id=id,
        cancel=cancel,
        signature=signature,
    )
    return await _handle_redirect(query, reconciler, gateway, cancelled=False)


@router.get(
    "/callbacks/redirect/cancel",
    response_model=CallbackAcknowledgement,
    summary="Redirect gateway cancel URL",
)
async def redirect_cancel_callback(
    reconciler: ReconcilerDep,
    gateway: RedirectGatewayDep,
    order_code: Annotated[str, Query(alias="orderCode", min_length=1)],
    status_: Annotated[Optional[str], Query(alias="status")] = None,
    code: Optional[str] = None,
    id: Optional[str] = None,
    cancel: Optional[bool] = None,
    signature: Optional[str] = None,
) -> dict:
    query = RedirectCallbackQuery(
        order_code=order_code,
        status=status_,
        code=code,
        id=id,
        cancel=cancel,
        signature=signature,
    )
    return await _handle_redirect(query, reconciler, gateway, cancelled=True)
