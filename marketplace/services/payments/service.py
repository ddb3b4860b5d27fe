"""
Payment service: dispatching payments and answering status polls.

``create_payment`` creates the single payment of a pending order and routes
it by method. Cash on delivery payments stay pending and the order is
accepted for fulfillment. Gateway methods ask the provider for a QR code or
checkout URL; when the provider declines or cannot be reached the payment is
marked failed and the order rejected, so the buyer has to place a new order.

Gateway payments are settled later and out of band by
:class:`~marketplace.services.payments.reconciler.CallbackReconciler`.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from marketplace.core.exceptions import (
    ForbiddenError,
    GatewayError,
    InvalidMethodError,
    OrderNotFoundError,
    OrderNotPayableError,
    PaymentAlreadyExistsError,
    PaymentNotFoundError,
)
from marketplace.core.logging import get_logger
from marketplace.database.models.payment import Payment
from marketplace.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus
from marketplace.services.payments.gateways import (
    GatewayClient,
    GatewayRequest,
    RedirectGatewayClient,
)
from marketplace.services.payments.repository import PaymentRepository

logger = get_logger(__name__)

DeliveryListener = Callable[[dict[str, Any]], None]


def serialize_payment(payment: Payment) -> dict[str, Any]:
    return {
        "id": str(payment.id),
        "order_id": str(payment.order_id),
        "method": payment.method.value,
        "amount": str(payment.amount),
        "status": payment.status.value,
        "provider_reference": payment.provider_reference,
        "transaction_id": payment.transaction_id,
        "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
    }


class PaymentService:
    """
    Payment dispatch, status queries and the cash on delivery hook.

    Attributes:
        repository: Payment repository for data access
        gateways: Gateway client per gateway payment method
    """

    def __init__(
        self,
        repository: PaymentRepository,
        gateways: Optional[dict[PaymentMethod, GatewayClient]] = None,
        delivery_listeners: Optional[list[DeliveryListener]] = None,
    ):
        self.repository = repository
        self.gateways = gateways or {}
        self.delivery_listeners: list[DeliveryListener] = list(delivery_listeners or [])

    async def create_payment(
        self,
        order_id: uuid.UUID,
        buyer_id: uuid.UUID,
        method: Union[PaymentMethod, str],
    ) -> dict[str, Any]:
        """
        Create and dispatch the payment of an order.

        Args:
            order_id: Order to pay
            buyer_id: Caller; must own the order
            method: cash_on_delivery, qr_gateway or redirect_gateway

        Returns:
            Serialized payment and, for gateway methods, the display payload

        Raises:
            InvalidMethodError: If the method is not supported
            OrderNotFoundError: If the order does not exist
            OrderNotPayableError: If the caller does not own the order or it
                is no longer pending
            PaymentAlreadyExistsError: If the order already has a payment
            GatewayRejectedError: If the provider declined the payment
            GatewayUnreachableError: If the provider could not be reached
        """
        method = self._parse_method(method)

        logger.info(
            "Creating payment",
            order_id=str(order_id),
            buyer_id=str(buyer_id),
            method=method.value,
        )

        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if order.buyer_id != buyer_id:
            raise OrderNotPayableError(order_id, "order belongs to another buyer")

        if order.status != OrderStatus.PENDING:
            raise OrderNotPayableError(
                order_id,
                "order is not pending",
                order_status=order.status.value,
            )

        if await self.repository.get_payment_by_order_id(order_id) is not None:
            raise PaymentAlreadyExistsError(order_id)

        gateway = None
        if method.uses_gateway:
            gateway = self.gateways.get(method)
            if gateway is None:
                raise InvalidMethodError(method.value)

        provider_reference = (
            RedirectGatewayClient.new_order_code()
            if method == PaymentMethod.REDIRECT_GATEWAY
            else None
        )

        payment = await self.repository.create_payment(
            order_id=order.id,
            buyer_id=buyer_id,
            method=method,
            amount=order.total_price,
            provider_reference=provider_reference,
        )
        result = serialize_payment(payment)

        if gateway is None:
            logger.info(
                "Cash on delivery payment accepted",
                payment_id=result["id"],
                order_id=str(order_id),
            )
            return {"payment": result, "display_payload": None}

        try:
            gateway_result = await gateway.request_payment(
                GatewayRequest(
                    order_id=order.id,
                    amount=payment.amount,
                    provider_reference=provider_reference,
                )
            )
        except GatewayError as e:
            logger.error(
                "Gateway dispatch failed",
                payment_id=result["id"],
                order_id=str(order_id),
                method=method.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.repository.settle_payment(
                payment_id=payment.id,
                order_id=order.id,
                new_status=PaymentStatus.FAILED,
                order_status=OrderStatus.REJECTED,
                failure_reason=f"{e.code}: {e}",
            )
            raise

        await self.repository.record_gateway_result(
            payment.id,
            gateway_result.reference_code,
            gateway_result.display_payload,
        )
        result["provider_reference"] = gateway_result.reference_code

        logger.info(
            "Gateway payment created",
            payment_id=result["id"],
            order_id=str(order_id),
            method=method.value,
            provider_reference=gateway_result.reference_code,
        )

        return {"payment": result, "display_payload": gateway_result.display_payload}

    async def get_payment_status(
        self,
        order_id: uuid.UUID,
        requester_id: uuid.UUID,
    ) -> dict[str, Any]:
        """
        Report the current payment and order status to the order's buyer.

        Raises:
            OrderNotFoundError: If the order does not exist
            ForbiddenError: If the requester is not the order's buyer
            PaymentNotFoundError: If no payment was created for the order
        """
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if order.buyer_id != requester_id:
            raise ForbiddenError(
                "Order belongs to another buyer",
                code="ORDER_FORBIDDEN",
                order_id=str(order_id),
            )

        payment = await self.repository.get_payment_by_order_id(order_id)
        if payment is None:
            raise PaymentNotFoundError(order_id)

        return {
            "order_id": str(order.id),
            "order_status": order.status.value,
            "payment_id": str(payment.id),
            "payment_status": payment.status.value,
            "method": payment.method.value,
            "amount": str(payment.amount),
            "transaction_id": payment.transaction_id,
            "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
            "display_payload": payment.display_payload,
        }

    def add_delivery_listener(self, listener: DeliveryListener) -> None:
        self.delivery_listeners.append(listener)

    async def record_cod_delivery(
        self,
        order_id: uuid.UUID,
        actor_id: uuid.UUID,
        is_admin: bool = False,
    ) -> dict[str, Any]:
        """
        Report that a cash on delivery order was handed over and paid.

        No payment transition is applied here: the event is published to
        the registered delivery listeners, which own the settlement policy.

        Raises:
            OrderNotFoundError: If the order does not exist
            ForbiddenError: If a seller without items in the order reports it
            PaymentNotFoundError: If the order has no payment
            InvalidMethodError: If the payment is not cash on delivery
        """
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if not is_admin and not any(item.seller_id == actor_id for item in order.line_items):
            raise ForbiddenError(
                "Only sellers of this order may report delivery",
                code="ORDER_FORBIDDEN",
                order_id=str(order_id),
            )

        payment = await self.repository.get_payment_by_order_id(order_id)
        if payment is None:
            raise PaymentNotFoundError(order_id)

        if payment.method != PaymentMethod.CASH_ON_DELIVERY:
            raise InvalidMethodError(payment.method.value)

        event = {
            "event": "cod_delivery_confirmed",
            "order_id": str(order.id),
            "payment_id": str(payment.id),
            "amount": str(payment.amount),
            "reported_by": str(actor_id),
            "reported_at": datetime.now(timezone.utc).isoformat(),
        }
        for listener in self.delivery_listeners:
            listener(event)

        logger.info(
            "Cash on delivery confirmation recorded",
            order_id=str(order_id),
            payment_id=str(payment.id),
            listener_count=len(self.delivery_listeners),
        )

        return {
            "order_id": str(order.id),
            "payment_status": payment.status.value,
            "acknowledged": True,
        }

    @staticmethod
    def _parse_method(method: Union[PaymentMethod, str]) -> PaymentMethod:
        if isinstance(method, PaymentMethod):
            return method
        try:
            return PaymentMethod(str(method).lower())
        except ValueError as e:
            raise InvalidMethodError(method) from e
