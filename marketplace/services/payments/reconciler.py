"""
Idempotent settlement of gateway callbacks.

Providers deliver at least once and may repeat or reorder notifications. A
payment is settled by the first notification that finds it pending; every
later delivery for the same payment is acknowledged as a duplicate without
writing anything.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from marketplace.core.exceptions import UnknownOrderError
from marketplace.core.logging import get_logger
from marketplace.database.models.payment import Payment
from marketplace.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus
from marketplace.services.payments.repository import PaymentRepository

logger = get_logger(__name__)


class CallbackOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class CallbackNotification:
    """
    Provider notification normalized from any gateway's callback format.

    Attributes:
        order_reference: Order id or provider reference (numeric order code)
        outcome: Whether the provider reports the payment as completed
        transaction_id: Provider transaction identifier, if sent
        source: Payment method of the gateway that sent the notification;
            only payments made with that method can be settled by it
    """

    order_reference: str
    outcome: CallbackOutcome
    transaction_id: Optional[str] = None
    source: str = PaymentMethod.QR_GATEWAY.value


class CallbackReconciler:
    """Applies gateway notifications to payments exactly once."""

    def __init__(self, repository: PaymentRepository):
        self.repository = repository

    async def handle_callback(self, notification: CallbackNotification) -> dict[str, Any]:
        """
        Settle the payment a notification refers to.

        Returns:
            Acknowledgement with the payment status after handling and
            whether the notification was a duplicate

        Raises:
            UnknownOrderError: If no payment matches the order reference, or
                the matching payment was not made through the notifying gateway
        """
        payment = await self._resolve_payment(notification.order_reference)
        if payment is None:
            logger.warning(
                "Callback for unknown order",
                order_reference=notification.order_reference,
                source=notification.source,
            )
            raise UnknownOrderError(notification.order_reference)

        if not self._source_matches(payment, notification.source):
            logger.warning(
                "Callback source does not match payment method",
                order_reference=notification.order_reference,
                source=notification.source,
                payment_method=payment.method.value,
            )
            raise UnknownOrderError(notification.order_reference)

        payment_id = payment.id
        order_id = payment.order_id
        log_context = {
            "payment_id": str(payment_id),
            "order_id": str(order_id),
            "source": notification.source,
            "outcome": notification.outcome.value,
        }

        if payment.status.is_terminal():
            logger.info(
                "Duplicate callback ignored",
                payment_status=payment.status.value,
                **log_context,
            )
            return self._acknowledge(payment.status, duplicate=True)

        if notification.outcome == CallbackOutcome.SUCCESS:
            new_status = PaymentStatus.PAID
            applied = await self.repository.settle_payment(
                payment_id=payment_id,
                order_id=order_id,
                new_status=PaymentStatus.PAID,
                order_status=OrderStatus.PAID,
                transaction_id=notification.transaction_id,
                paid_at=datetime.now(timezone.utc),
            )
        else:
            new_status = PaymentStatus.FAILED
            applied = await self.repository.settle_payment(
                payment_id=payment_id,
                order_id=order_id,
                new_status=PaymentStatus.FAILED,
                order_status=OrderStatus.REJECTED,
                transaction_id=notification.transaction_id,
                failure_reason=f"Provider reported failure via {notification.source}",
            )

        if not applied:
            # A concurrent delivery settled the payment first.
            current = await self.repository.get_payment_by_order_id(order_id)
            status = current.status if current is not None else new_status
            logger.info(
                "Concurrent callback lost settlement race",
                payment_status=status.value,
                **log_context,
            )
            return self._acknowledge(status, duplicate=True)

        logger.info("Callback settled payment", payment_status=new_status.value, **log_context)
        return self._acknowledge(new_status, duplicate=False)

    async def _resolve_payment(self, order_reference: str) -> Optional[Payment]:
        reference = (order_reference or "").strip()
        if not reference:
            return None

        try:
            order_id = uuid.UUID(reference)
        except ValueError:
            order_id = None

        if order_id is not None:
            payment = await self.repository.get_payment_by_order_id(order_id)
            if payment is not None:
                return payment

        return await self.repository.get_payment_by_provider_reference(reference)

    @staticmethod
    def _source_matches(payment: Payment, source: str) -> bool:
        try:
            method = PaymentMethod(source)
        except ValueError:
            return False
        return method.uses_gateway and payment.method == method

    @staticmethod
    def _acknowledge(status: PaymentStatus, duplicate: bool) -> dict[str, Any]:
        return {
            "acknowledged": True,
            "duplicate": duplicate,
            "payment_status": status.value,
        }
