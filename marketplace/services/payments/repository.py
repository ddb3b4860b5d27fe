"""
Payment data access repository.

Payments are created once per order (``payments.order_id`` is unique) and
settled exactly once. Settlement is a conditional
``UPDATE ... WHERE status = 'pending'``; when it matches no row another
delivery already settled the payment and nothing else is written.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import PaymentAlreadyExistsError, RepositoryError
from marketplace.core.logging import get_logger
from marketplace.database.models.order import Order
from marketplace.database.models.payment import (
    ORDER_UNIQUE_CONSTRAINT,
    Payment,
    PaymentStatusHistory,
)
from marketplace.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus

logger = get_logger(__name__)


class PaymentRepository:
    """Repository for payment persistence and settlement."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_payment(
        self,
        order_id: uuid.UUID,
        buyer_id: uuid.UUID,
        method: PaymentMethod,
        amount: Decimal,
        provider_reference: Optional[str] = None,
    ) -> Payment:
        """
        Create the pending payment of an order.

        Raises:
            PaymentAlreadyExistsError: If the order already has a payment
            RepositoryError: If payment creation fails
        """
        try:
            payment = Payment(
                order_id=order_id,
                buyer_id=buyer_id,
                method=method,
                amount=amount,
                status=PaymentStatus.PENDING,
                provider_reference=provider_reference,
            )
            self.session.add(payment)
            await self.session.flush()

            self._add_history(payment.id, None, PaymentStatus.PENDING, "Payment created")
            await self.session.commit()

            logger.info(
                "Payment created successfully",
                payment_id=str(payment.id),
                order_id=str(order_id),
                method=method.value,
                amount=str(amount),
            )
            return payment

        except IntegrityError as e:
            await self.session.rollback()
            if ORDER_UNIQUE_CONSTRAINT in str(e.orig if e.orig is not None else e):
                logger.info("Duplicate payment rejected", order_id=str(order_id))
                raise PaymentAlreadyExistsError(order_id) from e
            logger.error(
                "Payment creation failed - integrity error",
                order_id=str(order_id),
                error=str(e),
            )
            raise RepositoryError(
                "Payment creation failed - constraint violation",
                order_id=str(order_id),
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Payment creation failed - database error",
                order_id=str(order_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RepositoryError(
                "Payment creation failed due to database error",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def record_gateway_result(
        self,
        payment_id: uuid.UUID,
        provider_reference: str,
        display_payload: dict[str, Any],
    ) -> None:
        """Store what the gateway returned for a still pending payment."""
        try:
            await self.session.execute(
                update(Payment)
                .where(Payment.id == payment_id)
                .values(
                    provider_reference=provider_reference,
                    display_payload=display_payload,
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Failed to record gateway result",
                payment_id=str(payment_id),
                error=str(e),
            )
            raise RepositoryError(
                "Failed to record gateway result",
                payment_id=str(payment_id),
                error=str(e),
            ) from e

    async def get_payment_by_order_id(self, order_id: uuid.UUID) -> Optional[Payment]:
        try:
            result = await self.session.execute(
                select(Payment).where(Payment.order_id == order_id)
            )
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to fetch payment",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def get_payment_by_provider_reference(
        self, provider_reference: str
    ) -> Optional[Payment]:
        try:
            result = await self.session.execute(
                select(Payment).where(Payment.provider_reference == provider_reference)
            )
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to fetch payment by provider reference",
                provider_reference=provider_reference,
                error=str(e),
            ) from e

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        try:
            result = await self.session.execute(select(Order).where(Order.id == order_id))
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to fetch order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def settle_payment(
        self,
        payment_id: uuid.UUID,
        order_id: uuid.UUID,
        new_status: PaymentStatus,
        order_status: OrderStatus,
        transaction_id: Optional[str] = None,
        paid_at: Optional[datetime] = None,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """
        Apply the one-time settlement of a payment and its order.

        The payment moves from pending to ``new_status`` and, in the same
        transaction, the order moves from pending to ``order_status``.

        Returns:
            True if this call applied the settlement, False if the payment
            was no longer pending

        Raises:
            RepositoryError: If the database update fails
        """
        values: dict[str, Any] = {"status": new_status}
        if transaction_id is not None:
            values["transaction_id"] = transaction_id
        if paid_at is not None:
            values["paid_at"] = paid_at
        if failure_reason is not None:
            values["failure_reason"] = failure_reason[:500]

        try:
            result = await self.session.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status == PaymentStatus.PENDING,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                await self.session.rollback()
                logger.info(
                    "Payment already settled",
                    payment_id=str(payment_id),
                    attempted_status=new_status.value,
                )
                return False

            self._add_history(
                payment_id,
                PaymentStatus.PENDING,
                new_status,
                failure_reason or f"Payment {new_status.value}",
            )

            order_result = await self.session.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
                .values(status=order_status)
                .execution_options(synchronize_session=False)
            )
            if order_result.rowcount != 1:
                logger.warning(
                    "Order was not pending during settlement",
                    order_id=str(order_id),
                    target_status=order_status.value,
                )

            await self.session.commit()

            logger.info(
                "Payment settled",
                payment_id=str(payment_id),
                order_id=str(order_id),
                payment_status=new_status.value,
                order_status=order_status.value,
            )
            return True

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Payment settlement failed",
                payment_id=str(payment_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RepositoryError(
                "Payment settlement failed",
                payment_id=str(payment_id),
                error=str(e),
            ) from e

    def _add_history(
        self,
        payment_id: uuid.UUID,
        from_status: Optional[PaymentStatus],
        to_status: PaymentStatus,
        reason: str,
    ) -> None:
        self.session.add(
            PaymentStatusHistory(
                payment_id=payment_id,
                from_status=from_status,
                to_status=to_status,
                reason=reason[:500],
            )
        )
