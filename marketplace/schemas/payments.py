"""
Payment Pydantic schemas for API request/response validation.

Callback schemas describe the wire formats of the two gateways and are
normalized into a single
:class:`~marketplace.services.payments.reconciler.CallbackNotification`
before they reach the reconciler.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from marketplace.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus
from marketplace.services.payments.reconciler import CallbackNotification, CallbackOutcome

QR_SUCCESS_STATUS = "SUCCESS"
REDIRECT_SUCCESS_STATUS = "PAID"


class PaymentCreateRequest(BaseModel):
    """Request schema for paying an order."""

    order_id: UUID = Field(
        ...,
        description="Order to pay",
    )
    method: PaymentMethod = Field(
        ...,
        description="cash_on_delivery, qr_gateway or redirect_gateway",
    )

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "123e4567-e89b-12d3-a456-426614174000",
                    "method": "qr_gateway",
                }
            ]
        }
    }


class PaymentResponse(BaseModel):
    id: UUID
    order_id: UUID
    method: PaymentMethod
    amount: Decimal
    status: PaymentStatus
    provider_reference: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None


class PaymentCreateResponse(BaseModel):
    """
    Created payment.

    ``display_payload`` holds what the buyer needs to complete a gateway
    payment: ``qr_data_url`` for the QR gateway, ``checkout_url`` for the
    redirect gateway. It is ``None`` for cash on delivery.
    """

    payment: PaymentResponse
    display_payload: Optional[dict[str, Any]] = None


class PaymentStatusResponse(BaseModel):
    order_id: UUID
    order_status: OrderStatus
    payment_id: UUID
    payment_status: PaymentStatus
    method: PaymentMethod
    amount: Decimal
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    display_payload: Optional[dict[str, Any]] = None


class QRCallbackRequest(BaseModel):
    """Body the QR gateway posts when a transfer completes or fails."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    order_id: str = Field(..., alias="orderId", min_length=1)
    status: str = Field(..., min_length=1)
    transaction_id: Optional[str] = Field(None, alias="transactionId")

    def to_notification(self) -> CallbackNotification:
        return CallbackNotification(
            order_reference=self.order_id,
            outcome=(
                CallbackOutcome.SUCCESS
                if self.status.strip().upper() == QR_SUCCESS_STATUS
                else CallbackOutcome.FAILURE
            ),
            transaction_id=self.transaction_id,
            source="qr_gateway",
        )


class RedirectCallbackQuery(BaseModel):
    """
    Query string the redirect gateway appends to the return and cancel URLs.

    ``order_code`` is the numeric provider reference stored on the payment.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    order_code: str = Field(..., alias="orderCode", min_length=1)
    status: Optional[str] = None
    code: Optional[str] = None
    id: Optional[str] = None
    cancel: Optional[bool] = None
    signature: Optional[str] = None

    def signed_fields(self) -> dict[str, Any]:
        """Fields covered by the provider signature, in wire form."""
        return {
            "cancel": None if self.cancel is None else str(self.cancel).lower(),
            "code": self.code,
            "id": self.id,
            "orderCode": self.order_code,
            "status": self.status,
        }

    def to_notification(self, cancelled: bool = False) -> CallbackNotification:
        paid = (
            not cancelled
            and not self.cancel
            and (self.status or "").strip().upper() == REDIRECT_SUCCESS_STATUS
        )
        return CallbackNotification(
            order_reference=self.order_code,
            outcome=CallbackOutcome.SUCCESS if paid else CallbackOutcome.FAILURE,
            transaction_id=self.id,
            source="redirect_gateway",
        )


class CallbackAcknowledgement(BaseModel):
    acknowledged: bool
    duplicate: bool
    payment_status: PaymentStatus


class CODDeliveryResponse(BaseModel):
    order_id: UUID
    payment_status: PaymentStatus
    acknowledged: bool
