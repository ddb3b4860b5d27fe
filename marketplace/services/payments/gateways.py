"""
Payment gateway clients.

Two providers are supported:

* the QR gateway returns a scannable bank transfer code for the order
* the redirect gateway returns a hosted checkout URL; requests are signed
  with HMAC-SHA256 using the merchant checksum key

Clients only talk to providers. They never touch persistence: every call
either returns a :class:`GatewayResult` or raises
:class:`~marketplace.core.exceptions.GatewayRejectedError` (the provider
answered and declined) or
:class:`~marketplace.core.exceptions.GatewayUnreachableError` (the provider
could not be reached or the outcome is unknown).
"""

import asyncio
import hashlib
import hmac
import secrets
import time
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import httpx

from marketplace.core.config import Settings, get_settings
from marketplace.core.exceptions import GatewayRejectedError, GatewayUnreachableError
from marketplace.core.logging import get_logger, log_performance
from marketplace.services.orders.enums import PaymentMethod

logger = get_logger(__name__)

SUCCESS_CODE = "00"
MAX_DESCRIPTION_LENGTH = 25


@dataclass(frozen=True)
class GatewayRequest:
    """What a gateway needs to open a payment for an order."""

    order_id: uuid.UUID
    amount: Decimal
    provider_reference: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class GatewayResult:
    """
    Successful gateway response.

    Attributes:
        reference_code: Provider side identifier used to match callbacks
        display_payload: Data the buyer needs to pay (QR data or checkout URL)
    """

    reference_code: str
    display_payload: dict[str, Any] = field(default_factory=dict)


def to_minor_amount(amount: Decimal) -> int:
    """Providers expect whole currency units."""
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sign_payload(data: dict[str, Any], checksum_key: str) -> str:
    """
    HMAC-SHA256 signature over ``key=value`` pairs sorted by key and joined by ``&``.

    ``None`` values are signed as empty strings.
    """
    canonical = "&".join(
        f"{key}={'' if data[key] is None else data[key]}" for key in sorted(data)
    )
    return hmac.new(
        checksum_key.encode("utf-8"),
        canonical.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class GatewayClient:
    """
    Base class for gateway clients with bounded timeouts and retry logic.

    Only connection failures that happened before the request reached the
    provider are retried. A read timeout is never retried because the
    provider may already have created the payment.
    """

    method: PaymentMethod

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        max_retries: Optional[int] = None,
        initial_backoff: float = 0.5,
        max_backoff: float = 4.0,
        backoff_multiplier: float = 2.0,
    ):
        """
        Initialize gateway client.

        Args:
            http_client: Shared AsyncClient; a private one is created if omitted
            settings: Application settings (defaults to cached settings)
            max_retries: Retries for connection failures
            initial_backoff: Initial backoff delay in seconds
            max_backoff: Maximum backoff delay in seconds
            backoff_multiplier: Backoff multiplier for exponential backoff
        """
        self.settings = settings or get_settings()
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.gateway_timeout_seconds)
        )
        self.max_retries = (
            self.settings.gateway_max_retries if max_retries is None else max_retries
        )
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier

    async def request_payment(self, request: GatewayRequest) -> GatewayResult:
        raise NotImplementedError

    def _calculate_backoff(self, attempt: int) -> float:
        return min(
            self.initial_backoff * (self.backoff_multiplier**attempt),
            self.max_backoff,
        )

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        order_id: uuid.UUID,
    ) -> dict[str, Any]:
        """
        POST a JSON payload and return the decoded JSON response.

        Raises:
            GatewayRejectedError: On HTTP 4xx
            GatewayUnreachableError: On connection failure, timeout, HTTP 5xx
                or an undecodable response
        """
        context = {"method": self.method.value, "order_id": str(order_id)}
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                with log_performance(logger, "gateway_request", **context):
                    response = await self.http_client.post(url, json=payload, headers=headers)
                break
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                last_error = e
                logger.warning(
                    "Gateway connection failed",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    error=str(e),
                    **context,
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self._calculate_backoff(attempt))
            except httpx.TimeoutException as e:
                logger.error("Gateway request timed out", error=str(e), **context)
                raise GatewayUnreachableError(
                    "Payment gateway timed out",
                    code="GATEWAY_TIMEOUT",
                    **context,
                ) from e
            except httpx.HTTPError as e:
                logger.error(
                    "Gateway transport error",
                    error=str(e),
                    error_type=type(e).__name__,
                    **context,
                )
                raise GatewayUnreachableError(
                    "Payment gateway transport error",
                    error=str(e),
                    **context,
                ) from e
        else:
            raise GatewayUnreachableError(
                f"Payment gateway unreachable after {self.max_retries + 1} attempts",
                last_error=str(last_error),
                **context,
            ) from last_error

        if response.status_code >= 500:
            logger.error(
                "Gateway server error",
                status_code=response.status_code,
                **context,
            )
            raise GatewayUnreachableError(
                "Payment gateway server error",
                status_code=response.status_code,
                **context,
            )

        if response.status_code >= 400:
            logger.warning(
                "Gateway rejected request",
                status_code=response.status_code,
                **context,
            )
            raise GatewayRejectedError(
                "Payment gateway rejected the request",
                status_code=response.status_code,
                **context,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayUnreachableError(
                "Payment gateway returned an invalid response",
                **context,
            ) from e

        if not isinstance(body, dict):
            raise GatewayUnreachableError(
                "Payment gateway returned an invalid response",
                **context,
            )

        return body

    def _require_success(
        self, body: dict[str, Any], payload_key: str, order_id: uuid.UUID
    ) -> dict[str, Any]:
        """Return ``body["data"]`` when the provider reported success."""
        code = str(body.get("code", ""))
        data = body.get("data") or {}

        if code != SUCCESS_CODE:
            logger.warning(
                "Gateway declined payment",
                method=self.method.value,
                order_id=str(order_id),
                provider_code=code,
                provider_message=body.get("desc"),
            )
            raise GatewayRejectedError(
                f"Payment gateway declined: {body.get('desc') or code}",
                provider_code=code,
                method=self.method.value,
                order_id=str(order_id),
            )

        if not isinstance(data, dict) or not data.get(payload_key):
            raise GatewayRejectedError(
                "Payment gateway response is missing payment data",
                code="GATEWAY_INVALID_PAYLOAD",
                method=self.method.value,
                order_id=str(order_id),
            )

        return data

    def _ensure_configured(self, order_id: uuid.UUID, *values: str) -> None:
        if not all(values):
            logger.error(
                "Payment gateway is not configured",
                method=self.method.value,
                order_id=str(order_id),
            )
            raise GatewayUnreachableError(
                "Payment gateway is not configured",
                code="GATEWAY_NOT_CONFIGURED",
                method=self.method.value,
            )

    async def aclose(self) -> None:
        await self.http_client.aclose()


class QRGatewayClient(GatewayClient):
    """Bank transfer QR code generator."""

    method = PaymentMethod.QR_GATEWAY

    async def request_payment(self, request: GatewayRequest) -> GatewayResult:
        """
        Request a QR code that pays ``request.amount`` for the order.

        The order id is embedded as the transfer memo so the provider
        callback can be matched back to the payment.
        """
        s = self.settings
        self._ensure_configured(
            request.order_id,
            s.qr_gateway_client_id,
            s.qr_gateway_api_key,
            s.qr_bank_account_no,
        )

        payload = {
            "accountNo": s.qr_bank_account_no,
            "accountName": s.qr_bank_account_name,
            "acqId": s.qr_bank_acq_id,
            "amount": to_minor_amount(request.amount),
            "addInfo": str(request.order_id),
            "format": "text",
            "template": s.qr_template,
            "callbackUrl": s.qr_callback_url,
        }
        headers = {
            "x-client-id": s.qr_gateway_client_id,
            "x-api-key": s.qr_gateway_api_key,
        }

        body = await self._post_json(s.qr_gateway_url, payload, headers, request.order_id)
        data = self._require_success(body, "qrDataURL", request.order_id)

        logger.info("QR code generated", order_id=str(request.order_id))

        return GatewayResult(
            reference_code=str(request.order_id),
            display_payload={
                "qr_data_url": data["qrDataURL"],
                "qr_code": data.get("qrCode"),
            },
        )


class RedirectGatewayClient(GatewayClient):
    """Hosted checkout gateway with signed requests."""

    method = PaymentMethod.REDIRECT_GATEWAY

    @staticmethod
    def new_order_code() -> str:
        """
        Numeric order code the provider requires, unique per payment.

        Millisecond timestamp followed by three random digits; stays below
        2**53 so the provider can hold it as a JSON number.
        """
        return str(int(time.time() * 1000) * 1000 + secrets.randbelow(1000))

    async def request_payment(self, request: GatewayRequest) -> GatewayResult:
        """
        Open a checkout session for the order.

        ``request.provider_reference`` must carry the numeric order code
        generated by :meth:`new_order_code`.
        """
        s = self.settings
        self._ensure_configured(
            request.order_id,
            s.redirect_gateway_client_id,
            s.redirect_gateway_api_key,
            s.redirect_gateway_checksum_key,
        )

        order_code = request.provider_reference or self.new_order_code()
        description = (request.description or f"Order {int(order_code) % 10000}")[
            :MAX_DESCRIPTION_LENGTH
        ]

        signed_fields = {
            "amount": to_minor_amount(request.amount),
            "cancelUrl": s.redirect_cancel_url,
            "description": description,
            "orderCode": int(order_code),
            "returnUrl": s.redirect_return_url,
        }
        payload = {
            **signed_fields,
            "signature": sign_payload(signed_fields, s.redirect_gateway_checksum_key),
        }
        headers = {
            "x-client-id": s.redirect_gateway_client_id,
            "x-api-key": s.redirect_gateway_api_key,
        }

        body = await self._post_json(
            s.redirect_gateway_url, payload, headers, request.order_id
        )
        data = self._require_success(body, "checkoutUrl", request.order_id)

        logger.info(
            "Checkout session created",
            order_id=str(request.order_id),
            order_code=order_code,
        )

        return GatewayResult(
            reference_code=order_code,
            display_payload={
                "checkout_url": data["checkoutUrl"],
                "payment_link_id": data.get("paymentLinkId"),
            },
        )

    def verify_signature(self, data: dict[str, Any], signature: Optional[str]) -> bool:
        """
        Check a provider signature over callback data.

        Returns:
            True if ``signature`` matches ``data`` under the checksum key
        """
        key = self.settings.redirect_gateway_checksum_key
        if not key or not signature:
            return False
        expected = sign_payload(data, key)
        return hmac.compare_digest(expected, signature)
