"""
Domain exception hierarchy shared by services and the HTTP layer.

Every error carries a stable machine readable ``code`` and arbitrary keyword
context that is logged alongside it. The category base classes define the
HTTP status the API layer answers with, so services never import FastAPI.
"""

from typing import Any, Optional


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context


# ============================================================================
# Categories
# ============================================================================


class ValidationError(MarketplaceError):
    """Request is well formed but violates a business rule."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(MarketplaceError):
    status_code = 404
    default_code = "NOT_FOUND"


class AuthorizationError(MarketplaceError):
    """Caller is authenticated but not allowed to act on the resource."""

    status_code = 403
    default_code = "FORBIDDEN"


class ConflictError(MarketplaceError):
    """Resource state does not permit the requested change."""

    status_code = 409
    default_code = "CONFLICT"


class GatewayError(MarketplaceError):
    """Base exception for payment provider outcomes."""

    status_code = 502
    default_code = "GATEWAY_ERROR"


# ============================================================================
# Order placement
# ============================================================================


class AddressNotFoundError(NotFoundError):
    def __init__(self, buyer_id: Any, address_id: Any = None):
        super().__init__(
            "Shipping address not found",
            code="ADDRESS_NOT_FOUND",
            buyer_id=str(buyer_id),
            address_id=str(address_id) if address_id else None,
        )


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: Any):
        super().__init__(
            f"Product {product_id} not found",
            code="PRODUCT_NOT_FOUND",
            product_id=str(product_id),
        )


class InvalidQuantityError(ValidationError):
    def __init__(self, product_id: Any, quantity: int):
        super().__init__(
            f"Quantity must be at least 1 for product {product_id}",
            code="INVALID_QUANTITY",
            product_id=str(product_id),
            quantity=quantity,
        )


class InvalidVoucherError(ValidationError):
    def __init__(self, voucher_code: str, reason: str):
        super().__init__(
            f"Voucher {voucher_code} cannot be used: {reason}",
            code="INVALID_VOUCHER",
            voucher_code=voucher_code,
            reason=reason,
        )


class InsufficientInventoryError(ValidationError):
    """Raised when stock cannot cover a requested quantity."""

    def __init__(self, product_id: Any, requested: int, available: Optional[int] = None):
        super().__init__(
            f"Insufficient inventory for product {product_id}",
            code="INSUFFICIENT_INVENTORY",
            product_id=str(product_id),
            requested=requested,
            available=available,
        )


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: Any):
        super().__init__(
            f"Order {order_id} not found",
            code="ORDER_NOT_FOUND",
            order_id=str(order_id),
        )


# ============================================================================
# Payments
# ============================================================================


class InvalidMethodError(ValidationError):
    def __init__(self, method: Any):
        super().__init__(
            f"Unsupported payment method: {method}",
            code="INVALID_METHOD",
            method=str(method),
        )


class OrderNotPayableError(ConflictError):
    """Order is not owned by the caller or is no longer pending."""

    def __init__(self, order_id: Any, reason: str, **context: Any):
        super().__init__(
            f"Order {order_id} cannot be paid: {reason}",
            code="ORDER_NOT_PAYABLE",
            order_id=str(order_id),
            reason=reason,
            **context,
        )


class PaymentAlreadyExistsError(ConflictError):
    def __init__(self, order_id: Any):
        super().__init__(
            f"A payment already exists for order {order_id}",
            code="PAYMENT_ALREADY_EXISTS",
            order_id=str(order_id),
        )


class PaymentNotFoundError(NotFoundError):
    def __init__(self, order_id: Any):
        super().__init__(
            f"No payment found for order {order_id}",
            code="PAYMENT_NOT_FOUND",
            order_id=str(order_id),
        )


class UnknownOrderError(NotFoundError):
    """Callback refers to an order or provider reference with no payment."""

    def __init__(self, order_reference: str):
        super().__init__(
            f"No payment matches reference {order_reference}",
            code="UNKNOWN_ORDER",
            order_reference=order_reference,
        )


class GatewayRejectedError(GatewayError):
    """Provider answered and declined the request. Terminal."""

    status_code = 402
    default_code = "GATEWAY_REJECTED"


class GatewayUnreachableError(GatewayError):
    """Provider could not be reached or timed out. Outcome unknown."""

    status_code = 502
    default_code = "GATEWAY_UNREACHABLE"


# ============================================================================
# Fulfillment
# ============================================================================


class ForbiddenError(AuthorizationError):
    pass


class LineItemNotFoundError(NotFoundError):
    def __init__(self, line_item_id: Any):
        super().__init__(
            f"Line item {line_item_id} not found",
            code="LINE_ITEM_NOT_FOUND",
            line_item_id=str(line_item_id),
        )


class InvalidTransitionError(ConflictError):
    """Raised when a status change is not a legal successor."""

    def __init__(self, current_state: Any, target_state: Any, **context: Any):
        current = getattr(current_state, "value", current_state)
        target = getattr(target_state, "value", target_state)
        super().__init__(
            f"Cannot transition from {current} to {target}",
            code="INVALID_TRANSITION",
            current_state=current,
            target_state=target,
            **context,
        )
        self.current_state = current_state
        self.target_state = target_state


class OrderNotFulfillableError(ConflictError):
    def __init__(self, order_id: Any, order_status: Any, **context: Any):
        status = getattr(order_status, "value", order_status)
        super().__init__(
            f"Order {order_id} is not ready for fulfillment ({status})",
            code="ORDER_NOT_FULFILLABLE",
            order_id=str(order_id),
            order_status=status,
            **context,
        )


# ============================================================================
# Infrastructure
# ============================================================================


class RepositoryError(MarketplaceError):
    """Wraps unexpected persistence failures."""

    default_code = "REPOSITORY_ERROR"
