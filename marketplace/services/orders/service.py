"""
Order service assembling buyer orders.

The service resolves the shipping address and products, snapshots current
prices, prices the order with :class:`PricingEngine` and persists the order
and its line items in one transaction. Clients only ever supply product ids
and quantities; prices always come from the catalog.
"""

import uuid
from collections import OrderedDict
from typing import Any, Optional, Sequence

from marketplace.core.exceptions import (
    AddressNotFoundError,
    InvalidQuantityError,
    InvalidVoucherError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from marketplace.core.logging import get_logger, log_performance
from marketplace.database.models.catalog import Voucher
from marketplace.database.models.order import Order
from marketplace.services.addresses.repository import AddressRepository
from marketplace.services.catalog.repository import CatalogRepository
from marketplace.services.notifications.service import (
    NotificationPublisher,
    NotificationType,
)
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.pricing.engine import PricedLine, PricingEngine

logger = get_logger(__name__)


def serialize_order(order: Order) -> dict[str, Any]:
    """Public representation of an order and its line items."""
    payment = order.payment
    return {
        "id": str(order.id),
        "buyer_id": str(order.buyer_id),
        "status": order.status.value,
        "address_id": str(order.address_id),
        "shipping_address": order.shipping_address,
        "subtotal": str(order.subtotal),
        "discount_amount": str(order.discount_amount),
        "total_price": str(order.total_price),
        "voucher_code": order.voucher_code,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "payment_status": payment.status.value if payment is not None else None,
        "line_items": [
            {
                "id": str(item.id),
                "product_id": str(item.product_id),
                "seller_id": str(item.seller_id),
                "quantity": item.quantity,
                "unit_price": str(item.unit_price_snapshot),
                "status": item.status.value,
                "tracking_number": item.tracking_number,
            }
            for item in order.line_items
        ],
    }


class OrderService:
    """
    Order placement and retrieval.

    Attributes:
        repository: Order persistence
        catalog: Product and voucher lookups
        addresses: Address book lookups
        pricing_engine: Pure pricing calculator
        notifier: Fire-and-forget notification publisher
    """

    def __init__(
        self,
        repository: OrderRepository,
        catalog: CatalogRepository,
        addresses: AddressRepository,
        pricing_engine: Optional[PricingEngine] = None,
        notifier: Optional[NotificationPublisher] = None,
    ):
        self.repository = repository
        self.catalog = catalog
        self.addresses = addresses
        self.pricing_engine = pricing_engine or PricingEngine()
        self.notifier = notifier or NotificationPublisher()

    async def create_order(
        self,
        buyer_id: uuid.UUID,
        items: Sequence[dict[str, Any]],
        address_id: Optional[uuid.UUID] = None,
        voucher_code: Optional[str] = None,
        buyer_email: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Create a pending order from the buyer's selection.

        Args:
            buyer_id: Buyer placing the order
            items: Dicts with ``product_id`` and ``quantity``
            address_id: Shipping address; the buyer's default when omitted
            voucher_code: Optional voucher to apply
            buyer_email: Contact address for the confirmation email

        Returns:
            Serialized order including line items and price breakdown

        Raises:
            InvalidQuantityError: If a quantity is below 1 or no items are given
            ProductNotFoundError: If a product is unknown or inactive
            AddressNotFoundError: If no usable address exists
            InvalidVoucherError: If the voucher cannot be redeemed
            InsufficientInventoryError: If stock cannot cover a line
        """
        logger.info(
            "Creating order",
            buyer_id=str(buyer_id),
            item_count=len(items),
            has_voucher=bool(voucher_code),
        )

        quantities = self._merge_quantities(items)

        address = await self.addresses.get_buyer_address(buyer_id, address_id)
        if address is None:
            raise AddressNotFoundError(buyer_id, address_id)

        products = await self.catalog.get_active_products(quantities.keys())
        for product_id in quantities:
            if product_id not in products:
                raise ProductNotFoundError(product_id)

        voucher = await self._resolve_voucher(voucher_code) if voucher_code else None

        lines = [
            {
                "product_id": product_id,
                "seller_id": products[product_id].seller_id,
                "quantity": quantity,
                "unit_price": products[product_id].price,
            }
            for product_id, quantity in quantities.items()
        ]

        with log_performance(logger, "price_order", line_count=len(lines)):
            quote = self.pricing_engine.calculate(
                [PricedLine(line["unit_price"], line["quantity"]) for line in lines],
                voucher.to_terms() if voucher is not None else None,
            )

        if voucher is not None and not quote.voucher_applied:
            logger.info(
                "Voucher not applied",
                voucher_code=voucher.code,
                subtotal=str(quote.subtotal),
                min_order_value=str(voucher.min_order_value),
            )

        order = await self.repository.create_order_with_items(
            buyer_id=buyer_id,
            buyer_email=buyer_email,
            address_id=address.id,
            shipping_address=address.snapshot(),
            subtotal=quote.subtotal,
            discount_amount=quote.discount,
            total_price=quote.total,
            items=lines,
            voucher=voucher if quote.voucher_applied else None,
        )

        result = serialize_order(order)

        self.notifier.publish(
            NotificationType.ORDER_PLACED,
            buyer_email,
            {
                "order_id": result["id"],
                "created_at": result["created_at"],
                "items": result["line_items"],
                "subtotal": result["subtotal"],
                "discount_amount": result["discount_amount"],
                "total_price": result["total_price"],
                "voucher_code": result["voucher_code"],
            },
        )

        logger.info(
            "Order created",
            order_id=result["id"],
            buyer_id=str(buyer_id),
            total_price=result["total_price"],
        )

        return result

    async def get_order(self, order_id: uuid.UUID, requester_id: uuid.UUID) -> dict[str, Any]:
        """
        Fetch an order visible to the requester.

        Buyers see their own orders. Sellers see orders containing at least
        one of their items. Anyone else gets ``OrderNotFoundError``.
        """
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if order.buyer_id != requester_id and not any(
            item.seller_id == requester_id for item in order.line_items
        ):
            raise OrderNotFoundError(order_id)

        return serialize_order(order)

    def _merge_quantities(self, items: Sequence[dict[str, Any]]) -> "OrderedDict[uuid.UUID, int]":
        if not items:
            raise InvalidQuantityError(None, 0)

        quantities: "OrderedDict[uuid.UUID, int]" = OrderedDict()
        for item in items:
            product_id = item["product_id"]
            quantity = int(item["quantity"])
            if quantity < 1:
                raise InvalidQuantityError(product_id, quantity)
            quantities[product_id] = quantities.get(product_id, 0) + quantity

        return quantities

    async def _resolve_voucher(self, voucher_code: str) -> Voucher:
        voucher = await self.catalog.get_voucher_by_code(voucher_code)
        if voucher is None:
            raise InvalidVoucherError(voucher_code, "not found")

        reason = voucher.unavailable_reason()
        if reason is not None:
            raise InvalidVoucherError(voucher_code, reason)

        return voucher
