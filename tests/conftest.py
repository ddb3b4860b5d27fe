"""
Pytest configuration and shared test fixtures.

This module provides the FastAPI test client, bearer token helpers and
factories for transient ORM objects used across the service tests. Tests
never touch a real database: repositories are replaced with ``AsyncMock``
objects and the API tests override service dependencies.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "development")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("APP_NOTIFICATIONS_ENABLED", "false")
os.environ.setdefault("APP_CELERY_TASK_ALWAYS_EAGER", "true")

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient

from marketplace.core.security import Role, create_access_token
from marketplace.database.models import (
    Address,
    LineItem,
    Order,
    Payment,
    Product,
    Voucher,
)
from marketplace.services.orders.enums import (
    LineItemStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from marketplace.services.pricing.engine import DiscountType


# ============================================================================
# Identities
# ============================================================================


@pytest.fixture
def buyer_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def seller_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def other_seller_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """
    Build an Authorization header for a user and role.

    Example:
        headers = auth_headers(buyer_id, Role.BUYER)
    """

    def _headers(
        user_id: uuid.UUID, role: Role = Role.BUYER, email: Optional[str] = None
    ) -> dict[str, str]:
        token = create_access_token(user_id, role, email)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ============================================================================
# Model factories
# ============================================================================


@pytest.fixture
def make_product() -> Callable[..., Product]:
    def _make(
        seller_id: uuid.UUID,
        price: str = "100.00",
        is_active: bool = True,
        product_id: Optional[uuid.UUID] = None,
    ) -> Product:
        return Product(
            id=product_id or uuid.uuid4(),
            seller_id=seller_id,
            title="Test product",
            price=Decimal(price),
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_address() -> Callable[..., Address]:
    def _make(user_id: uuid.UUID, is_default: bool = True) -> Address:
        return Address(
            id=uuid.uuid4(),
            user_id=user_id,
            recipient_name="Nguyen Van A",
            phone="0900000000",
            street="1 Le Loi",
            city="Ho Chi Minh City",
            state=None,
            postal_code="700000",
            country="VN",
            is_default=is_default,
        )

    return _make


@pytest.fixture
def make_voucher() -> Callable[..., Voucher]:
    def _make(
        code: str = "SAVE10",
        discount_type: DiscountType = DiscountType.PERCENTAGE,
        value: str = "10",
        min_order_value: str = "0",
        max_discount: Optional[str] = None,
        usage_limit: Optional[int] = None,
        used_count: int = 0,
        valid_until: Optional[datetime] = None,
        is_active: bool = True,
    ) -> Voucher:
        return Voucher(
            id=uuid.uuid4(),
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(value),
            min_order_value=Decimal(min_order_value),
            max_discount=Decimal(max_discount) if max_discount is not None else None,
            usage_limit=usage_limit,
            used_count=used_count,
            valid_until=valid_until,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_order() -> Callable[..., Order]:
    """
    Build a transient order with line items.

    ``items`` is a list of ``(seller_id, status)`` tuples.
    """

    def _make(
        buyer_id: uuid.UUID,
        items: list[tuple[uuid.UUID, LineItemStatus]],
        status: OrderStatus = OrderStatus.PENDING,
        total_price: str = "200.00",
        buyer_email: Optional[str] = "buyer@example.com",
    ) -> Order:
        order = Order(
            id=uuid.uuid4(),
            buyer_id=buyer_id,
            buyer_email=buyer_email,
            address_id=uuid.uuid4(),
            shipping_address={"city": "Ho Chi Minh City"},
            subtotal=Decimal(total_price),
            discount_amount=Decimal("0.00"),
            total_price=Decimal(total_price),
            status=status,
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        order.line_items = [
            LineItem(
                id=uuid.uuid4(),
                order_id=order.id,
                product_id=uuid.uuid4(),
                seller_id=item_seller,
                quantity=1,
                unit_price_snapshot=Decimal("100.00"),
                status=item_status,
            )
            for item_seller, item_status in items
        ]
        return order

    return _make


@pytest.fixture
def make_payment() -> Callable[..., Payment]:
    def _make(
        order: Order,
        method: PaymentMethod = PaymentMethod.QR_GATEWAY,
        status: PaymentStatus = PaymentStatus.PENDING,
        provider_reference: Optional[str] = None,
        **extra: Any,
    ) -> Payment:
        return Payment(
            id=uuid.uuid4(),
            order_id=order.id,
            buyer_id=order.buyer_id,
            method=method,
            amount=order.total_price,
            status=status,
            provider_reference=provider_reference,
            **extra,
        )

    return _make


# ============================================================================
# Application
# ============================================================================


@pytest.fixture(scope="function")
def test_client() -> Generator[TestClient, None, None]:
    """
    Create a synchronous test client for the FastAPI application.

    Dependency overrides installed by a test are removed afterwards.
    """
    from marketplace.main import app

    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
