"""
Test suite for database helpers and model behaviour.

No database server is needed: session handling is exercised against a
mocked session factory and models are used as transient objects.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from marketplace.database import connection
from marketplace.database.connection import (
    check_database_health,
    get_session,
    to_async_database_url,
)
from marketplace.services.orders.enums import LineItemStatus
from marketplace.services.pricing.engine import DiscountType


# ============================================================================
# Connection Helper Tests
# ============================================================================


class TestDatabaseUrl:
    def test_plain_url_uses_asyncpg(self):
        assert to_async_database_url("postgresql://u:p@db:5432/shop") == (
            "postgresql+asyncpg://u:p@db:5432/shop"
        )

    def test_async_url_unchanged(self):
        url = "postgresql+asyncpg://u:p@db:5432/shop"

        assert to_async_database_url(url) == url


class TestGetSession:
    """Test suite for the session context manager."""

    @pytest.fixture
    def mock_session(self) -> AsyncMock:
        session = AsyncMock()
        factory = MagicMock(return_value=session)
        with patch.object(connection, "get_session_factory", return_value=factory):
            yield session

    @pytest.mark.asyncio
    async def test_commits_on_success(self, mock_session):
        async with get_session() as session:
            assert session is mock_session

        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_called()
        mock_session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, mock_session):
        with pytest.raises(ValueError):
            async with get_session():
                raise ValueError("boom")

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_called()
        mock_session.close.assert_awaited_once()


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_unreachable_database(self):
        engine = MagicMock()
        engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("refused"))

        with patch.object(connection, "get_engine", return_value=engine):
            assert await check_database_health(max_retries=2, retry_delay=0) is False

        assert engine.connect.call_count == 2


# ============================================================================
# Model Tests
# ============================================================================


class TestVoucherAvailability:
    """Test suite for voucher redemption checks."""

    def test_redeemable(self, make_voucher):
        assert make_voucher().unavailable_reason() is None

    def test_inactive(self, make_voucher):
        assert make_voucher(is_active=False).unavailable_reason() == "inactive"

    def test_expired(self, make_voucher):
        voucher = make_voucher(valid_until=datetime.now(timezone.utc) - timedelta(minutes=1))

        assert voucher.unavailable_reason() == "expired"

    def test_not_yet_expired(self, make_voucher):
        voucher = make_voucher(valid_until=datetime.now(timezone.utc) + timedelta(days=1))

        assert voucher.unavailable_reason() is None

    def test_usage_limit_reached(self, make_voucher):
        voucher = make_voucher(usage_limit=3, used_count=3)

        assert voucher.unavailable_reason() == "usage limit reached"

    def test_to_terms(self, make_voucher):
        terms = make_voucher(
            discount_type=DiscountType.FIXED, value="5", min_order_value="30"
        ).to_terms()

        assert terms.discount_type == DiscountType.FIXED
        assert terms.value == Decimal("5")
        assert terms.min_order_value == Decimal("30")
        assert terms.code == "SAVE10"


class TestOrderModels:
    def test_address_snapshot(self, make_address):
        address = make_address(uuid.uuid4())

        snapshot = address.snapshot()

        assert snapshot["city"] == "Ho Chi Minh City"
        assert "id" not in snapshot

    def test_line_total(self, make_order, buyer_id, seller_id):
        order = make_order(buyer_id, [(seller_id, LineItemStatus.PENDING)])
        item = order.line_items[0]
        item.quantity = 3

        assert item.line_total == Decimal("300.00")

    def test_line_items_link_back_to_order(self, make_order, buyer_id, seller_id):
        order = make_order(buyer_id, [(seller_id, LineItemStatus.PENDING)])

        assert order.line_items[0].order is order
        assert order.is_owned_by(buyer_id)

    def test_to_dict_serializes_values(self, make_order, buyer_id, seller_id):
        order = make_order(buyer_id, [(seller_id, LineItemStatus.PENDING)])

        data = order.to_dict()

        assert data["id"] == str(order.id)
        assert data["total_price"] == "200.00"
        assert data["status"] == "pending"
