"""
Test suite for CallbackReconciler.

Gateway callbacks are delivered at least once; these tests check that a
payment settles exactly once and that repeated or late deliveries are
acknowledged without further writes.
"""

import uuid
from unittest.mock import AsyncMock

import pytest

from marketplace.core.exceptions import UnknownOrderError
from marketplace.services.orders.enums import (
    LineItemStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from marketplace.services.payments.reconciler import (
    CallbackNotification,
    CallbackOutcome,
    CallbackReconciler,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def order(make_order, buyer_id, seller_id):
    return make_order(buyer_id, [(seller_id, LineItemStatus.PENDING)])


@pytest.fixture
def pending_payment(order, make_payment):
    return make_payment(order, method=PaymentMethod.QR_GATEWAY)


@pytest.fixture
def mock_repository(pending_payment) -> AsyncMock:
    repository = AsyncMock()
    repository.get_payment_by_order_id = AsyncMock(return_value=pending_payment)
    repository.get_payment_by_provider_reference = AsyncMock(return_value=None)
    repository.settle_payment = AsyncMock(return_value=True)
    return repository


@pytest.fixture
def reconciler(mock_repository) -> CallbackReconciler:
    return CallbackReconciler(repository=mock_repository)


def success_for(order, transaction_id="TX-1") -> CallbackNotification:
    return CallbackNotification(
        order_reference=str(order.id),
        outcome=CallbackOutcome.SUCCESS,
        transaction_id=transaction_id,
        source="qr_gateway",
    )


# ============================================================================
# Settlement Tests
# ============================================================================


class TestSettlement:
    """Tests for the first delivery of a notification."""

    @pytest.mark.asyncio
    async def test_success_marks_payment_and_order_paid(
        self, reconciler, mock_repository, order, pending_payment
    ):
        # Act
        result = await reconciler.handle_callback(success_for(order))

        # Assert
        assert result == {
            "acknowledged": True,
            "duplicate": False,
            "payment_status": "paid",
        }
        kwargs = mock_repository.settle_payment.call_args.kwargs
        assert kwargs["payment_id"] == pending_payment.id
        assert kwargs["order_id"] == order.id
        assert kwargs["new_status"] == PaymentStatus.PAID
        assert kwargs["order_status"] == OrderStatus.PAID
        assert kwargs["transaction_id"] == "TX-1"
        assert kwargs["paid_at"] is not None

    @pytest.mark.asyncio
    async def test_failure_rejects_order(self, reconciler, mock_repository, order):
        notification = CallbackNotification(
            order_reference=str(order.id),
            outcome=CallbackOutcome.FAILURE,
            source="qr_gateway",
        )

        result = await reconciler.handle_callback(notification)

        assert result["payment_status"] == "failed"
        assert result["duplicate"] is False
        kwargs = mock_repository.settle_payment.call_args.kwargs
        assert kwargs["new_status"] == PaymentStatus.FAILED
        assert kwargs["order_status"] == OrderStatus.REJECTED
        assert "qr_gateway" in kwargs["failure_reason"]

    @pytest.mark.asyncio
    async def test_provider_reference_fallback(
        self, reconciler, mock_repository, order, make_payment
    ):
        """Test numeric order codes resolve through the provider reference."""
        # Arrange
        payment = make_payment(
            order,
            method=PaymentMethod.REDIRECT_GATEWAY,
            provider_reference="1700000000123",
        )
        mock_repository.get_payment_by_provider_reference.return_value = payment

        # Act
        result = await reconciler.handle_callback(
            CallbackNotification(
                "1700000000123",
                CallbackOutcome.SUCCESS,
                "TX-9",
                source="redirect_gateway",
            )
        )

        # Assert
        assert result["payment_status"] == "paid"
        mock_repository.get_payment_by_order_id.assert_not_called()
        mock_repository.get_payment_by_provider_reference.assert_awaited_once_with(
            "1700000000123"
        )


# ============================================================================
# Idempotency Tests
# ============================================================================


class TestDuplicates:
    """Tests for repeated and late deliveries."""

    @pytest.mark.asyncio
    async def test_repeated_success_is_duplicate(
        self, reconciler, mock_repository, order, pending_payment
    ):
        """Test a second identical delivery changes nothing."""
        # Arrange
        await reconciler.handle_callback(success_for(order))
        pending_payment.status = PaymentStatus.PAID
        mock_repository.settle_payment.reset_mock()

        # Act
        result = await reconciler.handle_callback(success_for(order))

        # Assert
        assert result == {
            "acknowledged": True,
            "duplicate": True,
            "payment_status": "paid",
        }
        mock_repository.settle_payment.assert_not_called()

    @pytest.mark.asyncio
    async def test_late_failure_does_not_undo_payment(
        self, reconciler, mock_repository, order, pending_payment
    ):
        pending_payment.status = PaymentStatus.PAID

        result = await reconciler.handle_callback(
            CallbackNotification(str(order.id), CallbackOutcome.FAILURE)
        )

        assert result["duplicate"] is True
        assert result["payment_status"] == "paid"
        mock_repository.settle_payment.assert_not_called()

    @pytest.mark.asyncio
    async def test_lost_race_reports_winner(
        self, reconciler, mock_repository, order, make_payment, pending_payment
    ):
        """Test a concurrent settlement is reported as a duplicate."""
        # Arrange
        settled = make_payment(order, status=PaymentStatus.FAILED)
        mock_repository.settle_payment.return_value = False
        mock_repository.get_payment_by_order_id.side_effect = [pending_payment, settled]

        # Act
        result = await reconciler.handle_callback(success_for(order))

        # Assert
        assert result["duplicate"] is True
        assert result["payment_status"] == "failed"


# ============================================================================
# Callback Source Tests
# ============================================================================


class TestCallbackSource:
    """Tests that a gateway can only settle payments made through it."""

    @pytest.mark.asyncio
    async def test_gateway_callback_never_settles_cash_on_delivery(
        self, reconciler, mock_repository, order, make_payment
    ):
        # Arrange
        mock_repository.get_payment_by_order_id.return_value = make_payment(
            order, method=PaymentMethod.CASH_ON_DELIVERY
        )

        # Act
        with pytest.raises(UnknownOrderError):
            await reconciler.handle_callback(success_for(order, transaction_id="TX-FAKE"))

        # Assert
        mock_repository.settle_payment.assert_not_called()

    @pytest.mark.asyncio
    async def test_qr_callback_for_redirect_payment_refused(
        self, reconciler, mock_repository, order, make_payment
    ):
        mock_repository.get_payment_by_order_id.return_value = make_payment(
            order, method=PaymentMethod.REDIRECT_GATEWAY, provider_reference="1700000000123"
        )

        with pytest.raises(UnknownOrderError):
            await reconciler.handle_callback(success_for(order))

        mock_repository.settle_payment.assert_not_called()

    @pytest.mark.asyncio
    async def test_redirect_callback_for_qr_payment_refused(
        self, reconciler, mock_repository, order, pending_payment
    ):
        mock_repository.get_payment_by_provider_reference.return_value = pending_payment

        with pytest.raises(UnknownOrderError):
            await reconciler.handle_callback(
                CallbackNotification(
                    str(order.id), CallbackOutcome.SUCCESS, source="redirect_gateway"
                )
            )

        mock_repository.settle_payment.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("source", ["cash_on_delivery", "gateway"])
    async def test_non_gateway_source_refused(
        self, reconciler, mock_repository, order, source
    ):
        with pytest.raises(UnknownOrderError):
            await reconciler.handle_callback(
                CallbackNotification(str(order.id), CallbackOutcome.SUCCESS, source=source)
            )

        mock_repository.settle_payment.assert_not_called()


# ============================================================================
# Unknown Order Tests
# ============================================================================


class TestUnknownOrder:
    @pytest.mark.asyncio
    async def test_unknown_uuid(self, reconciler, mock_repository):
        mock_repository.get_payment_by_order_id.return_value = None

        with pytest.raises(UnknownOrderError) as exc_info:
            await reconciler.handle_callback(
                CallbackNotification(str(uuid.uuid4()), CallbackOutcome.SUCCESS)
            )

        assert exc_info.value.code == "UNKNOWN_ORDER"
        mock_repository.settle_payment.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_order_code(self, reconciler, mock_repository):
        with pytest.raises(UnknownOrderError):
            await reconciler.handle_callback(
                CallbackNotification("999", CallbackOutcome.SUCCESS)
            )

        mock_repository.get_payment_by_order_id.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reference", ["", "   "])
    async def test_blank_reference(self, reconciler, mock_repository, reference):
        with pytest.raises(UnknownOrderError):
            await reconciler.handle_callback(
                CallbackNotification(reference, CallbackOutcome.SUCCESS)
            )

        mock_repository.get_payment_by_provider_reference.assert_not_called()
