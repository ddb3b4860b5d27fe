"""
Test suite for PaymentRepository settlement and creation.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from marketplace.core.exceptions import PaymentAlreadyExistsError, RepositoryError
from marketplace.database.models.payment import PaymentStatusHistory
from marketplace.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus
from marketplace.services.payments.repository import PaymentRepository


@pytest.fixture
def mock_session() -> MagicMock:
    session = MagicMock()
    session.execute = AsyncMock(return_value=MagicMock(rowcount=1))
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def repository(mock_session) -> PaymentRepository:
    return PaymentRepository(mock_session)


# ============================================================================
# Settlement Tests
# ============================================================================


class TestSettlePayment:
    """Tests for the one-time conditional settlement."""

    @pytest.mark.asyncio
    async def test_applied_settlement_writes_history(self, repository, mock_session):
        # Arrange
        payment_id = uuid.uuid4()

        # Act
        applied = await repository.settle_payment(
            payment_id=payment_id,
            order_id=uuid.uuid4(),
            new_status=PaymentStatus.PAID,
            order_status=OrderStatus.PAID,
            transaction_id="TX-1",
            paid_at=datetime.now(timezone.utc),
        )

        # Assert
        assert applied is True
        history = mock_session.add.call_args.args[0]
        assert isinstance(history, PaymentStatusHistory)
        assert history.payment_id == payment_id
        assert history.from_status == PaymentStatus.PENDING
        assert history.to_status == PaymentStatus.PAID
        # payment update then order update
        assert mock_session.execute.await_count == 2
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_already_settled_writes_nothing(self, repository, mock_session):
        mock_session.execute.return_value = MagicMock(rowcount=0)

        applied = await repository.settle_payment(
            payment_id=uuid.uuid4(),
            order_id=uuid.uuid4(),
            new_status=PaymentStatus.FAILED,
            order_status=OrderStatus.REJECTED,
        )

        assert applied is False
        assert mock_session.execute.await_count == 1
        mock_session.add.assert_not_called()
        mock_session.commit.assert_not_called()
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_reason_recorded(self, repository, mock_session):
        await repository.settle_payment(
            payment_id=uuid.uuid4(),
            order_id=uuid.uuid4(),
            new_status=PaymentStatus.FAILED,
            order_status=OrderStatus.REJECTED,
            failure_reason="GATEWAY_REJECTED: declined",
        )

        assert mock_session.add.call_args.args[0].reason == "GATEWAY_REJECTED: declined"

    @pytest.mark.asyncio
    async def test_database_error_wrapped(self, repository, mock_session):
        mock_session.execute.side_effect = OperationalError("UPDATE", {}, Exception("gone"))

        with pytest.raises(RepositoryError):
            await repository.settle_payment(
                payment_id=uuid.uuid4(),
                order_id=uuid.uuid4(),
                new_status=PaymentStatus.PAID,
                order_status=OrderStatus.PAID,
            )

        mock_session.rollback.assert_awaited_once()


# ============================================================================
# Creation Tests
# ============================================================================


class TestCreatePayment:
    @pytest.mark.asyncio
    async def test_unique_order_violation(self, repository, mock_session):
        """Test a concurrent second payment for the same order is a conflict."""
        order_id = uuid.uuid4()
        mock_session.flush.side_effect = IntegrityError(
            "INSERT",
            {},
            Exception('duplicate key value violates unique constraint "uq_payments_order_id"'),
        )

        with pytest.raises(PaymentAlreadyExistsError):
            await repository.create_payment(
                order_id=order_id,
                buyer_id=uuid.uuid4(),
                method=PaymentMethod.QR_GATEWAY,
                amount=Decimal("25.00"),
            )

        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_integrity_error(self, repository, mock_session):
        mock_session.flush.side_effect = IntegrityError(
            "INSERT", {}, Exception("violates check constraint")
        )

        with pytest.raises(RepositoryError):
            await repository.create_payment(
                order_id=uuid.uuid4(),
                buyer_id=uuid.uuid4(),
                method=PaymentMethod.CASH_ON_DELIVERY,
                amount=Decimal("25.00"),
            )

    @pytest.mark.asyncio
    async def test_missing_order_is_not_a_duplicate(self, repository, mock_session):
        """Test a foreign key violation on order_id is not reported as a duplicate."""
        mock_session.flush.side_effect = IntegrityError(
            "INSERT",
            {},
            Exception(
                'insert or update on table "payments" violates foreign key constraint '
                '"payments_order_id_fkey" DETAIL: Key (order_id) is not present'
            ),
        )

        with pytest.raises(RepositoryError) as exc_info:
            await repository.create_payment(
                order_id=uuid.uuid4(),
                buyer_id=uuid.uuid4(),
                method=PaymentMethod.QR_GATEWAY,
                amount=Decimal("25.00"),
            )

        assert not isinstance(exc_info.value, PaymentAlreadyExistsError)
