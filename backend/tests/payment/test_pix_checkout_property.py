"""Property-based tests for PIX checkout and payment status.

Tests that:
- Checkout splits the price into platform fee and creator earnings
- An unexpired pending checkout is reused instead of charging twice
- Bought packs, own packs and unpublished packs are rejected
- Provider failures surface as a provider error with nothing persisted
- Status polling never marks a payment as paid
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from app.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PaymentProviderError,
)
from app.modules.catalog.models import PackStatus
from app.modules.payment.models import PaymentStatus
from app.modules.payment_gateway.interface import (
    GatewayError,
    GatewayErrorCode,
    PaymentGatewayStatus,
    PaymentStatusResult,
)


class TestCreateCheckout:

    @pytest.mark.asyncio
    async def test_reference_sale_split(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user(document="123.456.789-01")
        pack = pix.add_pack(creator, price=2990)

        before = datetime.utcnow()
        checkout = await pix.payment_service().create_checkout(buyer.id, pack.id)

        assert len(pix.store.payments) == 1
        payment = pix.store.payments[0]
        assert checkout.payment_id == payment.id
        assert checkout.amount == 2990
        assert checkout.amount_formatted == "R$ 29,90"
        assert checkout.qr_code and checkout.qr_code_text
        assert checkout.pack.title == pack.title

        assert payment.platform_fee == 598
        assert payment.creator_earnings == 2392
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.gateway_provider == "mock"
        assert payment.gateway_id.startswith("mock_")
        assert payment.balance_released is False
        assert payment.available_at >= before + timedelta(days=14)
        assert payment.payment_metadata["creator_id"] == str(creator.id)

    @given(price=st.integers(min_value=1, max_value=5_000_000))
    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_split_is_exact_for_any_price(self, pix_factory, price: int) -> None:
        harness = pix_factory()
        creator, buyer = harness.add_user(), harness.add_user()
        pack = harness.add_pack(creator, price=price)

        asyncio.run(harness.payment_service().create_checkout(buyer.id, pack.id))

        payment = harness.store.payments[0]
        assert payment.amount == price
        assert payment.platform_fee + payment.creator_earnings == price
        assert 0 <= payment.platform_fee <= price

    @pytest.mark.asyncio
    async def test_pending_checkout_is_reused(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        pack = pix.add_pack(creator)
        service = pix.payment_service()

        first = await service.create_checkout(buyer.id, pack.id)
        with patch.object(pix.gateway, "generate_pix_charge", new=AsyncMock()) as charge:
            second = await service.create_checkout(buyer.id, pack.id)
            charge.assert_not_called()

        assert second.payment_id == first.payment_id
        assert second.qr_code_text == first.qr_code_text
        assert len(pix.store.payments) == 1

    @pytest.mark.asyncio
    async def test_expired_pending_is_replaced(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        pack = pix.add_pack(creator)
        stale = pix.add_payment(buyer, pack, expires_at=datetime.utcnow() - timedelta(minutes=1))

        checkout = await pix.payment_service().create_checkout(buyer.id, pack.id)

        assert checkout.payment_id != stale.id
        assert stale.status == PaymentStatus.EXPIRED.value
        assert stale.expired_at is not None
        assert len(pix.store.payments) == 2

    @pytest.mark.asyncio
    async def test_already_paid_is_conflict(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        pack = pix.add_pack(creator)
        pix.add_payment(buyer, pack, status=PaymentStatus.PAID.value)

        with pytest.raises(ConflictError):
            await pix.payment_service().create_checkout(buyer.id, pack.id)

    @pytest.mark.asyncio
    async def test_legacy_purchase_is_conflict(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        pack = pix.add_pack(creator)
        pix.add_purchase(buyer, pack)

        with pytest.raises(ConflictError):
            await pix.payment_service().create_checkout(buyer.id, pack.id)
        assert pix.store.payments == []

    @pytest.mark.asyncio
    async def test_invalid_pack_or_buyer(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        draft = pix.add_pack(creator, status=PackStatus.DRAFT.value)
        published = pix.add_pack(creator)
        service = pix.payment_service()

        with pytest.raises(NotFoundError):
            await service.create_checkout(buyer.id, uuid.uuid4())
        with pytest.raises(BadRequestError):
            await service.create_checkout(buyer.id, draft.id)
        with pytest.raises(BadRequestError):
            await service.create_checkout(creator.id, published.id)
        with pytest.raises(NotFoundError):
            await service.create_checkout(uuid.uuid4(), published.id)
        assert pix.store.payments == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("document", [None, "", "123", "123.456.789"])
    async def test_buyer_without_valid_document(self, pix, document) -> None:
        creator, buyer = pix.add_user(), pix.add_user(document=document)
        pack = pix.add_pack(creator)

        with pytest.raises(BadRequestError):
            await pix.payment_service().create_checkout(buyer.id, pack.id)
        assert pix.store.payments == []

    @pytest.mark.asyncio
    async def test_provider_failure_persists_nothing(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        pack = pix.add_pack(creator)
        failure = GatewayError(GatewayErrorCode.GATEWAY_UNAVAILABLE, "Could not reach mock", provider="mock")

        with patch.object(pix.gateway, "generate_pix_charge", new=AsyncMock(side_effect=failure)):
            with pytest.raises(PaymentProviderError) as exc_info:
                await pix.payment_service().create_checkout(buyer.id, pack.id)

        assert exc_info.value.status_code == 502
        assert exc_info.value.message == "Could not generate PIX, please try again"
        assert pix.store.payments == []


class TestPaymentStatus:

    @pytest.mark.asyncio
    async def test_only_buyer_can_read(self, pix) -> None:
        creator, buyer, stranger = pix.add_user(), pix.add_user(), pix.add_user()
        payment = pix.add_payment(buyer, pix.add_pack(creator))
        service = pix.payment_service()

        with pytest.raises(ForbiddenError):
            await service.get_payment_status(payment.id, stranger.id)
        with pytest.raises(NotFoundError):
            await service.get_payment_status(uuid.uuid4(), buyer.id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("remote,expected", [
        (PaymentGatewayStatus.EXPIRED, PaymentStatus.EXPIRED),
        (PaymentGatewayStatus.CANCELLED, PaymentStatus.CANCELLED),
        (PaymentGatewayStatus.PAID, PaymentStatus.PENDING),
        (PaymentGatewayStatus.REFUNDED, PaymentStatus.PENDING),
        (PaymentGatewayStatus.PENDING, PaymentStatus.PENDING),
    ])
    async def test_polling_reconciles_only_expiry_and_cancellation(self, pix, remote, expected) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        payment = pix.add_payment(buyer, pix.add_pack(creator))
        result = PaymentStatusResult(gateway_id=payment.gateway_id, status=remote)

        with patch.object(pix.gateway, "get_payment_status", new=AsyncMock(return_value=result)):
            status = await pix.payment_service().get_payment_status(payment.id, buyer.id)

        assert status.status == expected.value
        assert payment.status == expected.value
        assert payment.paid_at is None

    @pytest.mark.asyncio
    async def test_provider_error_returns_stored_status(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        payment = pix.add_payment(buyer, pix.add_pack(creator))
        failure = GatewayError(GatewayErrorCode.RATE_LIMIT_EXCEEDED, "Slow down", provider="mock")

        with patch.object(pix.gateway, "get_payment_status", new=AsyncMock(side_effect=failure)):
            status = await pix.payment_service().get_payment_status(payment.id, buyer.id)

        assert status.status == PaymentStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_settled_payment_skips_provider(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        payment = pix.add_payment(buyer, pix.add_pack(creator), status=PaymentStatus.PAID.value)

        with patch.object(pix.gateway, "get_payment_status", new=AsyncMock()) as remote:
            status = await pix.payment_service().get_payment_status(payment.id, buyer.id)
            remote.assert_not_called()

        assert status.status == PaymentStatus.PAID.value
        assert status.paid_at == payment.paid_at


class TestPaymentListings:

    @pytest.mark.asyncio
    async def test_purchases_and_sales_are_paginated(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        for _ in range(3):
            pix.add_payment(buyer, pix.add_pack(creator), status=PaymentStatus.PAID.value)
        pix.add_payment(buyer, pix.add_pack(creator))
        service = pix.payment_service()

        purchases = await service.list_buyer_payments(buyer.id, page=1, limit=2)
        assert len(purchases.data) == 2
        assert purchases.pagination.total == 3
        assert purchases.pagination.total_pages == 2

        sales = await service.list_creator_payments(creator.id, page=2, limit=2)
        assert len(sales.data) == 1
        assert sales.data[0].creator_earnings_formatted == "R$ 23,92"
