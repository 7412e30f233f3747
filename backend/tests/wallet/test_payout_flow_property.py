"""Property-based tests for creator payouts.

Tests that:
- Payouts above the available balance or below the minimum are rejected
- A successful payout debits the wallet under SERIALIZABLE isolation
- Provider failures are compensated and the money returns to the wallet
- Money is conserved whatever the outcome of a request
- PIX keys are masked before display
"""

import asyncio
import string
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st
from sqlalchemy.exc import DBAPIError

from app.core import config as settings_module
from app.core.exceptions import (
    AppError,
    BadRequestError,
    ConflictError,
    ErrorCodes,
    ForbiddenError,
    InsufficientBalanceError,
    NotFoundError,
    PaymentProviderError,
)
from app.modules.ledger.models import LedgerCategory, LedgerEntryType
from app.modules.payment_gateway.interface import GatewayError, GatewayErrorCode
from app.modules.wallet.models import OPEN_PAYOUT_STATUSES, PayoutStatus
from app.modules.wallet.payout_service import mask_pix_key


def provider_down() -> GatewayError:
    return GatewayError(GatewayErrorCode.GATEWAY_UNAVAILABLE, "Could not reach mock", provider="mock")


class TestPayoutValidation:

    @pytest.mark.asyncio
    async def test_amount_above_available_balance(self, pix) -> None:
        creator = pix.add_user()
        pix.add_wallet(creator, available=3000, frozen=10000)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await pix.payout_service().request_payout(creator.id, 5000)

        assert exc_info.value.status_code == 400
        assert exc_info.value.code == ErrorCodes.INSUFFICIENT_BALANCE
        assert "R$ 30,00" in exc_info.value.message
        assert pix.store.payouts == []

    @pytest.mark.asyncio
    async def test_amount_below_minimum(self, pix) -> None:
        creator = pix.add_user()
        pix.add_wallet(creator, available=10000)

        with pytest.raises(BadRequestError) as exc_info:
            await pix.payout_service().request_payout(creator.id, 4999)

        assert not isinstance(exc_info.value, InsufficientBalanceError)
        assert "R$ 50,00" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_wallet_is_created_on_first_request(self, pix) -> None:
        creator = pix.add_user()

        with pytest.raises(InsufficientBalanceError):
            await pix.payout_service().request_payout(creator.id, 5000)

        assert len(pix.store.wallets) == 1
        assert pix.store.wallets[0].available_balance == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pix_key,pix_key_type,document", [
        (None, None, "12345678901"),
        ("creator@example.com", None, "12345678901"),
        ("creator@example.com", "email", None),
        ("creator@example.com", "bank_account", "12345678901"),
    ])
    async def test_pix_destination_not_configured(self, pix, pix_key, pix_key_type, document) -> None:
        creator = pix.add_user(pix_key=pix_key, pix_key_type=pix_key_type, document=document)
        pix.add_wallet(creator, available=10000)

        with pytest.raises(BadRequestError) as exc_info:
            await pix.payout_service().request_payout(creator.id, 6000)

        assert exc_info.value.code == ErrorCodes.PIX_KEY_NOT_CONFIGURED
        assert pix.store.wallets[0].available_balance == 10000


class TestPayoutExecution:

    @pytest.mark.asyncio
    async def test_successful_payout(self, pix) -> None:
        creator = pix.add_user(pix_key="creator@example.com", pix_key_type="email")
        wallet = pix.add_wallet(creator, available=10000, frozen=2000)

        response = await pix.payout_service().request_payout(creator.id, 6000)

        assert response.status == PayoutStatus.PROCESSING.value
        assert response.amount_formatted == "R$ 60,00"
        assert response.estimated_completion_at is not None
        assert pix.session.isolation_levels == ["SERIALIZABLE"]

        payout = pix.store.payouts[0]
        assert payout.id == response.payout_id
        assert payout.gateway_id.startswith("payout_mock_")
        assert payout.gateway_provider == "mock"
        assert payout.pix_key_type == "email"
        assert payout.requested_at is not None
        assert wallet.available_balance == 4000
        assert wallet.frozen_balance == 2000

        entry = pix.store.ledger[0]
        assert entry.type == LedgerEntryType.DEBIT.value
        assert entry.category == LedgerCategory.PAYOUT.value
        assert entry.amount == 6000
        assert entry.balance_after == 6000
        assert entry.payout_id == payout.id
        assert entry.description == "PIX payout to email cr***@example.com"

    @pytest.mark.asyncio
    async def test_provider_failure_is_compensated(self, pix) -> None:
        creator = pix.add_user()
        wallet = pix.add_wallet(creator, available=10000)

        with patch.object(pix.gateway, "execute_payout", new=AsyncMock(side_effect=provider_down())):
            with pytest.raises(PaymentProviderError) as exc_info:
                await pix.payout_service().request_payout(creator.id, 6000)

        assert exc_info.value.status_code == 502
        assert exc_info.value.message == "Could not process payout, please try again"

        payout = pix.store.payouts[0]
        assert payout.status == PayoutStatus.FAILED.value
        assert payout.failure_reason == "Could not reach mock"
        assert payout.failed_at is not None
        assert wallet.available_balance == 10000

        assert [(e.type, e.category, e.amount) for e in pix.store.ledger] == [
            (LedgerEntryType.DEBIT.value, LedgerCategory.PAYOUT.value, 6000),
            (LedgerEntryType.CREDIT.value, LedgerCategory.ADJUSTMENT.value, 6000),
        ]
        assert pix.store.ledger[1].description == "Payout reversal: Could not reach mock"

    @pytest.mark.asyncio
    async def test_whole_balance_restored_when_provider_fails(self, pix) -> None:
        creator = pix.add_user()
        wallet = pix.add_wallet(creator, available=3000)

        with patch.object(settings_module.settings, "MIN_PAYOUT_AMOUNT", 1000):
            with patch.object(pix.gateway, "execute_payout", new=AsyncMock(side_effect=provider_down())):
                with pytest.raises(PaymentProviderError):
                    await pix.payout_service().request_payout(creator.id, 3000)

        assert wallet.available_balance == 3000
        assert pix.store.payouts[0].status == PayoutStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_locked_recheck_rejects_stale_balance(self, pix) -> None:
        creator = pix.add_user()
        wallet = pix.add_wallet(creator, available=3000)
        service = pix.payout_service()

        # Another withdrawal landed between the pre-check and the lock
        with patch.object(service.wallet_service, "validate_payout_amount", new=AsyncMock()):
            with pytest.raises(ConflictError) as exc_info:
                await service.request_payout(creator.id, 5000)

        assert exc_info.value.status_code == 409
        assert wallet.available_balance == 3000
        assert pix.store.payouts == []
        assert pix.store.ledger == []

    @pytest.mark.asyncio
    async def test_concurrent_requests_pay_out_once(self, pix) -> None:
        creator = pix.add_user()
        wallet = pix.add_wallet(creator, available=10000)

        results = await asyncio.gather(
            pix.payout_service().request_payout(creator.id, 6000),
            pix.payout_service().request_payout(creator.id, 6000),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], (InsufficientBalanceError, ConflictError))
        assert wallet.available_balance == 4000
        assert len(pix.store.payouts) == 1

    @pytest.mark.asyncio
    async def test_serialization_failure_is_conflict(self, pix) -> None:
        creator = pix.add_user()
        wallet = pix.add_wallet(creator, available=10000)
        failure = DBAPIError("INSERT INTO payouts", {}, Exception("could not serialize access"))

        with patch.object(pix.payout_repo, "create", new=AsyncMock(side_effect=failure)):
            with pytest.raises(ConflictError):
                await pix.payout_service().request_payout(creator.id, 6000)

        assert wallet.available_balance == 10000
        assert pix.session.rollbacks == 1

    @pytest.mark.asyncio
    async def test_compensation_skips_settled_payout(self, pix) -> None:
        creator = pix.add_user()
        wallet = pix.add_wallet(creator, available=10000)
        service = pix.payout_service()
        await service.request_payout(creator.id, 6000)
        payout = pix.store.payouts[0]
        payout.status = PayoutStatus.COMPLETED.value
        await pix.session.commit()

        await service._compensate(payout.id, "late failure")

        assert payout.status == PayoutStatus.COMPLETED.value
        assert wallet.available_balance == 4000
        assert len(pix.store.ledger) == 1

    @given(
        available=st.integers(min_value=0, max_value=50_000),
        amount=st.integers(min_value=1, max_value=60_000),
        provider_fails=st.booleans(),
    )
    @settings(max_examples=60, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_money_is_conserved(self, pix_factory, available: int, amount: int, provider_fails: bool) -> None:
        harness = pix_factory()
        creator = harness.add_user()
        wallet = harness.add_wallet(creator, available=available)

        async def attempt():
            service = harness.payout_service()
            if provider_fails:
                with patch.object(harness.gateway, "execute_payout", new=AsyncMock(side_effect=provider_down())):
                    await service.request_payout(creator.id, amount)
            else:
                await service.request_payout(creator.id, amount)

        try:
            asyncio.run(attempt())
            succeeded = True
        except AppError:
            succeeded = False

        in_flight = sum(p.amount for p in harness.store.payouts if p.status in OPEN_PAYOUT_STATUSES)
        assert wallet.available_balance >= 0
        assert wallet.available_balance + in_flight == available
        assert succeeded == (5000 <= amount <= available and not provider_fails)

        ledger_net = sum(e.signed_amount for e in harness.store.ledger)
        assert ledger_net == wallet.available_balance - available


class TestPayoutQueries:

    @pytest.mark.asyncio
    async def test_list_newest_first(self, pix) -> None:
        creator = pix.add_user()
        pix.add_wallet(creator, available=20000)
        service = pix.payout_service()
        first = await service.request_payout(creator.id, 5000)
        second = await service.request_payout(creator.id, 7000)

        listing = await service.list_payouts(creator.id, page=1, limit=20)

        assert [p.id for p in listing.payouts] == [second.payout_id, first.payout_id]
        assert listing.pagination.total == 2
        assert all(p.masked_pix_key == "cr***@example.com" for p in listing.payouts)

    @pytest.mark.asyncio
    async def test_details_only_for_owner(self, pix) -> None:
        creator, other = pix.add_user(), pix.add_user()
        pix.add_wallet(creator, available=10000)
        service = pix.payout_service()
        response = await service.request_payout(creator.id, 6000)

        details = await service.get_payout_details(response.payout_id, creator.id)
        assert details.status == PayoutStatus.PROCESSING.value
        assert details.amount_formatted == "R$ 60,00"

        with pytest.raises(ForbiddenError):
            await service.get_payout_details(response.payout_id, other.id)
        with pytest.raises(NotFoundError):
            await service.get_payout_details(uuid.uuid4(), creator.id)


class TestMaskPixKey:

    @pytest.mark.parametrize("key,expected", [
        ("", ""),
        (None, ""),
        ("maria@example.com", "ma***@example.com"),
        ("+5511987654321", "+55 (**) *****-4321"),
        ("12345678901", "***.***.789-**"),
        ("12345678000199", "**.***.***/****-**"),
        ("123e4567-e89b-12d3-a456-426614174000", "123e...4000"),
    ])
    def test_mask_formats(self, key, expected: str) -> None:
        assert mask_pix_key(key) == expected

    @given(key=st.text(alphabet=string.digits, min_size=11, max_size=11))
    def test_cpf_never_exposes_leading_digits(self, key: str) -> None:
        masked = mask_pix_key(key)
        assert key[:6] not in masked
        assert masked.endswith("-**")
