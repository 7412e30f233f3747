"""Property-based tests for the frozen balance release job and wallet reads.

Tests that:
- Matured sales move from frozen to available exactly once
- Sales still inside the anti-fraud hold stay frozen
- One failing payment does not stop the rest of the run
- The ledger identity holds after sales and releases
- History pages are capped and the summary adds up
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from app.modules.ledger.models import LedgerCategory, LedgerEntryType
from app.modules.payment.models import PaymentStatus
from app.modules.wallet.models import PayoutStatus
from app.modules.wallet.tasks import release_frozen_balances, run_balance_release


SIGNATURE = "mock-signature"


def matured_sale(pix, creator, buyer, price: int = 2990, days_ago: int = 1):
    """A paid sale whose hold ended ``days_ago`` days ago, with its frozen credit."""
    payment = pix.add_payment(
        buyer,
        pix.add_pack(creator, price=price),
        status=PaymentStatus.PAID.value,
        available_at=datetime.utcnow() - timedelta(days=days_ago),
    )
    wallet = next((w for w in pix.store.wallets if w.user_id == creator.id), None)
    if wallet is None:
        wallet = pix.add_wallet(creator)
    wallet.frozen_balance += payment.creator_earnings
    pix.session.take_snapshot()
    return payment


class TestReleaseFrozenBalances:

    @pytest.mark.asyncio
    async def test_matured_sale_is_released(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        payment = matured_sale(pix, creator, buyer)
        wallet = pix.store.wallets[0]

        stats = await pix.wallet_service().release_frozen_balances()

        assert stats == {"released": 1, "skipped": 0, "failed": 0, "amount": 2392}
        assert payment.balance_released is True
        assert wallet.frozen_balance == 0
        assert wallet.available_balance == 2392

        entry = pix.store.ledger[0]
        assert entry.type == LedgerEntryType.CREDIT.value
        assert entry.category == LedgerCategory.RELEASE.value
        assert entry.amount == 0
        assert entry.balance_after == 2392
        assert entry.entry_metadata == {"previous_frozen": 2392, "new_frozen": 0, "released": 2392}

    @pytest.mark.asyncio
    async def test_sale_inside_hold_stays_frozen(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        payment = pix.add_payment(buyer, pix.add_pack(creator), status=PaymentStatus.PAID.value)
        wallet = pix.add_wallet(creator, frozen=payment.creator_earnings)

        stats = await pix.wallet_service().release_frozen_balances()

        assert stats["released"] == 0
        assert payment.balance_released is False
        assert wallet.frozen_balance == payment.creator_earnings

        # Fourteen days later the same sale qualifies
        later = datetime.utcnow() + timedelta(days=15)
        stats = await pix.wallet_service().release_frozen_balances(now=later)
        assert stats["released"] == 1
        assert wallet.available_balance == payment.creator_earnings

    @pytest.mark.asyncio
    async def test_second_run_does_nothing(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        matured_sale(pix, creator, buyer)
        service = pix.wallet_service()

        await service.release_frozen_balances()
        stats = await service.release_frozen_balances()

        assert stats == {"released": 0, "skipped": 0, "failed": 0, "amount": 0}
        assert pix.store.wallets[0].available_balance == 2392
        assert len(pix.store.ledger) == 1

    @pytest.mark.asyncio
    async def test_refunded_or_pending_sales_are_not_released(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        past = datetime.utcnow() - timedelta(days=1)
        pix.add_wallet(creator)
        for status in (PaymentStatus.PENDING, PaymentStatus.REFUNDED, PaymentStatus.EXPIRED):
            pix.add_payment(buyer, pix.add_pack(creator), status=status.value, available_at=past)

        stats = await pix.wallet_service().release_frozen_balances()

        assert stats["released"] == 0
        assert all(not p.balance_released for p in pix.store.payments)

    @pytest.mark.asyncio
    async def test_sale_refunded_after_selection_is_skipped(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        payment = matured_sale(pix, creator, buyer)
        service = pix.wallet_service()
        selected = [payment.id]
        payment.status = PaymentStatus.REFUNDED.value

        with patch.object(pix.payment_repo, "get_releasable_ids", new=AsyncMock(return_value=selected)):
            stats = await service.release_frozen_balances()

        assert stats["skipped"] == 1
        assert payment.balance_released is False

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_run(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        first = matured_sale(pix, creator, buyer, days_ago=3)
        broken = matured_sale(pix, creator, buyer, days_ago=2)
        last = matured_sale(pix, creator, buyer, days_ago=1)
        original = pix.payment_repo.get_by_id

        async def flaky_get_by_id(payment_id, for_update=False):
            if payment_id == broken.id:
                raise RuntimeError("row lock timeout")
            return await original(payment_id, for_update=for_update)

        with patch.object(pix.payment_repo, "get_by_id", new=flaky_get_by_id):
            stats = await pix.wallet_service().release_frozen_balances()

        assert stats == {"released": 2, "skipped": 0, "failed": 1, "amount": 2 * 2392}
        assert first.balance_released and last.balance_released
        assert broken.balance_released is False

        wallet = pix.store.wallets[0]
        assert wallet.available_balance == 2 * 2392
        assert wallet.frozen_balance == 2392

        # The next run picks the failed payment up
        stats = await pix.wallet_service().release_frozen_balances()
        assert stats["released"] == 1
        assert wallet.frozen_balance == 0

    @pytest.mark.asyncio
    async def test_short_frozen_balance_releases_what_is_there(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        payment = matured_sale(pix, creator, buyer)
        wallet = pix.store.wallets[0]
        wallet.frozen_balance = 1000
        pix.session.take_snapshot()

        stats = await pix.wallet_service().release_frozen_balances()

        assert stats["amount"] == 1000
        assert wallet.frozen_balance == 0
        assert wallet.available_balance == 1000
        assert payment.balance_released is True

    @given(prices=st.lists(st.integers(min_value=100, max_value=100_000), min_size=1, max_size=6))
    @settings(max_examples=30, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_ledger_identity_after_sales_and_release(self, pix_factory, prices: list[int]) -> None:
        harness = pix_factory()
        creator, buyer = harness.add_user(), harness.add_user()
        payments = [
            harness.add_payment(
                buyer,
                harness.add_pack(creator, price=price),
                available_at=datetime.utcnow() - timedelta(days=1),
            )
            for price in prices
        ]

        async def settle():
            for payment in payments:
                body = f'{{"type": "payment.paid", "gateway_id": "{payment.gateway_id}"}}'.encode()
                await harness.webhook_processor().process_webhook("mock", body, SIGNATURE)
            await harness.wallet_service().release_frozen_balances()
            wallet = harness.store.wallets[0]
            return wallet, await harness.ledger_service().verify_wallet_integrity(wallet.id)

        wallet, integrity = asyncio.run(settle())

        earnings = sum(p.creator_earnings for p in payments)
        assert integrity["is_valid"] is True
        assert integrity["calculated_balance"] == earnings
        assert wallet.available_balance == earnings
        assert wallet.frozen_balance == 0


class TestWalletReads:

    @pytest.mark.asyncio
    async def test_balance_creates_empty_wallet(self, pix) -> None:
        creator = pix.add_user()

        balance = await pix.wallet_service().get_balance(creator.id)

        assert balance == {"available": 0, "frozen": 0, "total": 0}
        assert len(pix.store.wallets) == 1

    @pytest.mark.asyncio
    async def test_history_is_paginated_and_capped(self, pix) -> None:
        creator = pix.add_user()
        wallet = pix.add_wallet(creator)
        ledger = pix.ledger_service()
        for amount in range(1, 61):
            await ledger.create_entry(
                pix.session,
                entry_type=LedgerEntryType.CREDIT,
                category=LedgerCategory.ADJUSTMENT,
                amount=amount,
                balance_after=amount,
                wallet_id=wallet.id,
            )
        service = pix.wallet_service()

        capped = await service.get_transaction_history(creator.id, page=1, limit=100)
        assert capped["pagination"] == {"total": 60, "page": 1, "limit": 50, "total_pages": 2}
        assert len(capped["transactions"]) == 50
        assert capped["transactions"][0].amount == 60

        last = await service.get_transaction_history(creator.id, page=3, limit=25)
        assert [e.amount for e in last["transactions"]] == list(range(10, 0, -1))

        first = await service.get_transaction_history(creator.id, page=0, limit=0)
        assert first["pagination"]["page"] == 1
        assert first["pagination"]["limit"] == 1

    @pytest.mark.asyncio
    async def test_summary_totals(self, pix) -> None:
        creator, buyer = pix.add_user(), pix.add_user()
        payment = pix.add_payment(buyer, pix.add_pack(creator, price=10000))
        processor = pix.webhook_processor()
        await processor.process_webhook(
            "mock", f'{{"type": "payment.paid", "gateway_id": "{payment.gateway_id}"}}'.encode(), SIGNATURE
        )
        wallet = pix.store.wallets[0]
        wallet.frozen_balance -= 8000
        wallet.available_balance += 8000
        await pix.session.commit()
        await pix.payout_service().request_payout(creator.id, 6000)

        summary = await pix.wallet_service().get_wallet_summary(creator.id)

        assert summary["balance"] == {"available": 2000, "frozen": 0, "total": 2000}
        assert summary["pending_payouts"] == 6000
        assert summary["total_earnings"] == 8000
        assert summary["total_payouts"] == 6000

        pix.store.payouts[0].status = PayoutStatus.COMPLETED.value
        summary = await pix.wallet_service().get_wallet_summary(creator.id)
        assert summary["pending_payouts"] == 0


class TestReleaseTask:

    def test_task_reports_stats(self) -> None:
        stats = {"released": 2, "skipped": 0, "failed": 0, "amount": 4784}
        with patch("app.modules.wallet.tasks.run_balance_release", new=AsyncMock(return_value=stats)) as run:
            result = release_frozen_balances.apply().get()

        run.assert_awaited_once()
        assert result["released"] == 2
        assert result["amount"] == 4784
        assert "started_at" in result

    def _job_doubles(self, release: AsyncMock):
        session_factory = MagicMock()
        session_factory.return_value.__aexit__.return_value = False
        service = MagicMock(release_frozen_balances=release)
        engine = MagicMock(dispose=AsyncMock())
        return session_factory, service, engine

    def test_repeated_runs_in_one_worker_dispose_the_pool(self) -> None:
        stats = {"released": 1, "skipped": 0, "failed": 0, "amount": 2392}
        session_factory, service, engine = self._job_doubles(AsyncMock(return_value=stats))

        with patch("app.modules.wallet.tasks.async_session_maker", session_factory), \
                patch("app.modules.wallet.tasks.WalletService", return_value=service), \
                patch("app.modules.wallet.tasks.engine", engine):
            first = release_frozen_balances.apply().get()
            second = release_frozen_balances.apply().get()

        assert first["released"] == second["released"] == 1
        assert service.release_frozen_balances.await_count == 2
        assert engine.dispose.await_count == 2

    def test_pool_disposed_when_run_fails(self) -> None:
        session_factory, service, engine = self._job_doubles(AsyncMock(side_effect=RuntimeError("db down")))

        with patch("app.modules.wallet.tasks.async_session_maker", session_factory), \
                patch("app.modules.wallet.tasks.WalletService", return_value=service), \
                patch("app.modules.wallet.tasks.engine", engine):
            with pytest.raises(RuntimeError):
                asyncio.run(run_balance_release())

        engine.dispose.assert_awaited_once()
