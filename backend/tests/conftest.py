"""Shared fixtures: an in-memory store standing in for PostgreSQL.

Services take their repositories as constructor arguments; the fakes
below mirror the real repository signatures and keep rows in plain lists.
``FakeSession`` snapshots column values on commit and restores them on
rollback, so transaction boundaries inside the services are observable.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import IntegrityError

from app.core.config import Settings
from app.modules.auth.models import User
from app.modules.catalog.models import Pack, PackStatus, Purchase, PurchaseStatus
from app.modules.ledger.models import LedgerCategory, LedgerEntry, LedgerEntryType
from app.modules.ledger.service import LedgerService
from app.modules.payment.models import Payment, PaymentStatus
from app.modules.payment.service import PaymentService
from app.modules.payment_gateway.gateways.mock import MockGateway
from app.modules.payment_gateway.registry import GatewayRegistry
from app.modules.wallet.models import OPEN_PAYOUT_STATUSES, Payout, Wallet
from app.modules.wallet.payout_service import PayoutService
from app.modules.wallet.service import WalletService
from app.modules.webhook.models import WebhookEvent
from app.modules.webhook.service import WebhookProcessor


# ==================== Store and session ====================

class FakeStore:
    """Rows per table, in insertion order."""

    TABLES = {
        User: "users",
        Pack: "packs",
        Purchase: "purchases",
        Payment: "payments",
        Wallet: "wallets",
        Payout: "payouts",
        LedgerEntry: "ledger",
        WebhookEvent: "events",
    }

    def __init__(self):
        self.users: list[User] = []
        self.packs: list[Pack] = []
        self.purchases: list[Purchase] = []
        self.payments: list[Payment] = []
        self.wallets: list[Wallet] = []
        self.payouts: list[Payout] = []
        self.ledger: list[LedgerEntry] = []
        self.events: list[WebhookEvent] = []
        self._clock = datetime(2026, 1, 1)

    def table(self, obj: Any) -> list:
        return getattr(self, self.TABLES[type(obj)])

    def put(self, obj: Any) -> None:
        rows = self.table(obj)
        if any(row is obj for row in rows):
            return
        if getattr(obj, "id", None) is None:
            obj.id = uuid.uuid4()
        if hasattr(obj, "created_at") and obj.created_at is None:
            # Strictly increasing so "newest first" is deterministic
            self._clock += timedelta(seconds=1)
            obj.created_at = self._clock
        rows.append(obj)

    def all_rows(self) -> list:
        return [row for name in self.TABLES.values() for row in getattr(self, name)]


class FakeSession:
    """Just enough of AsyncSession for the services."""

    def __init__(self, store: FakeStore):
        self.store = store
        self.commits = 0
        self.rollbacks = 0
        self.isolation_levels: list[str] = []
        self._snapshot: dict[int, tuple[Any, dict[str, Any]]] = {}
        self.take_snapshot()

    def take_snapshot(self) -> None:
        self._snapshot = {
            id(row): (row, {
                attr.key: getattr(row, attr.key)
                for attr in sa_inspect(type(row)).column_attrs
            })
            for row in self.store.all_rows()
        }

    def add(self, obj: Any) -> None:
        self.store.put(obj)

    async def flush(self) -> None:
        return None

    async def commit(self) -> None:
        self.commits += 1
        self.take_snapshot()

    async def rollback(self) -> None:
        self.rollbacks += 1
        for name in FakeStore.TABLES.values():
            rows = getattr(self.store, name)
            rows[:] = [row for row in rows if id(row) in self._snapshot]
        for row, values in self._snapshot.values():
            for key, value in values.items():
                setattr(row, key, value)

    async def connection(self, execution_options: Optional[dict] = None):
        if execution_options and "isolation_level" in execution_options:
            self.isolation_levels.append(execution_options["isolation_level"])
        return self

    def in_transaction(self) -> bool:
        return False


# ==================== Repositories ====================

class FakeUserRepository:
    def __init__(self, session: FakeSession):
        self.store = session.store

    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return next((u for u in self.store.users if u.id == user_id), None)


class FakeCatalogRepository:
    def __init__(self, session: FakeSession):
        self.store = session.store

    async def get_pack(self, pack_id: uuid.UUID) -> Optional[Pack]:
        return next((p for p in self.store.packs if p.id == pack_id), None)

    async def has_completed_purchase(self, buyer_id: uuid.UUID, pack_id: uuid.UUID) -> bool:
        return any(
            p.buyer_id == buyer_id and p.pack_id == pack_id and p.status == PurchaseStatus.COMPLETED.value
            for p in self.store.purchases
        )


class FakePaymentRepository:
    def __init__(self, session: FakeSession):
        self.session = session
        self.store = session.store

    async def create(self, **kwargs) -> Payment:
        payment = Payment(**kwargs)
        self.session.add(payment)
        return payment

    async def get_by_id(self, payment_id: uuid.UUID, for_update: bool = False) -> Optional[Payment]:
        return next((p for p in self.store.payments if p.id == payment_id), None)

    async def get_by_gateway_id(
        self, provider: str, gateway_id: str, for_update: bool = False
    ) -> Optional[Payment]:
        return next(
            (p for p in self.store.payments
             if p.gateway_provider == provider and p.gateway_id == gateway_id),
            None,
        )

    async def get_open_for_buyer_pack(self, buyer_id: uuid.UUID, pack_id: uuid.UUID) -> list[Payment]:
        rows = [
            p for p in self.store.payments
            if p.buyer_id == buyer_id and p.pack_id == pack_id
            and p.status in (PaymentStatus.PENDING.value, PaymentStatus.PAID.value)
        ]
        return sorted(rows, key=lambda p: p.created_at, reverse=True)

    async def list_paid_by_buyer(self, buyer_id: uuid.UUID, offset: int = 0, limit: int = 10):
        return self._list_paid(lambda p: p.buyer_id == buyer_id, offset, limit)

    async def list_paid_by_creator(self, creator_id: uuid.UUID, offset: int = 0, limit: int = 10):
        return self._list_paid(lambda p: p.creator_id == creator_id, offset, limit)

    def _list_paid(self, owner, offset: int, limit: int) -> tuple[list[Payment], int]:
        rows = [p for p in self.store.payments if owner(p) and p.status == PaymentStatus.PAID.value]
        rows.sort(key=lambda p: p.paid_at or p.created_at, reverse=True)
        return rows[offset:offset + limit], len(rows)

    async def get_releasable_ids(self, now: datetime, limit: int = 500) -> list[uuid.UUID]:
        rows = [
            p for p in self.store.payments
            if p.status == PaymentStatus.PAID.value
            and not p.balance_released
            and p.available_at is not None
            and p.available_at <= now
        ]
        rows.sort(key=lambda p: p.available_at)
        return [p.id for p in rows[:limit]]


class FakeWalletRepository:
    def __init__(self, session: FakeSession):
        self.session = session
        self.store = session.store

    async def get_by_user_id(self, user_id: uuid.UUID, for_update: bool = False) -> Optional[Wallet]:
        return next((w for w in self.store.wallets if w.user_id == user_id), None)

    async def get_by_id(self, wallet_id: uuid.UUID, for_update: bool = False) -> Optional[Wallet]:
        return next((w for w in self.store.wallets if w.id == wallet_id), None)

    async def create(self, user_id: uuid.UUID) -> Wallet:
        wallet = Wallet(user_id=user_id, available_balance=0, frozen_balance=0)
        self.session.add(wallet)
        return wallet


class FakePayoutRepository:
    def __init__(self, session: FakeSession):
        self.session = session
        self.store = session.store

    async def create(self, **kwargs) -> Payout:
        payout = Payout(**kwargs)
        self.session.add(payout)
        return payout

    async def get_by_id(self, payout_id: uuid.UUID, for_update: bool = False) -> Optional[Payout]:
        return next((p for p in self.store.payouts if p.id == payout_id), None)

    async def get_by_gateway_id(
        self, provider: str, gateway_id: str, for_update: bool = False
    ) -> Optional[Payout]:
        return next(
            (p for p in self.store.payouts
             if p.gateway_provider == provider and p.gateway_id == gateway_id),
            None,
        )

    async def list_by_user(self, user_id: uuid.UUID, offset: int = 0, limit: int = 20):
        rows = sorted(
            (p for p in self.store.payouts if p.user_id == user_id),
            key=lambda p: p.created_at,
            reverse=True,
        )
        return rows[offset:offset + limit], len(rows)

    async def sum_open_amount(self, user_id: uuid.UUID) -> int:
        return sum(
            p.amount for p in self.store.payouts
            if p.user_id == user_id and p.status in OPEN_PAYOUT_STATUSES
        )


class FakeLedgerRepository:
    def __init__(self, session: FakeSession):
        self.store = session.store

    async def get_wallet_entries(
        self,
        wallet_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
        entry_type: Optional[str] = None,
        category: Optional[str] = None,
    ) -> tuple[list[LedgerEntry], int]:
        rows = [
            e for e in self.store.ledger
            if e.wallet_id == wallet_id
            and (entry_type is None or e.type == entry_type)
            and (category is None or e.category == category)
        ]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return rows[offset:offset + limit], len(rows)

    async def get_wallet_totals(self, wallet_id: uuid.UUID) -> tuple[int, int]:
        entries = [e for e in self.store.ledger if e.wallet_id == wallet_id]
        credits = sum(e.amount for e in entries if e.type == LedgerEntryType.CREDIT.value)
        debits = sum(e.amount for e in entries if e.type == LedgerEntryType.DEBIT.value)
        return credits, debits

    async def sum_wallet_category(
        self,
        wallet_id: uuid.UUID,
        entry_type: LedgerEntryType,
        category: LedgerCategory,
    ) -> int:
        return sum(
            e.amount for e in self.store.ledger
            if e.wallet_id == wallet_id and e.type == entry_type.value and e.category == category.value
        )

    async def get_platform_revenue(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> tuple[int, int]:
        rows = [
            e for e in self.store.ledger
            if e.is_platform_entry
            and e.category == LedgerCategory.PLATFORM_FEE.value
            and (start_date is None or e.created_at >= start_date)
            and (end_date is None or e.created_at <= end_date)
        ]
        return sum(e.amount for e in rows), len(rows)


class FakeWebhookEventRepository:
    def __init__(self, session: FakeSession):
        self.session = session
        self.store = session.store

    def _find(self, provider: str, event_id: str) -> Optional[WebhookEvent]:
        return next(
            (e for e in self.store.events if e.provider == provider and e.event_id == event_id),
            None,
        )

    async def get(self, provider: str, event_id: str) -> Optional[WebhookEvent]:
        return self._find(provider, event_id)

    async def create(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        gateway_id: Optional[str],
        payload: dict[str, Any],
        processed_at: datetime,
    ) -> WebhookEvent:
        # Unique (provider, event_id)
        if self._find(provider, event_id) is not None:
            raise IntegrityError(
                "INSERT INTO webhook_events",
                {"provider": provider, "event_id": event_id},
                Exception("duplicate key value violates unique constraint"),
            )
        event = WebhookEvent(
            provider=provider,
            event_id=event_id,
            event_type=event_type,
            gateway_id=gateway_id,
            payload=payload,
            processed=True,
            processed_at=processed_at,
        )
        self.session.add(event)
        return event


# ==================== Harness ====================

class PixHarness:
    """Store, session, mock provider and service factories for one test."""

    def __init__(self, **setting_overrides):
        self.settings = Settings(PAYMENT_GATEWAY="mock", **setting_overrides)
        self.store = FakeStore()
        self.session = FakeSession(self.store)
        self.gateway = MockGateway(webhook_secret="test-secret")
        self.registry = GatewayRegistry(self.settings)
        self.registry.register(self.gateway)

        self.user_repo = FakeUserRepository(self.session)
        self.catalog_repo = FakeCatalogRepository(self.session)
        self.payment_repo = FakePaymentRepository(self.session)
        self.wallet_repo = FakeWalletRepository(self.session)
        self.payout_repo = FakePayoutRepository(self.session)
        self.ledger_repo = FakeLedgerRepository(self.session)
        self.event_repo = FakeWebhookEventRepository(self.session)

    # ---------- services ----------

    def ledger_service(self) -> LedgerService:
        return LedgerService(self.session, ledger_repo=self.ledger_repo, wallet_repo=self.wallet_repo)

    def wallet_service(self) -> WalletService:
        return WalletService(
            self.session,
            wallet_repo=self.wallet_repo,
            payout_repo=self.payout_repo,
            payment_repo=self.payment_repo,
            ledger_repo=self.ledger_repo,
            user_repo=self.user_repo,
            ledger_service=self.ledger_service(),
        )

    def payment_service(self) -> PaymentService:
        return PaymentService(
            self.session,
            self.registry,
            payment_repo=self.payment_repo,
            catalog_repo=self.catalog_repo,
            user_repo=self.user_repo,
        )

    def webhook_processor(self) -> WebhookProcessor:
        wallet_service = self.wallet_service()
        return WebhookProcessor(
            self.session,
            self.registry,
            event_repo=self.event_repo,
            payment_repo=self.payment_repo,
            payout_repo=self.payout_repo,
            wallet_service=wallet_service,
            ledger_service=wallet_service.ledger,
        )

    def payout_service(self) -> PayoutService:
        wallet_service = self.wallet_service()
        return PayoutService(
            self.session,
            self.registry,
            payout_repo=self.payout_repo,
            wallet_service=wallet_service,
            ledger_service=wallet_service.ledger,
        )

    # ---------- seeding ----------

    def add_user(
        self,
        document: Optional[str] = "12345678901",
        pix_key: Optional[str] = "creator@example.com",
        pix_key_type: Optional[str] = "email",
        full_name: str = "Maria Silva",
    ) -> User:
        user = User(
            email=f"{uuid.uuid4().hex[:8]}@example.com",
            full_name=full_name,
            document=document,
            pix_key=pix_key,
            pix_key_type=pix_key_type,
            is_active=True,
        )
        self.store.put(user)
        self.session.take_snapshot()
        return user

    def add_pack(self, creator: User, price: int = 2990, status: str = PackStatus.PUBLISHED.value) -> Pack:
        pack = Pack(creator_id=creator.id, title="Summer pack", price=price, status=status)
        self.store.put(pack)
        self.session.take_snapshot()
        return pack

    def add_purchase(self, buyer: User, pack: Pack, status: str = PurchaseStatus.COMPLETED.value) -> Purchase:
        purchase = Purchase(buyer_id=buyer.id, pack_id=pack.id, amount=pack.price, status=status)
        self.store.put(purchase)
        self.session.take_snapshot()
        return purchase

    def add_wallet(self, user: User, available: int = 0, frozen: int = 0) -> Wallet:
        wallet = Wallet(user_id=user.id, available_balance=available, frozen_balance=frozen)
        self.store.put(wallet)
        self.session.take_snapshot()
        return wallet

    def add_payment(
        self,
        buyer: User,
        pack: Pack,
        status: str = PaymentStatus.PENDING.value,
        amount: Optional[int] = None,
        platform_fee: Optional[int] = None,
        gateway_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        available_at: Optional[datetime] = None,
        balance_released: bool = False,
    ) -> Payment:
        amount = pack.price if amount is None else amount
        platform_fee = amount * 20 // 100 if platform_fee is None else platform_fee
        now = datetime.utcnow()
        payment = Payment(
            buyer_id=buyer.id,
            creator_id=pack.creator_id,
            pack_id=pack.id,
            amount=amount,
            platform_fee=platform_fee,
            creator_earnings=amount - platform_fee,
            gateway_provider="mock",
            gateway_id=gateway_id or f"mock_{uuid.uuid4().hex[:16]}",
            qr_code="data:image/svg+xml;base64,AAAA",
            qr_code_text="00020126580014br.gov.bcb.pix",
            expires_at=expires_at or now + timedelta(hours=1),
            status=status,
            paid_at=now if status == PaymentStatus.PAID.value else None,
            available_at=available_at or now + timedelta(days=14),
            balance_released=balance_released,
        )
        self.store.put(payment)
        self.session.take_snapshot()
        return payment


@pytest.fixture
def pix() -> PixHarness:
    return PixHarness()


@pytest.fixture
def pix_factory():
    """Harness constructor, for hypothesis tests that need a fresh store per example."""
    return PixHarness
