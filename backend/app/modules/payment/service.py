"""Payment Service for PIX checkout.

Flow:
1. Validate pack and buyer
2. Split amount into platform fee and creator earnings
3. Generate the PIX charge at the active provider (no transaction open)
4. Persist the pending Payment

Paid/refunded transitions arrive only through webhooks; status polling may
only reconcile a pending payment to expired or cancelled.
"""

import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PaymentProviderError,
)
from app.core.metrics import CHECKOUTS_TOTAL
from app.modules.auth.repository import UserRepository
from app.modules.catalog.repository import CatalogRepository
from app.modules.payment.models import Payment, PaymentStatus
from app.modules.payment.repository import PaymentRepository
from app.modules.payment.schemas import (
    CheckoutPack,
    CheckoutResponse,
    PaymentListItem,
    PaymentListResponse,
    PaymentStatusResponse,
    paginate,
)
from app.modules.payment_gateway.currency import calculate_platform_fee
from app.modules.payment_gateway.helpers import is_valid_document
from app.modules.payment_gateway.interface import (
    CreatePixChargeDTO,
    CustomerInfo,
    GatewayError,
    PaymentGatewayStatus,
)
from app.modules.payment_gateway.registry import GatewayRegistry

logger = logging.getLogger(__name__)

# Statuses a pending payment may be reconciled to by polling
RECONCILABLE_STATUSES = {
    PaymentGatewayStatus.EXPIRED: PaymentStatus.EXPIRED,
    PaymentGatewayStatus.CANCELLED: PaymentStatus.CANCELLED,
}


class PaymentService:
    """Service for PIX checkout and payment queries."""

    def __init__(
        self,
        session: AsyncSession,
        registry: GatewayRegistry,
        payment_repo: Optional[PaymentRepository] = None,
        catalog_repo: Optional[CatalogRepository] = None,
        user_repo: Optional[UserRepository] = None,
    ):
        self.session = session
        self.registry = registry
        self.payment_repo = payment_repo or PaymentRepository(session)
        self.catalog_repo = catalog_repo or CatalogRepository(session)
        self.user_repo = user_repo or UserRepository(session)

    async def create_checkout(self, buyer_id: uuid.UUID, pack_id: uuid.UUID) -> CheckoutResponse:
        """Create (or reuse) a PIX checkout for a pack.

        Args:
            buyer_id: Paying user
            pack_id: Pack being bought

        Returns:
            CheckoutResponse with the PIX payload

        Raises:
            NotFoundError: Pack or buyer missing
            BadRequestError: Pack not published, own pack, buyer without document
            ConflictError: Pack already bought
            PaymentProviderError: Provider could not generate the charge
        """
        pack = await self.catalog_repo.get_pack(pack_id)
        if not pack:
            raise NotFoundError("Pack not found", context={"pack_id": str(pack_id)})
        if not pack.is_published:
            raise BadRequestError("Pack is not available for purchase")
        if pack.creator_id == buyer_id:
            raise BadRequestError("You cannot buy your own pack")

        buyer = await self.user_repo.get_by_id(buyer_id)
        if not buyer:
            raise NotFoundError("User not found", context={"user_id": str(buyer_id)})

        now = datetime.utcnow()
        pack_summary = CheckoutPack(id=pack.id, title=pack.title, price=pack.price)

        for existing in await self.payment_repo.get_open_for_buyer_pack(buyer_id, pack_id):
            if existing.status == PaymentStatus.PAID.value:
                raise ConflictError("You already bought this pack")
            if not existing.is_expired_at(now):
                logger.info(f"Reusing pending payment {existing.id} for pack {pack_id}")
                CHECKOUTS_TOTAL.labels(provider=existing.gateway_provider, outcome="reused").inc()
                return self._checkout_response(existing, pack_summary)
            self._apply_status(existing, PaymentStatus.EXPIRED, now)

        if await self.catalog_repo.has_completed_purchase(buyer_id, pack_id):
            raise ConflictError("You already bought this pack")

        if not is_valid_document(buyer.document):
            raise BadRequestError("A valid CPF or CNPJ is required to pay with PIX")

        amount = pack.price
        platform_fee = calculate_platform_fee(amount, settings.PLATFORM_FEE_PERCENT)
        creator_earnings = amount - platform_fee

        gateway = self.registry.get_active()

        # Persist expirations and close the read transaction before calling out
        await self.session.commit()

        charge_request = CreatePixChargeDTO(
            amount=amount,
            external_id=f"pack-{pack_id}-buyer-{buyer_id}-{int(time.time() * 1000)}",
            description=f"Pack: {pack.title}",
            customer=CustomerInfo(
                name=buyer.full_name or "Cliente",
                email=buyer.email,
                document=buyer.document,
            ),
            expires_in_minutes=settings.PIX_EXPIRATION_MINUTES,
            metadata={
                "pack_id": str(pack_id),
                "buyer_id": str(buyer_id),
                "creator_id": str(pack.creator_id),
            },
        )
        try:
            charge = await gateway.generate_pix_charge(charge_request)
        except GatewayError as e:
            CHECKOUTS_TOTAL.labels(provider=gateway.name, outcome="failed").inc()
            logger.error(
                f"PIX charge failed at {gateway.name}: {e.code.value} {e.message}",
                extra={"provider": gateway.name, "pack_id": str(pack_id), "buyer_id": str(buyer_id)},
            )
            raise PaymentProviderError("Could not generate PIX, please try again") from e

        payment = await self.payment_repo.create(
            buyer_id=buyer_id,
            creator_id=pack.creator_id,
            pack_id=pack_id,
            amount=amount,
            platform_fee=platform_fee,
            creator_earnings=creator_earnings,
            gateway_provider=gateway.name,
            gateway_id=charge.gateway_id,
            qr_code=charge.qr_code,
            qr_code_text=charge.qr_code_text,
            expires_at=charge.expires_at,
            status=PaymentStatus.PENDING.value,
            available_at=now + timedelta(days=settings.ANTI_FRAUD_HOLD_DAYS),
            balance_released=False,
            payment_metadata=charge_request.metadata,
        )
        await self.session.commit()

        CHECKOUTS_TOTAL.labels(provider=gateway.name, outcome="created").inc()
        logger.info(
            f"PIX checkout {payment.id} created for pack {pack_id} via {gateway.name}",
            extra={"payment_id": str(payment.id), "amount": amount, "provider": gateway.name},
        )
        return self._checkout_response(payment, pack_summary)

    async def get_payment_status(self, payment_id: uuid.UUID, caller_id: uuid.UUID) -> PaymentStatusResponse:
        """Return the payment status, re-checking the provider while pending.

        Raises:
            NotFoundError: Unknown payment
            ForbiddenError: Caller is not the buyer
        """
        payment = await self.payment_repo.get_by_id(payment_id)
        if not payment:
            raise NotFoundError("Payment not found", context={"payment_id": str(payment_id)})
        if payment.buyer_id != caller_id:
            raise ForbiddenError("You cannot view this payment")

        if payment.is_pending and payment.gateway_id:
            await self.session.commit()
            try:
                gateway = self.registry.get(payment.gateway_provider)
                remote = await gateway.get_payment_status(payment.gateway_id)
            except (GatewayError, AppError) as e:
                logger.warning(f"Status check for payment {payment.id} failed, using stored status: {e}")
            else:
                target = RECONCILABLE_STATUSES.get(remote.status)
                if target is not None:
                    reconciled = await self.update_payment_status(payment.id, target, only_if_pending=True)
                    await self.session.commit()
                    if reconciled is not None:
                        payment = reconciled

        return PaymentStatusResponse(payment_id=payment.id, status=payment.status, paid_at=payment.paid_at)

    async def update_payment_status(
        self,
        payment_id: uuid.UUID,
        status: PaymentStatus,
        paid_at: Optional[datetime] = None,
        only_if_pending: bool = False,
    ) -> Optional[Payment]:
        """Set a payment's status and matching timestamp (no commit).

        Returns None if the payment is missing, or when ``only_if_pending``
        and it already left pending.
        """
        payment = await self.payment_repo.get_by_id(payment_id, for_update=True)
        if payment is None:
            return None
        if only_if_pending and not payment.is_pending:
            return None
        self._apply_status(payment, status, datetime.utcnow(), paid_at)
        await self.session.flush()
        logger.info(f"Payment {payment.id} updated to {status.value}")
        return payment

    async def find_by_gateway_id(self, provider: str, gateway_id: str) -> Optional[Payment]:
        return await self.payment_repo.get_by_gateway_id(provider, gateway_id)

    async def list_buyer_payments(
        self, buyer_id: uuid.UUID, page: int = 1, limit: int = 10
    ) -> PaymentListResponse:
        """Paid purchases of a buyer, most recent first."""
        page, limit = max(page, 1), max(limit, 1)
        items, total = await self.payment_repo.list_paid_by_buyer(buyer_id, (page - 1) * limit, limit)
        return PaymentListResponse(
            data=[PaymentListItem.model_validate(p) for p in items],
            pagination=paginate(total, page, limit),
        )

    async def list_creator_payments(
        self, creator_id: uuid.UUID, page: int = 1, limit: int = 10
    ) -> PaymentListResponse:
        """Paid sales of a creator, most recent first."""
        page, limit = max(page, 1), max(limit, 1)
        items, total = await self.payment_repo.list_paid_by_creator(creator_id, (page - 1) * limit, limit)
        return PaymentListResponse(
            data=[PaymentListItem.model_validate(p) for p in items],
            pagination=paginate(total, page, limit),
        )

    def _apply_status(
        self,
        payment: Payment,
        status: PaymentStatus,
        now: datetime,
        paid_at: Optional[datetime] = None,
    ) -> None:
        payment.status = status.value
        if status == PaymentStatus.PAID:
            payment.paid_at = paid_at or now
        elif status == PaymentStatus.EXPIRED:
            payment.expired_at = now
        elif status == PaymentStatus.REFUNDED:
            payment.refunded_at = now
        self.session.add(payment)

    @staticmethod
    def _checkout_response(payment: Payment, pack: CheckoutPack) -> CheckoutResponse:
        return CheckoutResponse(
            payment_id=payment.id,
            qr_code=payment.qr_code or "",
            qr_code_text=payment.qr_code_text or "",
            expires_at=payment.expires_at,
            amount=payment.amount,
            pack=pack,
        )
