"""Payment API Router.

Endpoints:
- POST /payment/checkout: create or reuse a PIX checkout
- GET /payment/my-purchases: buyer's paid purchases
- GET /payment/my-sales: creator's paid sales
- GET /payment/{payment_id}/status: poll a payment
"""

import uuid

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.modules.payment.schemas import (
    ApiResponse,
    CheckoutRequest,
    CheckoutResponse,
    PaymentListResponse,
    PaymentStatusResponse,
)
from app.modules.payment.service import PaymentService
from app.modules.payment_gateway.registry import GatewayRegistry, get_gateway_registry

router = APIRouter(prefix="/payment", tags=["payment"])


@router.post("/checkout", response_model=ApiResponse[CheckoutResponse])
async def create_checkout(
    data: CheckoutRequest,
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """Create a PIX checkout for a pack.

    An unexpired pending checkout for the same pack is returned as is.
    """
    service = PaymentService(session, registry)
    checkout = await service.create_checkout(user_id, data.pack_id)
    return ApiResponse(data=checkout)


@router.get("/my-purchases", response_model=PaymentListResponse)
async def list_my_purchases(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    service = PaymentService(session, registry)
    return await service.list_buyer_payments(user_id, page=page, limit=limit)


@router.get("/my-sales", response_model=PaymentListResponse)
async def list_my_sales(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    service = PaymentService(session, registry)
    return await service.list_creator_payments(user_id, page=page, limit=limit)


# ==================== Parameterized routes MUST be at the end ====================

@router.get("/{payment_id}/status", response_model=ApiResponse[PaymentStatusResponse])
async def get_payment_status(
    payment_id: uuid.UUID,
    user_id: uuid.UUID = Header(..., alias="X-User-ID"),
    session: AsyncSession = Depends(get_session),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """Payment status for the buyer's polling screen.

    While pending, the provider is asked for an expiry or cancellation;
    paid is only ever set by the webhook.
    """
    service = PaymentService(session, registry)
    result = await service.get_payment_status(payment_id, user_id)
    return ApiResponse(data=result)
