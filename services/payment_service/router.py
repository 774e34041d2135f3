from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import TenantContext, get_db, get_tenant
from shared.security import limiter
from shared.security.dependencies import CUSTOMER, Principal, get_current_principal, require_role
from .gateway import RazorpayClient
from .schemas import CreatePaymentRequest, CreatePaymentResponse, VerifyPaymentRequest, VerifyPaymentResponse
from .service import PaymentService

router = APIRouter()
public_router = APIRouter()


def get_payment_gateway(tenant: TenantContext = Depends(get_tenant)) -> RazorpayClient:
    return RazorpayClient(tenant.payment_key_id, tenant.payment_key_secret)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


@router.post("/create-order", response_model=CreatePaymentResponse)
@limiter.limit(settings.ORDER_RATE_LIMIT)
async def create_order(
    request: Request,
    payload: CreatePaymentRequest,
    principal: Principal = Depends(require_role(CUSTOMER)),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayClient = Depends(get_payment_gateway),
):
    gateway_order = await PaymentService.create_payment_intent(db, principal.user_id, payload, gateway)
    return CreatePaymentResponse(data=gateway_order, key=gateway.key_id)


@router.post("/verify", response_model=VerifyPaymentResponse)
@limiter.limit(settings.ORDER_RATE_LIMIT)
async def verify(
    request: Request,
    payload: VerifyPaymentRequest,
    principal: Principal = Depends(get_current_principal),
    tenant: TenantContext = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    result = await PaymentService.verify_and_capture(db, payload, tenant.payment_key_secret)
    return VerifyPaymentResponse(
        message="Payment verified successfully" if result.captured else "Payment already verified",
        order_number=result.order_number,
        payment_status=result.payment_status,
        order_status=result.order_status,
    )
