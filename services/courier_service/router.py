import pydantic
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import TenantContext, get_db, get_tenant
from shared.errors import InvalidSignature, ValidationError
from shared.security.dependencies import CUSTOMER, VENDOR, Principal, require_role
from .client import PorterClient, parse_webhook_event, webhook_signature_valid
from .schemas import CourierWebhookPayload, DispatchRequest, DispatchResponse, TrackingResponse, WebhookAck
from .service import CourierService

router = APIRouter()
public_router = APIRouter()


def get_courier_client(tenant: TenantContext = Depends(get_tenant)) -> PorterClient:
    return PorterClient(tenant.courier_api_key)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "courier", "status": "running"}


# Unauthenticated: the tenant comes from X-Tenant-ID and authenticity from the optional HMAC
@public_router.post("/webhook", response_model=WebhookAck)
async def courier_webhook(
    request: Request,
    x_courier_signature: str | None = Header(default=None),
    tenant: TenantContext = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    body = await request.body()
    if not webhook_signature_valid(tenant.webhook_secret, body, x_courier_signature):
        raise InvalidSignature("Invalid courier signature")
    try:
        payload = CourierWebhookPayload.model_validate_json(body)
    except pydantic.ValidationError as e:
        raise ValidationError("Malformed courier event") from e

    result = await CourierService.ingest_event(db, parse_webhook_event(payload.model_dump()))
    return WebhookAck(outcome=result.outcome, status=result.status)


@router.post("/dispatch", response_model=DispatchResponse)
async def dispatch(
    payload: DispatchRequest,
    principal: Principal = Depends(require_role(VENDOR)),
    db: AsyncSession = Depends(get_db),
    client: PorterClient = Depends(get_courier_client),
):
    order = await CourierService.dispatch(db, principal.user_id, payload.order_number, client)
    return DispatchResponse(
        order_number=order.order_number,
        courier_order_id=order.courier_order_id,
        tracking_url=order.courier_tracking_url,
    )


@router.get("/tracking/{order_number}", response_model=TrackingResponse)
async def tracking(
    order_number: str,
    principal: Principal = Depends(require_role(CUSTOMER, VENDOR)),
    db: AsyncSession = Depends(get_db),
    client: PorterClient = Depends(get_courier_client),
):
    return TrackingResponse(data=await CourierService.tracking(db, principal, order_number, client))


@router.get("/live-location/{order_number}", response_model=TrackingResponse)
async def live_location(
    order_number: str,
    principal: Principal = Depends(require_role(CUSTOMER, VENDOR)),
    db: AsyncSession = Depends(get_db),
    client: PorterClient = Depends(get_courier_client),
):
    return TrackingResponse(data=await CourierService.live_location(db, principal, order_number, client))
