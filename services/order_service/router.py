from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import TenantContext, get_db, get_tenant
from shared.security import limiter
from shared.security.dependencies import CUSTOMER, VENDOR, Principal, require_role
from .invoice import InvoiceService, get_invoice_service
from .pricing import PricingEngine
from .schemas import (
    CustomerOrdersResponse, MessageResponse, OrderDetailResponse, OrderResponse, PlaceOrderRequest,
    PlaceOrderResponse, ShopOrdersResponse, UpdateStatusRequest,
)
from .service import OrderService

router = APIRouter()
public_router = APIRouter()


def get_pricing_engine() -> PricingEngine:
    return PricingEngine()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@router.post("/placeOrder", response_model=PlaceOrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.ORDER_RATE_LIMIT)
async def place_order(
    request: Request,
    payload: PlaceOrderRequest,
    principal: Principal = Depends(require_role(CUSTOMER)),
    tenant: TenantContext = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
    pricing: PricingEngine = Depends(get_pricing_engine),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    result = await OrderService.place_order(
        db, principal.user_id, payload, tenant_id=tenant.tenant_id, pricing=pricing, invoices=invoices
    )
    return PlaceOrderResponse(
        order_number=result.confirmation.order_number,
        pdfUrl=result.invoice_url,
        warnings=result.warnings,
        data=result.confirmation,
    )


@router.patch("/updateStatus", response_model=MessageResponse)
async def update_status(
    payload: UpdateStatusRequest,
    principal: Principal = Depends(require_role(VENDOR)),
    db: AsyncSession = Depends(get_db),
):
    result = await OrderService.update_status(db, principal.user_id, payload.order_number, payload.status)
    if not result.changed:
        return MessageResponse(message=f"Order is already {result.current.value}")
    return MessageResponse(message="Order status updated successfully")


@router.get("/getOrderByCustomerID", response_model=CustomerOrdersResponse)
async def get_customer_orders(
    principal: Principal = Depends(require_role(CUSTOMER)),
    db: AsyncSession = Depends(get_db),
):
    return CustomerOrdersResponse(data=await OrderService.list_customer_orders(db, principal.user_id))


@router.get("/getOrderByShopID", response_model=ShopOrdersResponse)
async def get_shop_orders(
    search: str = "",
    status: Optional[str] = None,
    sort_by: str = "order_date",
    sort_dir: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(require_role(VENDOR)),
    db: AsyncSession = Depends(get_db),
):
    orders, pagination = await OrderService.list_shop_orders(
        db, principal.user_id, search=search.strip(), status=status, sort_by=sort_by, sort_dir=sort_dir,
        page=page, limit=limit,
    )
    return ShopOrdersResponse(orders=orders, pagination=pagination)


# Declared last so the literal paths above win
@router.get("/{order_number}", response_model=OrderDetailResponse)
async def get_order(
    order_number: str,
    principal: Principal = Depends(require_role(CUSTOMER, VENDOR)),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get_order_for(db, principal, order_number)
    return OrderDetailResponse(data=OrderResponse.from_order(order, include_customer=principal.role == VENDOR))
