from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import CUSTOMER, Principal, require_role
from .schemas import CartItemUpdate, CartResponse
from .service import CartService

router = APIRouter()
public_router = APIRouter()

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "cart", "status": "running"}


@router.get("/", response_model=CartResponse)
async def get_cart(
    principal: Principal = Depends(require_role(CUSTOMER)),
    db: AsyncSession = Depends(get_db),
):
    return CartResponse(items=await CartService.get_cart(db, principal.user_id))


@router.post("/items", response_model=CartResponse)
async def set_item(
    item: CartItemUpdate,
    principal: Principal = Depends(require_role(CUSTOMER)),
    db: AsyncSession = Depends(get_db),
):
    return CartResponse(items=await CartService.set_item(db, principal.user_id, item))
