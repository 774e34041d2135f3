from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key
from .schemas import ProductStockResponse, StockAdjustment, StockAdjustmentResponse
from .service import InventoryService

# Stock mutations outside an order are internal, compensating operations
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "inventory", "status": "running"}


@public_router.get("/{product_id}", response_model=ProductStockResponse)
async def get_stock(product_id: int, db: AsyncSession = Depends(get_db)):
    return await InventoryService.get_stock(db, product_id)


@router.post("/restock", response_model=StockAdjustmentResponse)
async def restock(payload: StockAdjustment, db: AsyncSession = Depends(get_db)):
    try:
        reservation = await InventoryService.release(
            db, payload.product_id, payload.product_variant_id, payload.quantity
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return StockAdjustmentResponse(
        message="Stock restored",
        product_id=reservation.product_id,
        product_variant_id=reservation.variant_id,
        remaining=reservation.remaining,
    )


@router.post("/reserve", response_model=StockAdjustmentResponse)
async def reserve(payload: StockAdjustment, db: AsyncSession = Depends(get_db)):
    try:
        reservation = await InventoryService.reserve(
            db, payload.product_id, payload.product_variant_id, payload.quantity
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return StockAdjustmentResponse(
        message="Stock reserved",
        product_id=reservation.product_id,
        product_variant_id=reservation.variant_id,
        remaining=reservation.remaining,
    )
