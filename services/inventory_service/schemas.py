from typing import List, Optional

from pydantic import BaseModel, Field


class StockAdjustment(BaseModel):
    product_id: int
    product_variant_id: Optional[int] = None
    quantity: int = Field(gt=0)


class VariantStockResponse(BaseModel):
    id: int
    sku: Optional[str]
    stock: int

    class Config:
        from_attributes = True


class ProductStockResponse(BaseModel):
    id: int
    product_name: str
    stock_quantity: int
    variants: List[VariantStockResponse] = []

    class Config:
        from_attributes = True


class StockAdjustmentResponse(BaseModel):
    success: bool = True
    message: str
    product_id: int
    product_variant_id: Optional[int]
    remaining: int
