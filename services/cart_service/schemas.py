from typing import List, Optional

from pydantic import BaseModel, Field


class CartItemUpdate(BaseModel):
    product_id: int
    product_variant_id: Optional[int] = None
    # 0 removes the line
    quantity: int = Field(ge=0)


class CartItemResponse(BaseModel):
    product_id: int
    product_variant_id: Optional[int]
    quantity: int
    unit_price: Optional[float]

    class Config:
        from_attributes = True


class CartResponse(BaseModel):
    success: bool = True
    items: List[CartItemResponse] = []
