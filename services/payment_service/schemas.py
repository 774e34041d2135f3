from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class CreatePaymentRequest(BaseModel):
    order_id: int = Field(gt=0)
    # Omitted: charge the order's grand total
    amount: Optional[Decimal] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    provider: str = "razorpay"
    email: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    # The checkout widget posts razorpay_* names; both spellings are accepted
    gateway_order_id: str = Field(
        min_length=1, validation_alias=AliasChoices("gateway_order_id", "razorpay_order_id")
    )
    gateway_payment_id: str = Field(
        min_length=1, validation_alias=AliasChoices("gateway_payment_id", "razorpay_payment_id")
    )
    signature: str = Field(min_length=1, validation_alias=AliasChoices("signature", "razorpay_signature"))
    order_id: int = Field(gt=0)


class GatewayOrder(BaseModel):
    id: str
    amount: float
    currency: str
    receipt: Optional[str] = None
    status: str
    created_at: Optional[int] = None


class CreatePaymentResponse(BaseModel):
    success: bool = True
    message: str = "Order created successfully"
    data: GatewayOrder
    key: str


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    message: str
    order_number: str
    payment_status: str
    order_status: str
