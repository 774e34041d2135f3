from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import Order, OrderItem


class OrderItemIn(BaseModel):
    product_id: int = Field(gt=0)
    product_variant_id: Optional[int] = Field(default=None, gt=0)
    quantity: int = Field(gt=0)


class PlaceOrderRequest(BaseModel):
    delivery_address: str = Field(min_length=1, max_length=500)
    delivery_city: str = ""
    delivery_state: str = ""
    delivery_country: str = ""
    delivery_postal_code: str = ""
    delivery_latitude: float = 0
    delivery_longitude: float = 0
    delivery_instructions: str = ""
    items: List[OrderItemIn] = Field(min_length=1)
    payment_method: str = Field(min_length=1, max_length=50)
    coupon_code: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("coupon_code")
    @classmethod
    def blank_coupon_is_none(cls, value):
        return value.strip() or None if value else None


class UpdateStatusRequest(BaseModel):
    order_number: str = Field(min_length=1)
    status: str = Field(min_length=1)


# --- Placement confirmation ---

class CustomerBlock(BaseModel):
    name: str
    email: str = ""
    phone: str = ""
    alternate_phone: str = ""


class DeliveryBlock(BaseModel):
    address: str
    city: str = ""
    state: str = ""
    country: str = ""
    postal_code: str = ""
    instructions: str = ""


class ConfirmationItem(BaseModel):
    name: str
    sku: str = ""
    quantity: int
    price_per_unit: float
    discount_per_unit: float
    tax_per_unit: float
    total: float
    variant: Optional[Dict[str, Any]] = None


class PriceSummary(BaseModel):
    sub_total: float
    discount: float
    tax: float
    shipping_fee: float
    total: float


class OrderConfirmation(BaseModel):
    order_id: int
    order_number: str
    date: str
    time: str
    payment_method: str
    payment_status: str
    customer: CustomerBlock
    delivery_address: DeliveryBlock
    items: List[ConfirmationItem]
    price_summary: PriceSummary
    notes: str = ""


class PlaceOrderResponse(BaseModel):
    success: bool = True
    message: str = "Order placed successfully"
    order_number: str
    pdfUrl: Optional[str] = None
    warnings: List[str] = []
    data: OrderConfirmation


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# --- Listings ---

class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_variant_id: Optional[int]
    quantity: int
    price_per_unit: float
    discount_per_unit: float
    tax_per_unit: float
    total_price: float
    sku: Optional[str]
    product_snapshot: Dict[str, Any]

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemResponse":
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_variant_id=item.product_variant_id,
            quantity=item.quantity,
            price_per_unit=float(item.price_per_unit),
            discount_per_unit=float(item.discount_per_unit),
            tax_per_unit=float(item.tax_per_unit),
            total_price=float(item.total_price),
            sku=item.sku,
            product_snapshot=item.product_snapshot or {},
        )


class OrderResponse(BaseModel):
    id: int
    order_number: str
    status: str
    invoice_url: Optional[str]
    order_date: Optional[datetime]
    delivery_date: Optional[datetime]
    customer: Optional[CustomerBlock] = None
    delivery: Dict[str, Any]
    payment: Dict[str, Any]
    courier: Dict[str, Any]
    delivery_agent_id: Optional[int]
    notes: Optional[str]
    items: List[OrderItemResponse]
    status_history: List[Dict[str, Any]]

    @classmethod
    def from_order(cls, order: Order, include_customer: bool = False) -> "OrderResponse":
        customer = None
        if include_customer and order.customer is not None:
            customer = CustomerBlock(
                name=order.customer.name,
                email=order.customer.email or "",
                phone=order.customer.phone or "",
                alternate_phone=order.customer.alternate_phone or "",
            )
        return cls(
            id=order.id,
            order_number=order.order_number,
            status=order.order_status,
            invoice_url=order.invoice_url,
            order_date=order.order_date,
            delivery_date=order.delivery_date,
            customer=customer,
            delivery={
                "address": order.delivery_address,
                "city": order.delivery_city,
                "state": order.delivery_state,
                "country": order.delivery_country,
                "postal_code": order.delivery_postal_code,
                "instructions": order.delivery_instructions,
                "coordinates": {"lat": order.delivery_latitude, "lng": order.delivery_longitude},
            },
            payment={
                "method": order.payment_method,
                "status": order.payment_status,
                "subtotal": float(order.sub_total),
                "discount": float(order.discount_amount),
                "tax": float(order.tax_amount),
                "shipping": float(order.shipping_fee),
                "total": float(order.total_amount),
                "currency": order.currency,
                "coupon": order.coupon_code,
            },
            courier={
                "order_id": order.courier_order_id,
                "tracking_url": order.courier_tracking_url,
                "rider_name": order.rider_name,
                "rider_phone": order.rider_phone,
            },
            delivery_agent_id=order.delivery_agent_id,
            notes=order.notes,
            items=[OrderItemResponse.from_item(item) for item in order.items],
            status_history=order.status_history.to_list(),
        )


class CustomerOrdersResponse(BaseModel):
    success: bool = True
    message: str = "Orders retrieved successfully"
    data: List[OrderResponse]


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class ShopOrdersResponse(BaseModel):
    success: bool = True
    message: str = "Orders fetched successfully"
    orders: List[OrderResponse]
    pagination: Pagination


class OrderDetailResponse(BaseModel):
    success: bool = True
    data: OrderResponse
