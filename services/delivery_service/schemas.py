from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from services.order_service.models import Order


class DeliveryOrderRequest(BaseModel):
    order_id: int = Field(gt=0)


class DeliveryOrder(BaseModel):
    id: int
    order_number: str
    order_date: Optional[datetime]
    status: str
    delivery_address: str
    delivery_city: Optional[str]
    delivery_state: Optional[str]
    delivery_country: Optional[str]
    delivery_postal_code: Optional[str]
    delivery_latitude: Optional[float]
    delivery_longitude: Optional[float]
    delivery_instructions: Optional[str]
    payment_method: str
    payment_status: str
    total_amount: float
    notes: Optional[str]
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_alternate_phone: Optional[str] = None

    @classmethod
    def from_order(cls, order: Order) -> "DeliveryOrder":
        customer = order.customer
        return cls(
            id=order.id,
            order_number=order.order_number,
            order_date=order.order_date,
            status=order.order_status,
            delivery_address=order.delivery_address,
            delivery_city=order.delivery_city,
            delivery_state=order.delivery_state,
            delivery_country=order.delivery_country,
            delivery_postal_code=order.delivery_postal_code,
            delivery_latitude=order.delivery_latitude,
            delivery_longitude=order.delivery_longitude,
            delivery_instructions=order.delivery_instructions,
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            total_amount=float(order.total_amount),
            notes=order.notes,
            customer_name=customer.name if customer else None,
            customer_phone=customer.phone if customer else None,
            customer_alternate_phone=customer.alternate_phone if customer else None,
        )


class DeliveryOrdersResponse(BaseModel):
    success: bool = True
    message: str
    totalOrders: int
    orders: List[DeliveryOrder]


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    order_status: str
    accept_time: datetime
    delivery_time: Optional[datetime]
    release_time: Optional[datetime]
    total_amount: float
    earning: float
    delivery_address: Optional[str]
    delivery_city: Optional[str]


class EarningsResponse(BaseModel):
    success: bool = True
    message: str = "Earnings fetched successfully"
    total_earnings: float
    total_deliveries: int
    data: List[AssignmentResponse]


class AgentProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    phone: Optional[str]
    vehicle_type: Optional[str]
    vehicle_number: Optional[str]
    is_active: bool
    status: str
    total_deliveries: int
    total_earnings: float


class AgentProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=20)
    vehicle_type: Optional[str] = Field(default=None, max_length=50)
    vehicle_number: Optional[str] = Field(default=None, max_length=50)
    # false takes the agent offline
    is_active: Optional[bool] = None


class AgentProfileResponse(BaseModel):
    success: bool = True
    message: str = "Profile fetched successfully"
    data: AgentProfile
