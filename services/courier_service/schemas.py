from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CourierWebhookPayload(BaseModel):
    """Porter status callback. Unknown keys are kept for the audit trail."""

    model_config = ConfigDict(extra="allow")

    order_id: str = Field(min_length=1)
    status: str = Field(min_length=1)
    event_id: Optional[str] = None
    timestamp: Optional[str] = None
    rider_name: Optional[str] = None
    rider_number: Optional[str] = None
    rider_lat: Optional[float] = None
    rider_lng: Optional[float] = None
    estimated_pickup_time: Optional[str] = None
    estimated_drop_time: Optional[str] = None
    actual_pickup_time: Optional[str] = None
    actual_drop_time: Optional[str] = None


class WebhookAck(BaseModel):
    success: bool = True
    message: str = "Webhook processed successfully"
    outcome: str
    status: str


class DispatchRequest(BaseModel):
    order_number: str = Field(min_length=1)


class DispatchResponse(BaseModel):
    success: bool = True
    message: str = "Courier booked successfully"
    order_number: str
    courier_order_id: str
    tracking_url: Optional[str] = None


class TrackingResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]
