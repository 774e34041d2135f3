from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    order_id: Optional[int]
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="metadata_")
    is_read: bool
    read_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class NotificationListResponse(BaseModel):
    success: bool = True
    message: str = "Notifications fetched successfully"
    data: List[NotificationResponse]
    pagination: Pagination


class MessageResponse(BaseModel):
    success: bool = True
    message: str
