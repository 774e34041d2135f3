import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import Principal, get_current_principal
from .schemas import MessageResponse, NotificationListResponse, NotificationResponse, Pagination
from .service import CUSTOMER, VENDOR, NotificationService

router = APIRouter()
public_router = APIRouter()

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "notification", "status": "running"}


def _recipient_type(principal: Principal) -> str:
    return VENDOR if principal.role == VENDOR else CUSTOMER


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await NotificationService.list_notifications(
        db, principal.user_id, _recipient_type(principal), page=page, limit=limit, unread_only=unread_only
    )
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(row) for row in rows],
        pagination=Pagination(total=total, page=page, limit=limit, totalPages=math.ceil(total / limit)),
    )


# Declared before /{notification_id}/read so the literal path wins
@router.patch("/mark-all-read", response_model=MessageResponse)
async def mark_all_read(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService.mark_all_read(db, principal.user_id, _recipient_type(principal))
    return MessageResponse(message="All notifications marked as read")


@router.patch("/{notification_id}/read", response_model=MessageResponse)
async def mark_read(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService.mark_read(db, principal.user_id, notification_id)
    return MessageResponse(message="Notification marked as read")
