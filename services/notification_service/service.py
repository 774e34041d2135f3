import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFoundError
from services.order_service.models import Customer, Order, Shop
from services.order_service.status import utcnow
from .models import Notification
from .repository import NotificationRepository

logger = structlog.get_logger(__name__)

CUSTOMER = "CUSTOMER"
VENDOR = "VENDOR"

_CUSTOMER_MESSAGES = {
    "pending": ("Order Placed", "Your order #{number} has been placed successfully."),
    "order_placed": ("Order Accepted", "Your order #{number} has been accepted by {shop}."),
    "shipped": ("Order Picked Up", "Your order #{number} has been picked up and is on the way!"),
    "delivered": ("Order Delivered", "Your order #{number} has been delivered successfully."),
    "cancelled": ("Order Cancelled", "Your order #{number} has been cancelled."),
}


class NotificationService:

    @staticmethod
    async def notify_order_status(db: AsyncSession, order: Order, status: str, extra: dict | None = None) -> list[Notification]:
        """Fan a status change out to the customer and the shop owner. Commits its own writes."""
        shop = await db.get(Shop, order.shop_id)
        customer = await db.get(Customer, order.customer_id)
        shop_name = shop.name if shop else "the shop"
        title, template = _CUSTOMER_MESSAGES.get(
            status, ("Order Update", "Your order #{number} status has been updated.")
        )
        extra = {k: v for k, v in (extra or {}).items() if v is not None}
        notifications = [
            Notification(
                recipient_id=order.user_id,
                recipient_type=CUSTOMER,
                type=f"ORDER_{status.upper()}",
                title=title,
                message=template.format(number=order.order_number, shop=shop_name),
                order_id=order.id,
                metadata_={
                    "order_number": order.order_number,
                    "status": status,
                    "tracking_url": order.courier_tracking_url,
                    **extra,
                },
            )
        ]
        if shop is not None:
            notifications.append(
                Notification(
                    recipient_id=shop.user_id,
                    recipient_type=VENDOR,
                    type=f"ORDER_{status.upper()}",
                    title=f"Order Update: {order.order_number}",
                    message=f"Order #{order.order_number} status changed to {status}.",
                    order_id=order.id,
                    metadata_={
                        "order_number": order.order_number,
                        "status": status,
                        "customer_name": customer.name if customer else None,
                        **extra,
                    },
                )
            )
        try:
            for notification in notifications:
                NotificationRepository.add(db, notification)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("order_notifications_sent", order_id=order.id, status=status, count=len(notifications))
        return notifications

    @staticmethod
    async def list_notifications(db: AsyncSession, user_id: int, recipient_type: str, *, page: int, limit: int,
                                 unread_only: bool):
        return await NotificationRepository.list_for_recipient(
            db, user_id, recipient_type, unread_only=unread_only, page=page, limit=limit
        )

    @staticmethod
    async def mark_read(db: AsyncSession, user_id: int, notification_id: int) -> Notification:
        notification = await NotificationRepository.get_for_recipient(db, notification_id, user_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await db.commit()
        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int, recipient_type: str) -> int:
        try:
            count = await NotificationRepository.mark_all_read(db, user_id, recipient_type, utcnow())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return count
