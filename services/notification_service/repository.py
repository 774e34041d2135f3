from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Notification


class NotificationRepository:
    @staticmethod
    def add(db: AsyncSession, notification: Notification) -> Notification:
        db.add(notification)
        return notification

    @staticmethod
    async def list_for_recipient(
        db: AsyncSession, recipient_id: int, recipient_type: str, *, unread_only: bool, page: int, limit: int
    ) -> tuple[Sequence[Notification], int]:
        conditions = [Notification.recipient_id == recipient_id, Notification.recipient_type == recipient_type]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))
        total = (await db.execute(select(func.count(Notification.id)).where(*conditions))).scalar_one()
        result = await db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return result.scalars().all(), int(total)

    @staticmethod
    async def get_for_recipient(db: AsyncSession, notification_id: int, recipient_id: int) -> Optional[Notification]:
        result = await db.execute(
            select(Notification).where(Notification.id == notification_id, Notification.recipient_id == recipient_id)
        )
        return result.scalars().first()

    @staticmethod
    async def mark_all_read(db: AsyncSession, recipient_id: int, recipient_type: str, read_at) -> int:
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.recipient_type == recipient_type,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
        )
        return result.rowcount or 0

    @staticmethod
    async def count_for_order(db: AsyncSession, order_id: int, type_: str | None = None) -> int:
        conditions = [Notification.order_id == order_id]
        if type_:
            conditions.append(Notification.type == type_)
        return int((await db.execute(select(func.count(Notification.id)).where(*conditions))).scalar_one())
