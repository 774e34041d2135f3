from typing import Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Customer, Order, Shop
from .status import OrderStatus

# Caller-supplied sort keys map onto columns; nothing else reaches ORDER BY
SORTABLE_COLUMNS = {
    "order_date": Order.order_date,
    "total_amount": Order.total_amount,
    "order_number": Order.order_number,
    "status": Order.order_status,
}
FILTERABLE_STATUSES = {status.value for status in OrderStatus}


class OrderRepository:
    @staticmethod
    async def get_customer_by_user(db: AsyncSession, user_id: int) -> Optional[Customer]:
        result = await db.execute(select(Customer).where(Customer.user_id == user_id))
        return result.scalars().first()

    @staticmethod
    async def get_shop_by_user(db: AsyncSession, user_id: int) -> Optional[Shop]:
        result = await db.execute(select(Shop).where(Shop.user_id == user_id))
        return result.scalars().first()

    @staticmethod
    async def add_order(db: AsyncSession, order: Order) -> Order:
        """Insert the header; line items cascade through Order.items."""
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int) -> Optional[Order]:
        result = await db.execute(select(Order).where(Order.id == order_id))
        return result.scalars().first()

    @staticmethod
    async def get_order_by_number(db: AsyncSession, order_number: str) -> Optional[Order]:
        result = await db.execute(select(Order).where(Order.order_number == order_number))
        return result.scalars().first()

    @staticmethod
    async def lock_order(db: AsyncSession, order_id: int) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def lock_order_for_shop(db: AsyncSession, order_number: str, shop_id: int) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.order_number == order_number, Order.shop_id == shop_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def lock_order_by_reference(db: AsyncSession, reference: str) -> Optional[Order]:
        """Courier callbacks name the order by the courier's id or by our order number."""
        result = await db.execute(
            select(Order)
            .where(or_(Order.courier_order_id == reference, Order.order_number == reference))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: int) -> Sequence[Order]:
        result = await db.execute(
            select(Order).where(Order.user_id == user_id).order_by(Order.order_date.desc(), Order.id.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def list_for_shop(
        db: AsyncSession,
        shop_id: int,
        *,
        search: str = "",
        status: str | None = None,
        sort_by: str = "order_date",
        sort_dir: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> tuple[Sequence[Order], int]:
        conditions = [Order.shop_id == shop_id]
        if search:
            needle = search.lower()
            conditions.append(
                or_(
                    func.lower(Order.order_number).contains(needle, autoescape=True),
                    func.lower(Customer.name).contains(needle, autoescape=True),
                )
            )
        if status in FILTERABLE_STATUSES:
            conditions.append(Order.order_status == status)

        total = (
            await db.execute(
                select(func.count(Order.id))
                .select_from(Order)
                .join(Customer, Customer.id == Order.customer_id)
                .where(*conditions)
            )
        ).scalar_one()

        column = SORTABLE_COLUMNS.get(sort_by, Order.order_date)
        ordering = column.asc() if sort_dir.lower() == "asc" else column.desc()
        result = await db.execute(
            select(Order)
            .join(Customer, Customer.id == Order.customer_id)
            .where(*conditions)
            .order_by(ordering, Order.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return result.scalars().all(), int(total)
