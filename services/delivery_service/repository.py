from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.models import Order
from services.order_service.status import TERMINAL_STATUSES
from .models import ASSIGNMENT_ACTIVE, DeliveryAgent, DeliveryAssignment


class DeliveryRepository:
    @staticmethod
    async def get_agent_by_user(db: AsyncSession, user_id: int) -> Optional[DeliveryAgent]:
        result = await db.execute(select(DeliveryAgent).where(DeliveryAgent.user_id == user_id))
        return result.scalars().first()

    @staticmethod
    async def lock_agent_by_user(db: AsyncSession, user_id: int) -> Optional[DeliveryAgent]:
        result = await db.execute(
            select(DeliveryAgent)
            .where(DeliveryAgent.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_open_orders(db: AsyncSession) -> Sequence[Order]:
        result = await db.execute(
            select(Order)
            .where(
                Order.delivery_agent_id.is_(None),
                Order.order_status.not_in([s.value for s in TERMINAL_STATUSES]),
            )
            .order_by(Order.order_date.asc(), Order.id.asc())
        )
        return result.scalars().all()

    @staticmethod
    async def claim_order(db: AsyncSession, order_id: int, agent_id: int) -> int:
        """Assign only if nobody holds the order yet; returns rows affected."""
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.delivery_agent_id.is_(None))
            .values(delivery_agent_id=agent_id)
        )
        return result.rowcount

    @staticmethod
    def add_assignment(db: AsyncSession, assignment: DeliveryAssignment) -> DeliveryAssignment:
        db.add(assignment)
        return assignment

    @staticmethod
    async def lock_active_assignment(db: AsyncSession, order_id: int, agent_id: int) -> Optional[DeliveryAssignment]:
        result = await db.execute(
            select(DeliveryAssignment)
            .where(
                DeliveryAssignment.order_id == order_id,
                DeliveryAssignment.delivery_agent_id == agent_id,
                DeliveryAssignment.order_status == ASSIGNMENT_ACTIVE,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_active_orders(db: AsyncSession, agent_id: int) -> Sequence[Order]:
        result = await db.execute(
            select(Order)
            .join(DeliveryAssignment, DeliveryAssignment.order_id == Order.id)
            .where(
                DeliveryAssignment.delivery_agent_id == agent_id,
                DeliveryAssignment.order_status == ASSIGNMENT_ACTIVE,
            )
            .order_by(DeliveryAssignment.accept_time.asc())
        )
        return result.scalars().all()

    @staticmethod
    async def list_assignments(db: AsyncSession, agent_id: int) -> Sequence[DeliveryAssignment]:
        result = await db.execute(
            select(DeliveryAssignment)
            .where(DeliveryAssignment.delivery_agent_id == agent_id)
            .order_by(DeliveryAssignment.accept_time.desc(), DeliveryAssignment.id.desc())
        )
        return result.scalars().all()
