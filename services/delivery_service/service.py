"""Delivery agent workflow: pick up open orders, deliver them, get paid.

Every mutating call locks the agent row first and the order row second, so
two calls from the same agent serialise and two agents racing for one order
see exactly one winner.
"""
from typing import Sequence

import structlog
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.errors import (
    AgentBusy, AgentNotFound, ConflictError, NotFoundError, OrderAlreadyAssigned, OrderNotFound,
    ValidationError,
)
from shared.observability import ecomm_delivery_assignments_total
from services.order_service.fulfillment import DELIVERY_AGENT, transition
from services.order_service.models import Order
from services.order_service.pricing import money
from services.order_service.repository import OrderRepository
from services.order_service.service import notify_best_effort
from services.order_service.status import TERMINAL_STATUSES, OrderStatus, parse_status, utcnow
from .models import (
    AGENT_AVAILABLE, AGENT_ON_DELIVERY, ASSIGNMENT_ACTIVE, ASSIGNMENT_COMPLETED, ASSIGNMENT_RELEASED,
    DeliveryAgent, DeliveryAssignment,
)
from .repository import DeliveryRepository
from .schemas import AgentProfileUpdate

logger = structlog.get_logger(__name__)


def _ensure_online(agent: DeliveryAgent) -> None:
    if not agent.is_active:
        raise ValidationError("You are offline")


class DeliveryService:

    @staticmethod
    async def get_agent(db: AsyncSession, user_id: int) -> DeliveryAgent:
        agent = await DeliveryRepository.get_agent_by_user(db, user_id)
        if agent is None:
            raise AgentNotFound()
        return agent

    @staticmethod
    async def update_profile(db: AsyncSession, user_id: int, data: AgentProfileUpdate) -> DeliveryAgent:
        """Edit contact and vehicle details, or go online and offline."""
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationError("No data provided")

        try:
            agent = await DeliveryRepository.lock_agent_by_user(db, user_id)
            if agent is None:
                raise AgentNotFound()
            if changes.get("is_active") is False and agent.status == AGENT_ON_DELIVERY:
                raise ConflictError("Complete or release your active delivery before going offline")
            for name, value in changes.items():
                setattr(agent, name, value)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("delivery_agent_updated", agent_id=agent.id, fields=sorted(changes))
        return agent

    @staticmethod
    async def get_open_orders(db: AsyncSession, user_id: int) -> Sequence[Order]:
        agent = await DeliveryService.get_agent(db, user_id)
        _ensure_online(agent)
        return await DeliveryRepository.list_open_orders(db)

    @staticmethod
    async def accept_order(db: AsyncSession, user_id: int, order_id: int) -> DeliveryAssignment:
        try:
            agent = await DeliveryRepository.lock_agent_by_user(db, user_id)
            if agent is None:
                raise AgentNotFound()
            _ensure_online(agent)
            if agent.status == AGENT_ON_DELIVERY:
                raise AgentBusy()

            order = await OrderRepository.lock_order(db, order_id)
            if order is None:
                raise OrderNotFound()
            if order.delivery_agent_id is not None:
                raise OrderAlreadyAssigned()
            if parse_status(order.order_status) in TERMINAL_STATUSES:
                raise ConflictError("Order is no longer open for delivery")

            # Conditional write: another agent that got here first leaves zero rows to update
            if await DeliveryRepository.claim_order(db, order.id, agent.id) != 1:
                raise OrderAlreadyAssigned()

            agent.status = AGENT_ON_DELIVERY
            assignment = DeliveryRepository.add_assignment(
                db,
                DeliveryAssignment(
                    delivery_agent_id=agent.id,
                    order_id=order.id,
                    order_status=ASSIGNMENT_ACTIVE,
                    accept_time=utcnow(),
                    total_amount=order.total_amount,
                    earning=0,
                    delivery_address=order.delivery_address,
                    delivery_city=order.delivery_city,
                    delivery_latitude=order.delivery_latitude,
                    delivery_longitude=order.delivery_longitude,
                ),
            )
            await db.commit()
        except sa_exc.IntegrityError as e:
            await db.rollback()
            ecomm_delivery_assignments_total.labels(action="lost_race").inc()
            raise OrderAlreadyAssigned() from e
        except OrderAlreadyAssigned:
            await db.rollback()
            ecomm_delivery_assignments_total.labels(action="lost_race").inc()
            raise
        except Exception:
            await db.rollback()
            raise

        ecomm_delivery_assignments_total.labels(action="accepted").inc()
        logger.info("delivery_accepted", order_id=order_id, agent_id=assignment.delivery_agent_id)
        return assignment

    @staticmethod
    async def complete_order(db: AsyncSession, user_id: int, order_id: int) -> DeliveryAssignment:
        fee = money(settings.DELIVERY_AGENT_FEE)
        try:
            agent = await DeliveryRepository.lock_agent_by_user(db, user_id)
            if agent is None:
                raise AgentNotFound()
            _ensure_online(agent)

            order = await OrderRepository.lock_order(db, order_id)
            assignment = await DeliveryRepository.lock_active_assignment(db, order_id, agent.id)
            if order is None or order.delivery_agent_id != agent.id or assignment is None:
                raise NotFoundError("Order not found or not assigned to you")

            result = await transition(db, order, OrderStatus.DELIVERED, actor=DELIVERY_AGENT)

            now = order.delivery_date or utcnow()
            assignment.order_status = ASSIGNMENT_COMPLETED
            assignment.delivery_time = now
            assignment.earning = fee
            agent.status = AGENT_AVAILABLE
            agent.total_deliveries = (agent.total_deliveries or 0) + 1
            agent.total_earnings = money(agent.total_earnings) + fee
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        ecomm_delivery_assignments_total.labels(action="completed").inc()
        logger.info("delivery_completed", order_id=order_id, agent_id=assignment.delivery_agent_id, earning=str(fee))
        if result.changed:
            await notify_best_effort(db, order, OrderStatus.DELIVERED.value)
        return assignment

    @staticmethod
    async def release_order(db: AsyncSession, user_id: int, order_id: int) -> DeliveryAssignment:
        """Hand an accepted order back to the open pool."""
        try:
            agent = await DeliveryRepository.lock_agent_by_user(db, user_id)
            if agent is None:
                raise AgentNotFound()

            order = await OrderRepository.lock_order(db, order_id)
            assignment = await DeliveryRepository.lock_active_assignment(db, order_id, agent.id)
            if order is None or order.delivery_agent_id != agent.id or assignment is None:
                raise NotFoundError("Order not found or not assigned to you")

            order.delivery_agent_id = None
            assignment.order_status = ASSIGNMENT_RELEASED
            assignment.release_time = utcnow()
            agent.status = AGENT_AVAILABLE
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        ecomm_delivery_assignments_total.labels(action="released").inc()
        logger.info("delivery_released", order_id=order_id, agent_id=assignment.delivery_agent_id)
        return assignment

    @staticmethod
    async def get_active_orders(db: AsyncSession, user_id: int) -> Sequence[Order]:
        agent = await DeliveryService.get_agent(db, user_id)
        return await DeliveryRepository.list_active_orders(db, agent.id)

    @staticmethod
    async def get_earnings(db: AsyncSession, user_id: int) -> tuple[DeliveryAgent, Sequence[DeliveryAssignment]]:
        agent = await DeliveryService.get_agent(db, user_id)
        return agent, await DeliveryRepository.list_assignments(db, agent.id)
