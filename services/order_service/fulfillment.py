"""Order status transitions shared by every actor (vendor, courier, delivery agent, payment).

``transition`` validates the move against the status graph, appends to the
history and applies side effects that must commit with the status change
(stock restoration on cancellation). It never commits.
"""
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import IllegalTransition
from shared.observability import ecomm_order_transitions_total
from services.inventory_service.service import InventoryService
from .models import Order
from .status import OrderStatus, can_transition, parse_status, utcnow

logger = structlog.get_logger(__name__)

VENDOR = "vendor"
COURIER = "courier"
DELIVERY_AGENT = "delivery_agent"
PAYMENT = "payment"


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    previous: OrderStatus
    current: OrderStatus
    changed: bool


def current_status(order: Order) -> OrderStatus:
    return parse_status(order.order_status) or OrderStatus.PENDING


async def transition(
    db: AsyncSession,
    order: Order,
    target: OrderStatus,
    *,
    actor: str,
    source_status: str | None = None,
    note: str | None = None,
    at: datetime | None = None,
) -> TransitionResult:
    previous = current_status(order)

    if target == previous:
        return TransitionResult(order, previous, previous, changed=False)
    if not can_transition(previous, target):
        raise IllegalTransition(previous.value, target.value)

    now = at or utcnow()
    order.order_status = target.value
    order.status_history = order.status_history.append(
        target, actor=actor, source_status=source_status, note=note, at=now
    )

    if target == OrderStatus.DELIVERED and order.delivery_date is None:
        order.delivery_date = now
    if target == OrderStatus.CANCELLED:
        await restock_order(db, order)

    ecomm_order_transitions_total.labels(actor=actor, status=target.value).inc()
    logger.info(
        "order_status_changed",
        order_id=order.id,
        order_number=order.order_number,
        previous=previous.value,
        status=target.value,
        actor=actor,
    )
    return TransitionResult(order, previous, target, changed=True)


async def restock_order(db: AsyncSession, order: Order) -> None:
    """Return every line item's reserved quantity to the ledger."""
    for item in sorted(order.items, key=lambda i: (i.product_id, i.product_variant_id or 0)):
        await InventoryService.release(db, item.product_id, item.product_variant_id, item.quantity)
