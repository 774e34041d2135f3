from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import exc as sa_exc, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import ConflictError, OrderNotFound, ShopNotFound, UpstreamError, ValidationError
from shared.observability import ecomm_courier_events_total
from shared.security.dependencies import Principal
from services.order_service.fulfillment import COURIER, current_status, transition
from services.order_service.models import Customer, Order
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService, notify_best_effort
from services.order_service.status import TERMINAL_STATUSES, can_transition
from .client import CourierUpdate, PorterClient, build_create_payload
from .models import CourierEvent

logger = structlog.get_logger(__name__)

APPLIED = "applied"
UNCHANGED = "unchanged"
STALE = "stale"
DUPLICATE = "duplicate"


@dataclass(frozen=True)
class IngestResult:
    order_number: str
    outcome: str
    status: str


async def event_seen(db: AsyncSession, order_id: int, event_key: str) -> bool:
    result = await db.execute(
        select(CourierEvent.id).where(CourierEvent.order_id == order_id, CourierEvent.event_key == event_key)
    )
    return result.scalar_one_or_none() is not None


async def _current_status(db: AsyncSession, reference: str) -> str:
    """Status as committed by whoever won a concurrent write."""
    order = await OrderRepository.lock_order_by_reference(db, reference)
    status = order.order_status
    await db.commit()
    return status


def _apply_rider_fields(order: Order, update: CourierUpdate) -> None:
    rider = update.rider
    if rider.name is not None:
        order.rider_name = rider.name
    if rider.phone is not None:
        order.rider_phone = rider.phone
    if rider.latitude is not None:
        order.rider_lat = rider.latitude
    if rider.longitude is not None:
        order.rider_lng = rider.longitude
    if update.estimated_pickup_time:
        order.estimated_pickup_time = update.estimated_pickup_time
    if update.estimated_drop_time:
        order.estimated_delivery_time = update.estimated_drop_time
    if update.actual_pickup_time:
        order.pickup_time = update.actual_pickup_time
    if update.actual_drop_time:
        order.actual_delivery_time = update.actual_drop_time


class CourierService:

    @staticmethod
    async def ingest_event(db: AsyncSession, update: CourierUpdate) -> IngestResult:
        """Apply one courier callback exactly once per (order, event key)."""
        target = update.status
        if target is None:
            ecomm_courier_events_total.labels(outcome="unknown_status").inc()
            raise ValidationError(f"Unknown courier status: {update.courier_status}")

        try:
            order = await OrderRepository.lock_order_by_reference(db, update.reference)
            if order is None:
                raise OrderNotFound()
            order_number = order.order_number

            # Checked under the order lock so concurrent replays serialise here
            if await event_seen(db, order.id, update.event_key):
                status = order.order_status
                await db.rollback()
                ecomm_courier_events_total.labels(outcome=DUPLICATE).inc()
                logger.info("courier_event_duplicate", order_number=order_number, event_key=update.event_key)
                return IngestResult(order_number, DUPLICATE, status)

            _apply_rider_fields(order, update)

            current = current_status(order)
            changed = False
            if target == current:
                outcome = UNCHANGED
            elif can_transition(current, target):
                result = await transition(
                    db,
                    order,
                    target,
                    actor=COURIER,
                    source_status=update.courier_status,
                    note=f"rider: {update.rider.name}" if update.rider.name else None,
                )
                changed = result.changed
                outcome = APPLIED
            else:
                # Out-of-order or regressive callback; keep it for audit, never move backwards
                outcome = STALE
                logger.warning(
                    "courier_event_stale",
                    order_number=order_number,
                    current=current.value,
                    courier_status=update.courier_status,
                )

            db.add(
                CourierEvent(
                    order_id=order.id,
                    event_key=update.event_key,
                    courier_status=update.courier_status,
                    mapped_status=target.value,
                    outcome=outcome,
                    payload=update.raw,
                )
            )
            status = order.order_status
            await db.commit()
        except sa_exc.IntegrityError:
            # A concurrent delivery of the same event committed first
            await db.rollback()
            ecomm_courier_events_total.labels(outcome=DUPLICATE).inc()
            logger.info("courier_event_duplicate", order_number=order_number, event_key=update.event_key)
            return IngestResult(order_number, DUPLICATE, await _current_status(db, update.reference))
        except Exception:
            await db.rollback()
            raise

        ecomm_courier_events_total.labels(outcome=outcome).inc()
        logger.info("courier_event_applied", order_number=order_number, outcome=outcome, status=status)
        if changed:
            await notify_best_effort(
                db,
                order,
                target.value,
                {
                    "rider_name": update.rider.name,
                    "rider_phone": update.rider.phone,
                    "estimated_delivery": update.estimated_drop_time,
                },
            )
        return IngestResult(order_number, outcome, status)

    @staticmethod
    async def dispatch(db: AsyncSession, user_id: int, order_number: str, client: PorterClient) -> Order:
        """Book a courier pickup for one of the vendor's orders."""
        shop = await OrderRepository.get_shop_by_user(db, user_id)
        if shop is None:
            raise ShopNotFound()
        order = await OrderRepository.get_order_by_number(db, order_number)
        if order is None or order.shop_id != shop.id:
            raise OrderNotFound()
        if order.courier_order_id:
            raise ConflictError("Courier already booked for this order")
        if current_status(order) in TERMINAL_STATUSES:
            raise ConflictError("Order is no longer open for delivery")

        customer = await db.get(Customer, order.customer_id)
        payload = build_create_payload(order, shop, customer)
        # The courier call happens with no transaction open
        await db.commit()
        booking = await client.create_order(payload)
        courier_order_id = booking.get("order_id")
        if not courier_order_id:
            raise UpstreamError("Courier returned no order id")

        try:
            order = await OrderRepository.lock_order(db, order.id)
            if order.courier_order_id:
                raise ConflictError("Courier already booked for this order")
            order.courier_order_id = str(courier_order_id)
            order.courier_tracking_url = booking.get("tracking_url")
            order.estimated_pickup_time = booking.get("estimated_pickup_time") or order.estimated_pickup_time
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error("courier_booking_not_recorded", order_number=order_number, courier_order_id=courier_order_id)
            raise

        logger.info("courier_dispatched", order_number=order_number, courier_order_id=courier_order_id)
        return order

    @staticmethod
    async def _live_location(order: Order, client: Optional[PorterClient]) -> Optional[dict]:
        if not order.courier_order_id or client is None or not client.configured:
            return None
        try:
            return await client.get_partner_location(order.courier_order_id)
        except UpstreamError:
            # Falls back to the last position the webhook reported
            logger.warning("courier_location_unavailable", order_number=order.order_number)
            return None

    @staticmethod
    async def tracking(db: AsyncSession, principal: Principal, order_number: str, client: Optional[PorterClient]) -> dict:
        order = await OrderService.get_order_for(db, principal, order_number)
        live = await CourierService._live_location(order, client)
        return {
            "order_number": order.order_number,
            "status": order.order_status,
            "tracking_url": order.courier_tracking_url,
            "rider": {
                "name": order.rider_name,
                "phone": order.rider_phone,
                "current_location": {
                    "latitude": (live or {}).get("latitude") or order.rider_lat,
                    "longitude": (live or {}).get("longitude") or order.rider_lng,
                },
            },
            "destination": {
                "address": order.delivery_address,
                "city": order.delivery_city,
                "state": order.delivery_state,
                "coordinates": {"latitude": order.delivery_latitude, "longitude": order.delivery_longitude},
            },
            "timeline": {
                "pickup_time": order.pickup_time,
                "estimated_delivery": order.estimated_delivery_time,
                "actual_delivery": order.actual_delivery_time,
            },
            "status_history": order.status_history.to_list(),
            "live_tracking": live,
        }

    @staticmethod
    async def live_location(db: AsyncSession, principal: Principal, order_number: str,
                            client: Optional[PorterClient]) -> dict:
        order = await OrderService.get_order_for(db, principal, order_number)
        live = await CourierService._live_location(order, client)
        if live is None:
            return {"latitude": order.rider_lat, "longitude": order.rider_lng, "message": "Last known location"}
        return {
            "latitude": live.get("latitude"),
            "longitude": live.get("longitude"),
            "timestamp": live.get("timestamp"),
            "message": "Live location",
        }
