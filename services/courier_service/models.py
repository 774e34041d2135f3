from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.sql import func

from shared.config.database import Base


class CourierEvent(Base):
    """Every courier webhook delivery we have applied, keyed for de-duplication."""

    __tablename__ = "courier_events"
    __table_args__ = (UniqueConstraint("order_id", "event_key", name="uq_courier_events_order_event"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    event_key = Column(String(255), nullable=False)
    courier_status = Column(String(50), nullable=False)
    mapped_status = Column(String(20), nullable=False)
    # applied | unchanged | stale (stale events are kept but never move the order back)
    outcome = Column(String(20), nullable=False)
    payload = Column(JSON, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now())
