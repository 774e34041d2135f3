from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.sql import func

from shared.config.database import Base

AGENT_AVAILABLE = "AVAILABLE"
AGENT_ON_DELIVERY = "ON_DELIVERY"

ASSIGNMENT_ACTIVE = "pending"
ASSIGNMENT_COMPLETED = "completed"
ASSIGNMENT_RELEASED = "released"


class DeliveryAgent(Base):
    __tablename__ = "delivery_agents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    vehicle_type = Column(String(50), nullable=True)
    vehicle_number = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), nullable=False, default=AGENT_AVAILABLE)
    total_deliveries = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DeliveryAssignment(Base):
    __tablename__ = "delivery_assignments"
    __table_args__ = (
        # At most one live assignment per order
        Index(
            "uq_delivery_assignments_active_order",
            "order_id",
            unique=True,
            postgresql_where=text("order_status = 'pending'"),
            sqlite_where=text("order_status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    delivery_agent_id = Column(Integer, ForeignKey("delivery_agents.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    order_status = Column(String(20), nullable=False, default=ASSIGNMENT_ACTIVE)
    accept_time = Column(DateTime(timezone=True), nullable=False)
    delivery_time = Column(DateTime(timezone=True), nullable=True)
    release_time = Column(DateTime(timezone=True), nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    earning = Column(Numeric(12, 2), nullable=False, default=0)
    delivery_address = Column(String(500), nullable=True)
    delivery_city = Column(String(100), nullable=True)
    delivery_latitude = Column(Float, nullable=True)
    delivery_longitude = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
