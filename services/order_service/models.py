from sqlalchemy import (
    CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, JSON, Numeric, String, Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.config.database import Base
from .status import OrderStatus, PaymentStatus, StatusHistory, StatusHistoryType


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    alternate_phone = Column(String(20), nullable=True)


class Shop(Base):
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    # Pickup address handed to the courier
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False, index=True)

    # Delivery address snapshot
    delivery_address = Column(String(500), nullable=False)
    delivery_city = Column(String(100), default="")
    delivery_state = Column(String(100), default="")
    delivery_country = Column(String(100), default="")
    delivery_postal_code = Column(String(20), default="")
    delivery_latitude = Column(Float, default=0)
    delivery_longitude = Column(Float, default=0)
    delivery_instructions = Column(Text, default="")

    payment_method = Column(String(50), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)
    order_status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    status_history = Column(StatusHistoryType, nullable=False, default=lambda: StatusHistory())

    sub_total = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_fee = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    coupon_code = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    delivery_agent_id = Column(Integer, ForeignKey("delivery_agents.id"), nullable=True, index=True)

    # Third-party courier tracking
    courier_order_id = Column(String(100), nullable=True, index=True)
    courier_tracking_url = Column(String(500), nullable=True)
    rider_name = Column(String(255), nullable=True)
    rider_phone = Column(String(20), nullable=True)
    rider_lat = Column(Float, nullable=True)
    rider_lng = Column(Float, nullable=True)
    estimated_pickup_time = Column(String(64), nullable=True)
    estimated_delivery_time = Column(String(64), nullable=True)
    pickup_time = Column(String(64), nullable=True)
    actual_delivery_time = Column(String(64), nullable=True)

    invoice_url = Column(String(500), nullable=True)
    order_date = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    delivery_date = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")
    customer = relationship("Customer", lazy="selectin")


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    product_variant_id = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=False)
    price_per_unit = Column(Numeric(12, 2), nullable=False)
    discount_per_unit = Column(Numeric(12, 2), nullable=False, default=0)
    tax_per_unit = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False)
    sku = Column(String(100), default="")
    # Frozen at purchase time so later catalog edits never rewrite history
    product_snapshot = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="items")
