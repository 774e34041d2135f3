from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from shared.config.database import Base

TRANSACTION_CREATED = "created"
TRANSACTION_PAID = "paid"


class Transaction(Base):
    """One payment attempt, bound to a gateway-side payment order."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    provider = Column(String(30), nullable=False, default="razorpay")
    gateway_order_id = Column(String(100), unique=True, nullable=False, index=True)
    # Unique: a settlement id can credit exactly one transaction
    gateway_payment_id = Column(String(100), unique=True, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    receipt = Column(String(64), nullable=True)
    status = Column(String(20), nullable=False, default=TRANSACTION_CREATED)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)
