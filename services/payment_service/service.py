from dataclasses import dataclass

import structlog
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.errors import (
    DuplicatePaymentCapture, InvalidSignature, NotFoundError, OrderNotFound, PaymentCaptureIncomplete,
    ValidationError,
)
from shared.observability import ecomm_payment_verifications_total
from services.order_service.fulfillment import PAYMENT, transition
from services.order_service.models import Order
from services.order_service.pricing import money
from services.order_service.repository import OrderRepository
from services.order_service.service import ensure_payable, notify_best_effort
from services.order_service.status import OrderStatus, PaymentStatus, utcnow
from .gateway import RazorpayClient, signature_matches
from .models import TRANSACTION_CREATED, TRANSACTION_PAID, Transaction
from .repository import PaymentRepository
from .schemas import CreatePaymentRequest, GatewayOrder, VerifyPaymentRequest

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CaptureResult:
    order_number: str
    payment_status: str
    order_status: str
    # False when the same capture was replayed
    captured: bool

    @classmethod
    def of(cls, order: Order, captured: bool) -> "CaptureResult":
        return cls(order.order_number, order.payment_status, order.order_status, captured)


class PaymentService:

    @staticmethod
    async def create_payment_intent(
        db: AsyncSession, user_id: int, data: CreatePaymentRequest, gateway: RazorpayClient
    ) -> GatewayOrder:
        order = await OrderRepository.get_order(db, data.order_id)
        if order is None or order.user_id != user_id:
            raise OrderNotFound()
        ensure_payable(order)

        amount = money(order.total_amount)
        if data.amount is not None and money(data.amount) != amount:
            raise ValidationError("Amount does not match the order total")
        currency = (data.currency or order.currency or settings.DEFAULT_CURRENCY).upper()

        # No transaction is open while the gateway is called
        await db.commit()
        gateway_order = await gateway.create_order(
            amount, currency, receipt=order.order_number, notes={"order_id": str(order.id)}
        )

        transaction = Transaction(
            order_id=order.id,
            provider=data.provider,
            gateway_order_id=gateway_order["id"],
            amount=amount,
            currency=currency,
            receipt=order.order_number,
            status=TRANSACTION_CREATED,
        )
        try:
            PaymentRepository.add_transaction(db, transaction)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "payment_intent_created",
            order_id=order.id,
            order_number=order.order_number,
            gateway_order_id=transaction.gateway_order_id,
            amount=str(amount),
        )
        return GatewayOrder(
            id=gateway_order["id"],
            amount=float(amount),
            currency=gateway_order.get("currency", currency),
            receipt=gateway_order.get("receipt", order.order_number),
            status=gateway_order.get("status", TRANSACTION_CREATED),
            created_at=gateway_order.get("created_at"),
        )

    @staticmethod
    async def verify_and_capture(db: AsyncSession, data: VerifyPaymentRequest, key_secret: str) -> CaptureResult:
        if not signature_matches(key_secret, data.gateway_order_id, data.gateway_payment_id, data.signature):
            ecomm_payment_verifications_total.labels(outcome="invalid_signature").inc()
            logger.warning("payment_signature_invalid", gateway_order_id=data.gateway_order_id, order_id=data.order_id)
            raise InvalidSignature()

        try:
            transaction = await PaymentRepository.lock_by_gateway_order(db, data.gateway_order_id)
            if transaction is None:
                raise NotFoundError("Payment order not found")
            if transaction.order_id != data.order_id:
                raise ValidationError("Payment does not belong to this order")

            if transaction.status == TRANSACTION_PAID:
                if transaction.gateway_payment_id != data.gateway_payment_id:
                    raise DuplicatePaymentCapture()
                order = await OrderRepository.get_order(db, transaction.order_id)
                await db.commit()
                ecomm_payment_verifications_total.labels(outcome="replay").inc()
                logger.info("payment_capture_replayed", order_id=data.order_id, gateway_payment_id=data.gateway_payment_id)
                return CaptureResult.of(order, captured=False)

            order = await OrderRepository.lock_order(db, transaction.order_id)
            if order is None:
                raise OrderNotFound()
            if order.payment_status == PaymentStatus.PAID.value:
                raise DuplicatePaymentCapture()

            now = utcnow()
            transaction.status = TRANSACTION_PAID
            transaction.gateway_payment_id = data.gateway_payment_id
            transaction.paid_at = now
            order.payment_status = PaymentStatus.PAID.value

            moved = False
            if order.order_status == OrderStatus.PENDING.value:
                result = await transition(
                    db, order, OrderStatus.ORDER_PLACED, actor=PAYMENT, note="payment confirmed", at=now
                )
                moved = result.changed
            elif order.order_status == OrderStatus.CANCELLED.value:
                logger.warning("payment_captured_for_cancelled_order", order_id=order.id)
        except Exception:
            await db.rollback()
            raise

        try:
            await db.commit()
        except sa_exc.IntegrityError as e:
            await db.rollback()
            ecomm_payment_verifications_total.labels(outcome="duplicate").inc()
            raise DuplicatePaymentCapture() from e
        except Exception as e:
            await db.rollback()
            ecomm_payment_verifications_total.labels(outcome="incomplete").inc()
            logger.exception("payment_capture_incomplete", order_id=data.order_id, gateway_payment_id=data.gateway_payment_id)
            raise PaymentCaptureIncomplete() from e

        ecomm_payment_verifications_total.labels(outcome="captured").inc()
        logger.info(
            "payment_captured",
            order_id=order.id,
            order_number=order.order_number,
            gateway_order_id=data.gateway_order_id,
            gateway_payment_id=data.gateway_payment_id,
        )
        result = CaptureResult.of(order, captured=True)
        if moved:
            await notify_best_effort(db, order, OrderStatus.ORDER_PLACED.value)
        return result
