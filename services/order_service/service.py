import math
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import (
    ConflictError, CustomerNotFound, OrderNotFound, ServiceError, ShopNotFound, ValidationError,
)
from shared.observability import (
    ecomm_order_placement_duration_seconds,
    ecomm_orders_placed_total,
    ecomm_side_effect_failures_total,
)
from shared.security.dependencies import CUSTOMER, VENDOR, Principal
from services.cart_service.repository import CartRepository
from services.inventory_service.service import InventoryService, LockedStock
from services.notification_service.service import NotificationService
from .fulfillment import VENDOR as VENDOR_ACTOR, TransitionResult, transition
from .invoice import InvoiceService
from .models import Customer, Order, OrderItem
from .pricing import LinePrice, PricingEngine
from .repository import OrderRepository
from .schemas import (
    ConfirmationItem, CustomerBlock, DeliveryBlock, OrderConfirmation, OrderResponse, Pagination,
    PlaceOrderRequest, PriceSummary,
)
from .status import OrderStatus, PaymentStatus, StatusHistory, parse_status, utcnow

logger = structlog.get_logger(__name__)


def generate_order_number() -> str:
    """Time-ordered, human-readable and random enough to never collide within a tenant."""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def product_snapshot(stock: LockedStock, price: LinePrice) -> dict:
    product, variant = stock.product, stock.variant
    snapshot = {
        "id": product.id,
        "name": product.product_name,
        "sku": product.sku or "",
        "thumbnail": product.thumbnail,
        "gallery_images": product.gallery_images or [],
        "selling_price": float(product.selling_price),
        "tax_percentage": float(product.tax_percentage or 0),
        "shop_id": product.shop_id,
        "variant": None,
    }
    if variant is not None:
        snapshot["variant"] = {
            "id": variant.id,
            "sku": variant.sku,
            "barcode": variant.barcode,
            "color": variant.color,
            "size": variant.size,
            "material": variant.material,
            "thumbnail": variant.thumbnail,
            "gallery_images": variant.gallery_images or [],
            "base_price": float(variant.base_price) if variant.base_price is not None else None,
            "selling_price": float(price.unit_price),
        }
    return snapshot


@dataclass
class PlacementResult:
    order: Order
    confirmation: OrderConfirmation
    invoice_url: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


class OrderService:

    @staticmethod
    async def place_order(
        db: AsyncSession,
        user_id: int,
        data: PlaceOrderRequest,
        *,
        tenant_id: str,
        pricing: PricingEngine,
        invoices: InvoiceService,
    ) -> PlacementResult:
        customer = await OrderRepository.get_customer_by_user(db, user_id)
        if customer is None:
            raise CustomerNotFound()

        started = time.perf_counter()
        try:
            order, lines = await OrderService._create_order(db, customer, data, pricing)
            await db.commit()
        except ServiceError as e:
            await db.rollback()
            ecomm_orders_placed_total.labels(outcome="rejected").inc()
            logger.info("order_rejected", user_id=user_id, reason=type(e).__name__, detail=str(e))
            raise
        except Exception:
            await db.rollback()
            ecomm_orders_placed_total.labels(outcome="failed").inc()
            logger.exception("order_placement_failed", user_id=user_id)
            raise
        finally:
            ecomm_order_placement_duration_seconds.observe(time.perf_counter() - started)

        ecomm_orders_placed_total.labels(outcome="success").inc()
        logger.info(
            "order_placed",
            order_id=order.id,
            order_number=order.order_number,
            shop_id=order.shop_id,
            total=str(order.total_amount),
        )

        order_number = order.order_number
        result = PlacementResult(order=order, confirmation=OrderService.build_confirmation(order, customer, lines))

        # Past this point the order is durable; nothing below may fail the placement
        try:
            await CartRepository.remove_lines(
                db, customer.id, [(item.product_id, item.product_variant_id) for item in data.items]
            )
            await db.commit()
        except Exception:
            await db.rollback()
            ecomm_side_effect_failures_total.labels(effect="cart_cleanup").inc()
            logger.exception("cart_cleanup_failed", order_number=order_number)
            result.warnings.append("Order placed but the cart could not be cleared")

        try:
            result.invoice_url = await invoices.publish(tenant_id, result.confirmation)
            if result.invoice_url:
                order.invoice_url = result.invoice_url
                await db.commit()
        except Exception:
            await db.rollback()
            result.invoice_url = None
            ecomm_side_effect_failures_total.labels(effect="invoice").inc()
            logger.exception("invoice_generation_failed", order_number=order_number)
            result.warnings.append("Order placed but the invoice could not be generated")

        return result

    @staticmethod
    async def _create_order(
        db: AsyncSession, customer: Customer, data: PlaceOrderRequest, pricing: PricingEngine
    ) -> tuple[Order, list[tuple[OrderItem, LinePrice, LockedStock]]]:
        keys = [(item.product_id, item.product_variant_id) for item in data.items]
        locked = await InventoryService.lock_many(db, keys)

        shop_ids = {stock.product.shop_id for stock in locked.values()}
        if len(shop_ids) != 1:
            raise ValidationError("All items in an order must come from the same shop")

        lines: list[tuple[OrderItem, LinePrice, LockedStock]] = []
        for item in data.items:
            stock = locked[(item.product_id, item.product_variant_id)]
            await InventoryService.reserve(db, item.product_id, item.product_variant_id, item.quantity)
            price = pricing.price_line(stock.product, stock.variant, item.quantity)
            order_item = OrderItem(
                product_id=item.product_id,
                product_variant_id=item.product_variant_id,
                quantity=item.quantity,
                price_per_unit=price.unit_price,
                discount_per_unit=price.unit_discount,
                tax_per_unit=price.unit_tax,
                total_price=price.total,
                sku=(stock.variant.sku if stock.variant is not None else stock.product.sku) or "",
                product_snapshot=product_snapshot(stock, price),
            )
            lines.append((order_item, price, stock))

        totals = await pricing.totals(db, [price for _, price, _ in lines], data.coupon_code)

        order = Order(
            order_number=generate_order_number(),
            user_id=customer.user_id,
            customer_id=customer.id,
            shop_id=shop_ids.pop(),
            delivery_address=data.delivery_address,
            delivery_city=data.delivery_city,
            delivery_state=data.delivery_state,
            delivery_country=data.delivery_country,
            delivery_postal_code=data.delivery_postal_code,
            delivery_latitude=data.delivery_latitude,
            delivery_longitude=data.delivery_longitude,
            delivery_instructions=data.delivery_instructions,
            payment_method=data.payment_method,
            payment_status=PaymentStatus.UNPAID.value,
            order_status=OrderStatus.PENDING.value,
            status_history=StatusHistory.start(OrderStatus.PENDING, actor="customer"),
            sub_total=totals.subtotal,
            discount_amount=totals.discount,
            tax_amount=totals.tax,
            shipping_fee=totals.shipping,
            total_amount=totals.grand_total,
            coupon_code=data.coupon_code,
            notes=data.notes,
            items=[order_item for order_item, _, _ in lines],
        )
        await OrderRepository.add_order(db, order)
        return order, lines

    @staticmethod
    def build_confirmation(order: Order, customer: Customer, lines) -> OrderConfirmation:
        now = utcnow()
        items = []
        for order_item, price, stock in lines:
            snapshot = order_item.product_snapshot
            items.append(
                ConfirmationItem(
                    name=snapshot.get("name") or "Product",
                    sku=order_item.sku or "",
                    quantity=order_item.quantity,
                    price_per_unit=float(price.unit_price),
                    discount_per_unit=float(price.unit_discount),
                    tax_per_unit=float(price.unit_tax),
                    total=float(price.total),
                    variant=snapshot.get("variant"),
                )
            )
        return OrderConfirmation(
            order_id=order.id,
            order_number=order.order_number,
            date=now.strftime("%d/%m/%Y"),
            time=now.strftime("%H:%M:%S"),
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            customer=CustomerBlock(
                name=customer.name or "Customer",
                email=customer.email or "",
                phone=customer.phone or "",
                alternate_phone=customer.alternate_phone or "",
            ),
            delivery_address=DeliveryBlock(
                address=order.delivery_address,
                city=order.delivery_city or "",
                state=order.delivery_state or "",
                country=order.delivery_country or "",
                postal_code=order.delivery_postal_code or "",
                instructions=order.delivery_instructions or "",
            ),
            items=items,
            price_summary=PriceSummary(
                sub_total=float(order.sub_total),
                discount=float(order.discount_amount),
                tax=float(order.tax_amount),
                shipping_fee=float(order.shipping_fee),
                total=float(order.total_amount),
            ),
            notes=order.notes or "",
        )

    @staticmethod
    async def update_status(db: AsyncSession, user_id: int, order_number: str, status: str) -> TransitionResult:
        """Vendor-driven status change on one of the shop's own orders."""
        target = parse_status(status)
        if target is None:
            raise ValidationError("Invalid status")

        shop = await OrderRepository.get_shop_by_user(db, user_id)
        if shop is None:
            raise ShopNotFound()

        try:
            order = await OrderRepository.lock_order_for_shop(db, order_number, shop.id)
            if order is None:
                raise OrderNotFound()
            result = await transition(db, order, target, actor=VENDOR_ACTOR)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if result.changed:
            await notify_best_effort(db, order, target.value)
        return result

    @staticmethod
    async def list_customer_orders(db: AsyncSession, user_id: int) -> list[OrderResponse]:
        customer = await OrderRepository.get_customer_by_user(db, user_id)
        if customer is None:
            raise CustomerNotFound()
        orders = await OrderRepository.list_for_user(db, user_id)
        return [OrderResponse.from_order(order) for order in orders]

    @staticmethod
    async def list_shop_orders(
        db: AsyncSession, user_id: int, *, search: str, status: str | None, sort_by: str, sort_dir: str,
        page: int, limit: int,
    ) -> tuple[list[OrderResponse], Pagination]:
        shop = await OrderRepository.get_shop_by_user(db, user_id)
        if shop is None:
            raise ShopNotFound()
        orders, total = await OrderRepository.list_for_shop(
            db, shop.id, search=search, status=status, sort_by=sort_by, sort_dir=sort_dir, page=page, limit=limit
        )
        pagination = Pagination(total=total, page=page, limit=limit, totalPages=math.ceil(total / limit))
        return [OrderResponse.from_order(order, include_customer=True) for order in orders], pagination

    @staticmethod
    async def get_order_for(db: AsyncSession, principal: Principal, order_number: str) -> Order:
        order = await OrderRepository.get_order_by_number(db, order_number)
        if order is None:
            raise OrderNotFound()
        if principal.role == CUSTOMER and order.user_id == principal.user_id:
            return order
        if principal.role == VENDOR:
            shop = await OrderRepository.get_shop_by_user(db, principal.user_id)
            if shop is not None and shop.id == order.shop_id:
                return order
        # Never reveal that someone else's order exists
        raise OrderNotFound()


def ensure_payable(order: Order) -> None:
    if order.payment_status == PaymentStatus.PAID.value:
        raise ConflictError("Order is already paid")
    if order.order_status == OrderStatus.CANCELLED.value:
        raise ConflictError("Order is cancelled")


async def notify_best_effort(db: AsyncSession, order: Order, status: str, extra: dict | None = None) -> None:
    """Status notifications run after the change committed; a failure only gets logged."""
    order_id = order.id
    try:
        await NotificationService.notify_order_status(db, order, status, extra)
    except Exception:
        ecomm_side_effect_failures_total.labels(effect="notification").inc()
        logger.exception("order_notification_failed", order_id=order_id, status=status)
