"""Inventory ledger: per-product and per-variant stock counters.

All mutations assume the caller owns an open transaction on ``db`` and will
commit or roll back; nothing here commits. That is what lets a failed order
placement restore every reservation simply by rolling back.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InsufficientStock, ProductNotFound, ValidationError
from shared.observability import ecomm_stock_rejections_total
from .models import Product, ProductVariant
from .repository import InventoryRepository

logger = structlog.get_logger(__name__)


@dataclass
class LockedStock:
    product: Product
    variant: Optional[ProductVariant]

    @property
    def available(self) -> int:
        if self.variant is not None:
            return self.variant.stock
        return self.product.stock_quantity


@dataclass(frozen=True)
class Reservation:
    product_id: int
    variant_id: Optional[int]
    quantity: int
    remaining: int


StockKey = tuple[int, Optional[int]]


class InventoryService:

    @staticmethod
    async def lock(db: AsyncSession, product_id: int, variant_id: Optional[int] = None) -> LockedStock:
        product = await InventoryRepository.lock_product(db, product_id)
        if product is None or not product.is_active:
            raise ProductNotFound(product_id)

        variant = None
        if variant_id is not None:
            variant = await InventoryRepository.lock_variant(db, product_id, variant_id)
            if variant is None:
                raise ProductNotFound(product_id, variant_id)
        elif await InventoryRepository.count_variants(db, product_id):
            raise ValidationError(f"Product {product_id} requires a variant selection")

        return LockedStock(product=product, variant=variant)

    @staticmethod
    async def lock_many(db: AsyncSession, keys: Iterable[StockKey]) -> dict[StockKey, LockedStock]:
        """Lock rows in ascending (product, variant) order so overlapping orders cannot deadlock."""
        locked: dict[StockKey, LockedStock] = {}
        for product_id, variant_id in sorted(set(keys), key=lambda k: (k[0], k[1] if k[1] is not None else -1)):
            locked[(product_id, variant_id)] = await InventoryService.lock(db, product_id, variant_id)
        return locked

    @staticmethod
    async def reserve(db: AsyncSession, product_id: int, variant_id: Optional[int], quantity: int) -> Reservation:
        if quantity <= 0:
            raise ValidationError("Quantity must be a positive integer")

        stock = await InventoryService.lock(db, product_id, variant_id)
        if stock.available < quantity:
            ecomm_stock_rejections_total.inc()
            logger.info(
                "stock_reservation_rejected",
                product_id=product_id,
                variant_id=variant_id,
                requested=quantity,
                available=stock.available,
            )
            raise InsufficientStock(product_id, variant_id, quantity, stock.available)

        if stock.variant is not None:
            stock.variant.stock -= quantity
            await InventoryService.sync_aggregate(db, stock.product)
        else:
            stock.product.stock_quantity -= quantity

        return Reservation(product_id, variant_id, quantity, stock.available)

    @staticmethod
    async def release(db: AsyncSession, product_id: int, variant_id: Optional[int], quantity: int) -> Reservation:
        """Compensating increment (cancellation restock, manual restock)."""
        if quantity <= 0:
            raise ValidationError("Quantity must be a positive integer")

        product = await InventoryRepository.lock_product(db, product_id)
        if product is None:
            raise ProductNotFound(product_id)

        if variant_id is not None:
            variant = await InventoryRepository.lock_variant(db, product_id, variant_id)
            if variant is None:
                raise ProductNotFound(product_id, variant_id)
            variant.stock += quantity
            await InventoryService.sync_aggregate(db, product)
            remaining = variant.stock
        else:
            product.stock_quantity += quantity
            remaining = product.stock_quantity

        logger.info("stock_released", product_id=product_id, variant_id=variant_id, quantity=quantity)
        return Reservation(product_id, variant_id, quantity, remaining)

    @staticmethod
    async def sync_aggregate(db: AsyncSession, product: Product) -> int:
        """Recompute the product's stock_quantity as the sum of its variants' stock."""
        await db.flush()
        product.stock_quantity = await InventoryRepository.sum_variant_stock(db, product.id)
        return product.stock_quantity

    @staticmethod
    async def get_stock(db: AsyncSession, product_id: int) -> Product:
        product = await InventoryRepository.get_product(db, product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product
