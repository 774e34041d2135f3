from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product, ProductVariant


class InventoryRepository:
    """Row access for stock counters. Locking reads must run inside the caller's transaction."""

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int) -> Optional[Product]:
        result = await db.execute(select(Product).where(Product.id == product_id))
        return result.scalars().first()

    @staticmethod
    async def lock_product(db: AsyncSession, product_id: int) -> Optional[Product]:
        result = await db.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def lock_variant(db: AsyncSession, product_id: int, variant_id: int) -> Optional[ProductVariant]:
        result = await db.execute(
            select(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.product_id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def count_variants(db: AsyncSession, product_id: int) -> int:
        result = await db.execute(
            select(func.count(ProductVariant.id)).where(ProductVariant.product_id == product_id)
        )
        return int(result.scalar_one())

    @staticmethod
    async def sum_variant_stock(db: AsyncSession, product_id: int) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(ProductVariant.stock), 0)).where(ProductVariant.product_id == product_id)
        )
        return int(result.scalar_one())
