from typing import Iterable, Optional

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CartItem


class CartRepository:
    @staticmethod
    async def list_items(db: AsyncSession, customer_id: int):
        result = await db.execute(
            select(CartItem).where(CartItem.customer_id == customer_id).order_by(CartItem.id)
        )
        return result.scalars().all()

    @staticmethod
    async def get_item(
        db: AsyncSession, customer_id: int, product_id: int, variant_id: Optional[int]
    ) -> Optional[CartItem]:
        # NULL never equals NULL in SQL, so the variant-less line needs IS NULL
        variant_clause = (
            CartItem.product_variant_id.is_(None) if variant_id is None else CartItem.product_variant_id == variant_id
        )
        result = await db.execute(
            select(CartItem).where(
                CartItem.customer_id == customer_id,
                CartItem.product_id == product_id,
                variant_clause,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def delete_item(db: AsyncSession, item: CartItem):
        await db.delete(item)

    @staticmethod
    async def remove_lines(db: AsyncSession, customer_id: int, lines: Iterable[tuple[int, Optional[int]]]) -> int:
        """Delete the customer's rows for the given (product, variant) pairs."""
        clauses = []
        for product_id, variant_id in set(lines):
            variant_clause = (
                CartItem.product_variant_id.is_(None)
                if variant_id is None
                else CartItem.product_variant_id == variant_id
            )
            clauses.append(and_(CartItem.product_id == product_id, variant_clause))
        if not clauses:
            return 0
        result = await db.execute(
            delete(CartItem).where(CartItem.customer_id == customer_id, or_(*clauses))
        )
        return result.rowcount or 0
