from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Transaction


class PaymentRepository:
    @staticmethod
    def add_transaction(db: AsyncSession, transaction: Transaction) -> Transaction:
        db.add(transaction)
        return transaction

    @staticmethod
    async def lock_by_gateway_order(db: AsyncSession, gateway_order_id: str) -> Optional[Transaction]:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.gateway_order_id == gateway_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()
