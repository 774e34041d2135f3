from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import CustomerNotFound, ProductNotFound
from services.inventory_service.repository import InventoryRepository
from services.order_service.repository import OrderRepository
from .models import CartItem
from .repository import CartRepository
from .schemas import CartItemUpdate


class CartService:
    @staticmethod
    async def _customer_id(db: AsyncSession, user_id: int) -> int:
        customer = await OrderRepository.get_customer_by_user(db, user_id)
        if customer is None:
            raise CustomerNotFound()
        return customer.id

    @staticmethod
    async def get_cart(db: AsyncSession, user_id: int):
        customer_id = await CartService._customer_id(db, user_id)
        return await CartRepository.list_items(db, customer_id)

    @staticmethod
    async def set_item(db: AsyncSession, user_id: int, data: CartItemUpdate):
        customer_id = await CartService._customer_id(db, user_id)
        product = await InventoryRepository.get_product(db, data.product_id)
        if product is None:
            raise ProductNotFound(data.product_id)
        unit_price = product.selling_price
        if data.product_variant_id is not None:
            variant = next((v for v in product.variants if v.id == data.product_variant_id), None)
            if variant is None:
                raise ProductNotFound(data.product_id, data.product_variant_id)
            unit_price = variant.selling_price

        try:
            item = await CartRepository.get_item(db, customer_id, data.product_id, data.product_variant_id)
            if data.quantity == 0:
                if item is not None:
                    await CartRepository.delete_item(db, item)
            elif item is None:
                db.add(CartItem(
                    customer_id=customer_id,
                    product_id=data.product_id,
                    product_variant_id=data.product_variant_id,
                    quantity=data.quantity,
                    unit_price=unit_price,
                ))
            else:
                item.quantity = data.quantity
                item.unit_price = unit_price
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return await CartRepository.list_items(db, customer_id)
