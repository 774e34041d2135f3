"""Order pricing from prices snapshotted at placement time.

Money is Decimal throughout and rounded half-up to the cent per unit, so the
persisted totals always satisfy grand_total == subtotal - discount + tax + shipping.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Protocol, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from services.inventory_service.models import Product, ProductVariant

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LinePrice:
    quantity: int
    unit_price: Decimal
    unit_discount: Decimal
    unit_tax: Decimal

    @property
    def subtotal(self) -> Decimal:
        return money(self.unit_price * self.quantity)

    @property
    def discount(self) -> Decimal:
        return money(self.unit_discount * self.quantity)

    @property
    def tax(self) -> Decimal:
        return money(self.unit_tax * self.quantity)

    @property
    def total(self) -> Decimal:
        return money((self.unit_price - self.unit_discount + self.unit_tax) * self.quantity)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal

    @property
    def grand_total(self) -> Decimal:
        return money(self.subtotal - self.discount + self.tax + self.shipping)


class CouponResolver(Protocol):
    async def resolve(self, db: AsyncSession, code: str, subtotal: Decimal) -> Decimal:
        ...


class NoCouponResolver:
    """Coupons are validated by the promotions deployment; without it, codes grant nothing."""

    async def resolve(self, db: AsyncSession, code: str, subtotal: Decimal) -> Decimal:
        return ZERO


class PricingEngine:
    def __init__(self, shipping_fee: Decimal | None = None, coupon_resolver: CouponResolver | None = None):
        self.shipping_fee = money(settings.SHIPPING_FEE if shipping_fee is None else shipping_fee)
        self.coupon_resolver = coupon_resolver or NoCouponResolver()

    @staticmethod
    def price_line(product: Product, variant: Optional[ProductVariant], quantity: int) -> LinePrice:
        unit_price = money(variant.selling_price if variant is not None else product.selling_price)
        # The catalogue column holds the tax charged per unit, not a rate
        unit_tax = money(product.tax_percentage)
        return LinePrice(quantity=quantity, unit_price=unit_price, unit_discount=ZERO, unit_tax=unit_tax)

    async def totals(self, db: AsyncSession, lines: Sequence[LinePrice], coupon_code: str | None = None) -> OrderTotals:
        subtotal = money(sum((line.subtotal for line in lines), ZERO))
        line_discount = money(sum((line.discount for line in lines), ZERO))
        tax = money(sum((line.tax for line in lines), ZERO))

        coupon_discount = ZERO
        if coupon_code:
            coupon_discount = money(await self.coupon_resolver.resolve(db, coupon_code, subtotal))
        # A coupon never makes the goods negative
        discount = min(line_discount + max(coupon_discount, ZERO), subtotal)

        return OrderTotals(subtotal=subtotal, discount=discount, tax=tax, shipping=self.shipping_fee)
