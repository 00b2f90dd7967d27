from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from storefront.core.money import ZERO, quantize_money, to_money
from storefront.pricing.coupons import Coupon, CouponEngine
from storefront.shipping.quotes import ShippingQuote


class CartItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str = Field(min_length=1)
    name: str
    price: Decimal = Field(ge=0)
    quantity: int = Field(gt=0)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    discount: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total: Decimal
    free_shipping_applied: bool = False

    def rounded(self) -> PricingBreakdown:
        subtotal = quantize_money(self.subtotal)
        discount = quantize_money(self.discount)
        shipping_cost = quantize_money(self.shipping_cost)
        tax = quantize_money(self.tax)
        # Derived from the rounded parts so displayed lines always add up.
        return replace(
            self,
            subtotal=subtotal,
            discount=discount,
            shipping_cost=shipping_cost,
            tax=tax,
            total=subtotal - discount + shipping_cost + tax,
        )

    def to_dict(self) -> dict[str, Any]:
        shown = self.rounded()
        return {
            "itemsPrice": str(shown.subtotal),
            "discountPrice": str(shown.discount),
            "shippingPrice": str(shown.shipping_cost),
            "taxPrice": str(shown.tax),
            "totalPrice": str(shown.total),
            "freeShippingApplied": shown.free_shipping_applied,
        }


def cart_subtotal(cart_items: Iterable[CartItem]) -> Decimal:
    return sum((item.line_total for item in cart_items), ZERO)


class PricingAggregator:
    def __init__(self, coupon_engine: CouponEngine | None = None):
        self.coupon_engine = coupon_engine or CouponEngine()

    def compute(
        self,
        cart_items: Iterable[CartItem],
        shipping_quote: ShippingQuote | None,
        coupon: Coupon | None,
        tax_rate: Any,
    ) -> PricingBreakdown:
        rate = to_money(tax_rate)
        if rate < 0:
            raise ValueError("tax rate must be non-negative")

        subtotal = cart_subtotal(cart_items)
        discount = self.coupon_engine.apply(coupon, subtotal) if coupon is not None else ZERO
        taxable = max(subtotal - discount, ZERO)
        tax = taxable * rate
        shipping_cost = shipping_quote.cost if shipping_quote is not None else ZERO

        return PricingBreakdown(
            subtotal=subtotal,
            discount=discount,
            shipping_cost=shipping_cost,
            tax=tax,
            total=subtotal - discount + shipping_cost + tax,
            free_shipping_applied=bool(shipping_quote and shipping_quote.free_shipping_applied),
        )
