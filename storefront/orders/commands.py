from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storefront.core.canonical import sha256_hex
from storefront.orders.aggregates import Order, OrderStatus
from storefront.pricing.aggregator import CartItem, PricingAggregator, PricingBreakdown
from storefront.pricing.coupons import Coupon
from storefront.shipping.quotes import ShippingQuoteCalculator
from storefront.shipping.rates import ShippingMethod, TimeSlot, Zone


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderItemPayload(_Payload):
    product: str
    name: str
    price: Decimal = Field(ge=0)
    quantity: int = Field(gt=0)
    final_price: Decimal = Field(ge=0)


class DeliveryTimeSlotPayload(_Payload):
    delivery_date: date | None = Field(default=None, alias="date")
    slot: TimeSlot
    slot_label: str


class ShippingMethodPayload(_Payload):
    type: ShippingMethod
    name: str
    cost: Decimal = Field(ge=0)
    estimated_days: dict[str, int]


class CouponPayload(_Payload):
    code: str
    kind: str
    value: Decimal
    max_discount: Decimal | None = None
    discount: Decimal


class OrderSubmission(_Payload):
    order_number: str
    order_items: list[OrderItemPayload]
    shipping_info: dict[str, Any]
    delivery_time_slot: DeliveryTimeSlotPayload
    shipping_method: ShippingMethodPayload
    shipping_zone: Zone
    pricing: dict[str, Any]
    payment_info: dict[str, Any]
    coupon: CouponPayload | None = None
    tax_rate: Decimal
    placed_at: datetime

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def fingerprint(self) -> str:
        # Content identity only; a retried submission carries a later placed_at.
        return sha256_hex(self.model_dump(by_alias=True, exclude={"placed_at"}))


class StatusUpdateRequest(_Payload):
    order_id: str
    new_status: OrderStatus
    tracking_info: dict[str, Any] | None = None
    note: str | None = None


def order_submission(order: Order, calculator: ShippingQuoteCalculator | None = None) -> OrderSubmission:
    calculator = calculator or ShippingQuoteCalculator()
    min_days, max_days = calculator.transit_days(order.zone, order.delivery.method)
    shown = order.pricing.rounded()

    coupon = None
    if order.coupon is not None:
        coupon = CouponPayload(
            code=order.coupon.code,
            kind=order.coupon.kind.value,
            value=order.coupon.value,
            max_discount=order.coupon.max_discount,
            discount=shown.discount,
        )

    return OrderSubmission(
        order_number=order.order_number,
        order_items=[
            OrderItemPayload(
                product=item.product_id,
                name=item.name,
                price=item.price,
                quantity=item.quantity,
                final_price=item.line_total,
            )
            for item in order.items
        ],
        shipping_info=order.shipping_address.to_shipping_info(),
        delivery_time_slot=DeliveryTimeSlotPayload(
            delivery_date=order.delivery.requested_date,
            slot=order.delivery.slot,
            slot_label=order.delivery.slot.spec.label,
        ),
        shipping_method=ShippingMethodPayload(
            type=order.delivery.method,
            name=order.delivery.method.spec.name,
            cost=shown.shipping_cost,
            estimated_days={"min": min_days, "max": max_days},
        ),
        shipping_zone=order.zone,
        pricing=order.pricing.to_dict(),
        payment_info=dict(order.payment_info),
        coupon=coupon,
        tax_rate=order.tax_rate,
        placed_at=order.placed_at,
    )


def status_update(
    order_number: str,
    new_status: OrderStatus | str,
    tracking_info: dict[str, Any] | None = None,
    note: str | None = None,
) -> StatusUpdateRequest:
    return StatusUpdateRequest(
        order_id=order_number,
        new_status=OrderStatus(new_status),
        tracking_info=tracking_info,
        note=note,
    )


def recompute_pricing(
    submission: OrderSubmission,
    aggregator: PricingAggregator,
    calculator: ShippingQuoteCalculator,
) -> PricingBreakdown:
    """Re-derive pricing from the stored cart, coupon and shipping selections."""
    items = [
        CartItem(product_id=row.product, name=row.name, price=row.price, quantity=row.quantity)
        for row in submission.order_items
    ]
    subtotal = sum((item.line_total for item in items), Decimal("0"))
    quote = calculator.quote(
        submission.shipping_zone,
        submission.shipping_method.type,
        submission.delivery_time_slot.slot,
        subtotal,
        submission.placed_at,
    ).unwrap()

    coupon = None
    if submission.coupon is not None:
        coupon = Coupon(
            code=submission.coupon.code,
            kind=submission.coupon.kind,
            value=submission.coupon.value,
            max_discount=submission.coupon.max_discount,
        )
    return aggregator.compute(items, quote, coupon, submission.tax_rate)
