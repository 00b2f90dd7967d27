from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from storefront.checkout.models import DeliverySelection, PaymentSelection, ShippingAddress
from storefront.pricing.aggregator import CartItem, PricingBreakdown
from storefront.pricing.coupons import Coupon
from storefront.shipping.rates import Zone


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class StatusEntry:
    status: OrderStatus
    timestamp: datetime
    note: str | None = None


@dataclass(frozen=True)
class Order:
    order_number: str
    items: tuple[CartItem, ...]
    pricing: PricingBreakdown
    shipping_address: ShippingAddress
    delivery: DeliverySelection
    zone: Zone
    payment_info: dict[str, Any]
    tax_rate: Decimal
    placed_at: datetime
    coupon: Coupon | None = None
    status_history: tuple[StatusEntry, ...] = field(default_factory=tuple)
    tracking_info: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not self.status_history:
            object.__setattr__(
                self,
                "status_history",
                (StatusEntry(status=OrderStatus.PENDING, timestamp=self.placed_at),),
            )

    @property
    def status(self) -> OrderStatus:
        return self.status_history[-1].status

    @property
    def last_changed_at(self) -> datetime:
        return self.status_history[-1].timestamp

    def reached_at(self, status: OrderStatus) -> datetime | None:
        for entry in reversed(self.status_history):
            if entry.status == status:
                return entry.timestamp
        return None

    @classmethod
    def from_parts(
        cls,
        order_number: str,
        items: list[CartItem] | tuple[CartItem, ...],
        pricing: PricingBreakdown,
        shipping_address: ShippingAddress,
        delivery: DeliverySelection,
        zone: Zone,
        payment: PaymentSelection,
        tax_rate: Decimal,
        placed_at: datetime,
        coupon: Coupon | None = None,
    ) -> Order:
        return cls(
            order_number=order_number,
            items=tuple(items),
            pricing=pricing,
            shipping_address=shipping_address,
            delivery=delivery,
            zone=zone,
            payment_info=payment.to_payment_info(),
            tax_rate=tax_rate,
            placed_at=placed_at,
            coupon=coupon,
        )
