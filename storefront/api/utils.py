from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from storefront.checkout.flow import CheckoutContext
from storefront.core.canonical import iso_utc
from storefront.core.clock import now_utc
from storefront.core.config import get_settings
from storefront.gateways.remote import build_coupon_store
from storefront.orders.aggregates import Order
from storefront.orders.lifecycle import OrderLifecycle
from storefront.persistence.repository import SqlCouponStore
from storefront.pricing.coupons import CouponStore

__all__ = ["checkout_context", "coupon_store_for", "now_utc", "order_view"]


def coupon_store_for(session: Session) -> CouponStore:
    settings = get_settings()
    if settings.coupon_backend == "http":
        return build_coupon_store(settings)
    return SqlCouponStore(session)


def checkout_context(session: Session) -> CheckoutContext:
    return CheckoutContext.from_settings(get_settings(), coupon_store=coupon_store_for(session))


def order_view(order: Order, lifecycle: OrderLifecycle) -> dict[str, Any]:
    return {
        "orderNumber": order.order_number,
        "status": order.status.value,
        "progress": round(lifecycle.progress(order), 4),
        "zone": order.zone.value,
        "pricing": order.pricing.to_dict(),
        "paymentInfo": order.payment_info,
        "coupon": order.coupon.to_summary() if order.coupon is not None else None,
        "trackingInfo": order.tracking_info,
        "placedAt": iso_utc(order.placed_at),
        "statusHistory": [
            {"status": entry.status.value, "timestamp": iso_utc(entry.timestamp), "note": entry.note}
            for entry in order.status_history
        ],
    }
