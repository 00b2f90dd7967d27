from storefront.pricing.aggregator import CartItem, PricingAggregator, PricingBreakdown, cart_subtotal
from storefront.pricing.coupons import Coupon, CouponEngine, CouponKind, CouponStore, InMemoryCouponStore

__all__ = [
    "CartItem",
    "Coupon",
    "CouponEngine",
    "CouponKind",
    "CouponStore",
    "InMemoryCouponStore",
    "PricingAggregator",
    "PricingBreakdown",
    "cart_subtotal",
]
