from storefront.gateways.remote import HttpCouponStore, HttpOrderGateway, build_coupon_store

__all__ = ["HttpCouponStore", "HttpOrderGateway", "build_coupon_store"]
