from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.api.utils import checkout_context, now_utc
from storefront.core.config import get_settings
from storefront.core.money import quantize_money
from storefront.persistence.pg import get_session
from storefront.pricing.aggregator import CartItem, cart_subtotal
from storefront.shipping.rates import ShippingMethod, TimeSlot

router = APIRouter(tags=["checkout"])


class Destination(BaseModel):
    country: str = Field(min_length=1)
    city: str = ""


class QuoteRequest(BaseModel):
    destination: Destination
    method: ShippingMethod = ShippingMethod.STANDARD
    slot: TimeSlot = TimeSlot.ANY
    items: list[CartItem] = Field(default_factory=list)
    cart_subtotal: Decimal | None = Field(default=None, ge=0)
    weight_kg: Decimal | None = Field(default=None, gt=0)


class PriceRequest(BaseModel):
    items: list[CartItem] = Field(min_length=1)
    destination: Destination | None = None
    method: ShippingMethod = ShippingMethod.STANDARD
    slot: TimeSlot = TimeSlot.ANY
    coupon_code: str | None = None
    tax_rate: Decimal | None = Field(default=None, ge=0)


class CouponValidateRequest(BaseModel):
    code: str
    cart_subtotal: Decimal = Field(ge=0)


@router.post("/checkout/quote")
def quote_shipping(request: QuoteRequest, session: Session = Depends(get_session)):
    ctx = checkout_context(session)
    now = now_utc()
    zone = ctx.resolver.resolve(request.destination.country, request.destination.city)
    subtotal = request.cart_subtotal if request.cart_subtotal is not None else cart_subtotal(request.items)

    quote = ctx.calculator.quote(zone, request.method, request.slot, subtotal, now, request.weight_kg).unwrap()
    return {
        "zone": zone.value,
        "quote": quote.to_dict(),
        "available_methods": [
            {"type": method.value, "name": method.spec.name, "description": method.spec.description}
            for method in ctx.calculator.available_methods(zone)
        ],
        "available_dates": [
            day.isoformat() for day in ctx.calculator.available_delivery_dates(zone, request.method, now)
        ],
    }


@router.post("/checkout/price")
def price_cart(request: PriceRequest, session: Session = Depends(get_session)):
    settings = get_settings()
    ctx = checkout_context(session)
    now = now_utc()
    subtotal = cart_subtotal(request.items)

    quote = None
    if request.destination is not None:
        zone = ctx.resolver.resolve(request.destination.country, request.destination.city)
        quote = ctx.calculator.quote(zone, request.method, request.slot, subtotal, now).unwrap()

    coupon = None
    if request.coupon_code:
        coupon = ctx.coupon_engine.validate_code(request.coupon_code, subtotal, now).unwrap()

    tax_rate = request.tax_rate if request.tax_rate is not None else settings.tax_rate
    pricing = ctx.aggregator.compute(request.items, quote, coupon, tax_rate)
    return {
        "currency": settings.currency,
        "pricing": pricing.to_dict(),
        "shipping": quote.to_dict() if quote is not None else None,
        "coupon": coupon.to_summary() if coupon is not None else None,
    }


@router.post("/coupons/validate")
def validate_coupon(request: CouponValidateRequest, session: Session = Depends(get_session)):
    ctx = checkout_context(session)
    coupon = ctx.coupon_engine.validate_code(request.code, request.cart_subtotal, now_utc()).unwrap()
    discount = ctx.coupon_engine.apply(coupon, request.cart_subtotal)
    return {
        "valid": True,
        "coupon": coupon.to_summary(),
        "discount": str(quantize_money(discount)),
    }
