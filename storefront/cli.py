from __future__ import annotations

import argparse
import json
from typing import Any

from storefront.checkout.flow import CheckoutContext
from storefront.core.clock import now_utc
from storefront.core.config import get_settings
from storefront.core.errors import StorefrontError
from storefront.core.logging import configure_logging
from storefront.persistence.pg import init_db, session_scope
from storefront.persistence.repository import SqlCouponStore
from storefront.pricing.aggregator import CartItem, cart_subtotal
from storefront.pricing.coupons import Coupon
from storefront.shipping.rates import ShippingMethod, TimeSlot


def _cart_item(text: str) -> CartItem:
    parts = text.split(":")
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("items are product_id:name:price:quantity")
    product_id, name, price, quantity = parts
    try:
        return CartItem(product_id=product_id, name=name, price=price, quantity=int(quantity))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid item {text!r}: {exc}") from exc


def _add_destination_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--country", required=True)
    parser.add_argument("--city", default="")
    parser.add_argument("--method", choices=[m.value for m in ShippingMethod], default=ShippingMethod.STANDARD.value)
    parser.add_argument("--slot", choices=[s.value for s in TimeSlot], default=TimeSlot.ANY.value)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront checkout CLI")
    top = parser.add_subparsers(dest="command", required=True)

    quote = top.add_parser("quote", help="Quote shipping for a destination")
    _add_destination_args(quote)
    quote.add_argument("--subtotal", default="0", help="Cart subtotal used for free-shipping eligibility")
    quote.add_argument("--weight", default=None, help="Cart weight in kg")

    price = top.add_parser("price", help="Price a cart end to end")
    _add_destination_args(price)
    price.add_argument("--item", dest="items", type=_cart_item, action="append", required=True)
    price.add_argument("--coupon", default=None)
    price.add_argument("--tax-rate", default=None)

    coupon = top.add_parser("coupon-add", help="Store a coupon in the local database")
    coupon.add_argument("code")
    coupon.add_argument("--kind", choices=["flat", "percentage", "fixed"], required=True)
    coupon.add_argument("--value", required=True)
    coupon.add_argument("--min-subtotal", default=None)
    coupon.add_argument("--max-discount", default=None)
    coupon.add_argument("--expires-at", default=None, help="ISO-8601 timestamp")
    coupon.add_argument("--usage-limit", type=int, default=None)
    coupon.add_argument("--description", default="")

    return parser


def _print(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _run_quote(args: argparse.Namespace) -> int:
    ctx = CheckoutContext.from_settings(get_settings())
    zone = ctx.resolver.resolve(args.country, args.city)
    result = ctx.calculator.quote(
        zone,
        ShippingMethod(args.method),
        TimeSlot(args.slot),
        args.subtotal,
        now_utc(),
        cart_weight_kg=args.weight,
    )
    if not result.ok:
        _print(result.error.to_dict())
        return 1
    _print(result.value.to_dict())
    return 0


def _run_price(args: argparse.Namespace) -> int:
    settings = get_settings()
    now = now_utc()
    init_db()
    with session_scope() as session:
        ctx = CheckoutContext.from_settings(settings, coupon_store=SqlCouponStore(session))
        zone = ctx.resolver.resolve(args.country, args.city)
        subtotal = cart_subtotal(args.items)
        try:
            quote = ctx.calculator.quote(zone, ShippingMethod(args.method), TimeSlot(args.slot), subtotal, now).unwrap()
            coupon = None
            if args.coupon:
                coupon = ctx.coupon_engine.validate_code(args.coupon, subtotal, now).unwrap()
        except StorefrontError as exc:
            _print(exc.to_dict())
            return 1

        tax_rate = args.tax_rate if args.tax_rate is not None else settings.tax_rate
        pricing = ctx.aggregator.compute(args.items, quote, coupon, tax_rate)
        _print(
            {
                "currency": settings.currency,
                "zone": zone.value,
                "pricing": pricing.to_dict(),
                "shipping": quote.to_dict(),
                "coupon": coupon.to_summary() if coupon is not None else None,
            }
        )
    return 0


def _run_coupon_add(args: argparse.Namespace) -> int:
    coupon = Coupon(
        code=args.code,
        kind=args.kind,
        value=args.value,
        min_subtotal=args.min_subtotal,
        max_discount=args.max_discount,
        expires_at=args.expires_at,
        usage_limit=args.usage_limit,
        description=args.description,
    )
    init_db()
    with session_scope() as session:
        SqlCouponStore(session).add(coupon)
    _print(coupon.to_summary())
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "quote":
        return _run_quote(args)
    if args.command == "price":
        return _run_price(args)
    if args.command == "coupon-add":
        return _run_coupon_add(args)

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
