from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Protocol

from storefront.checkout.models import (
    STEP_ORDER,
    CheckoutStep,
    DeliverySelection,
    PaymentSelection,
    ShippingAddress,
)
from storefront.checkout.validation import (
    ValidationRules,
    validate_delivery,
    validate_payment,
    validate_shipping,
)
from storefront.core.clock import ensure_utc
from storefront.core.errors import (
    FieldValidationError,
    InvalidTransitionError,
    Result,
    StaleQuoteError,
    StorefrontError,
)
from storefront.core.money import to_money
from storefront.orders.aggregates import Order
from storefront.pricing.aggregator import CartItem, PricingAggregator, PricingBreakdown, cart_subtotal
from storefront.pricing.coupons import Coupon, CouponEngine, CouponStore
from storefront.shipping.quotes import ShippingQuote, ShippingQuoteCalculator
from storefront.shipping.rates import RateTable, ShippingMethod, TimeSlot, Zone
from storefront.shipping.zones import ZoneResolver

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


def _base36(value: int) -> str:
    out = ""
    while True:
        value, rem = divmod(value, 36)
        out = _BASE36[rem] + out
        if value == 0:
            return out


def new_order_number(now: datetime) -> str:
    """Client-generated order number; doubles as the placement idempotency key."""
    millis = int(ensure_utc(now).timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"ORD-{_base36(millis)}-{suffix}"


class OrderPersistence(Protocol):
    def save(self, order: Order) -> Order:
        """Persist once per order_number; a repeated call returns the stored order."""
        ...


@dataclass(frozen=True)
class CheckoutContext:
    resolver: ZoneResolver
    calculator: ShippingQuoteCalculator
    aggregator: PricingAggregator
    rules: ValidationRules = field(default_factory=ValidationRules)
    stale_quote_tolerance: Decimal = Decimal("0.01")

    @property
    def coupon_engine(self) -> CouponEngine:
        return self.aggregator.coupon_engine

    @classmethod
    def from_settings(cls, settings, coupon_store: CouponStore | None = None) -> CheckoutContext:
        return cls(
            resolver=ZoneResolver.from_settings(settings),
            calculator=ShippingQuoteCalculator(RateTable.from_settings(settings)),
            aggregator=PricingAggregator(CouponEngine(coupon_store)),
            rules=ValidationRules.from_settings(settings),
            stale_quote_tolerance=Decimal(settings.stale_quote_tolerance),
        )


@dataclass(frozen=True)
class OrderDraft:
    order_number: str
    tax_rate: Decimal
    step: CheckoutStep = CheckoutStep.SHIPPING
    items: tuple[CartItem, ...] = ()
    address: ShippingAddress = field(default_factory=ShippingAddress)
    delivery: DeliverySelection = field(default_factory=DeliverySelection)
    payment: PaymentSelection = field(default_factory=PaymentSelection)
    coupon: Coupon | None = None
    zone: Zone | None = None
    quote: ShippingQuote | None = None
    pricing: PricingBreakdown | None = None

    @property
    def subtotal(self) -> Decimal:
        return cart_subtotal(self.items)


# Pure transition functions. Each takes a draft and returns a new one.


def reprice(draft: OrderDraft, ctx: CheckoutContext, now: datetime | date) -> OrderDraft:
    zone = None
    if draft.address.country.strip():
        zone = ctx.resolver.resolve(draft.address.country, draft.address.city)

    quote = None
    if zone is not None:
        result = ctx.calculator.quote(zone, draft.delivery.method, draft.delivery.slot, draft.subtotal, now)
        # An invalid method simply has no quote yet; the delivery gate reports it.
        quote = result.value if result.ok else None

    pricing = ctx.aggregator.compute(draft.items, quote, draft.coupon, draft.tax_rate)
    return replace(draft, zone=zone, quote=quote, pricing=pricing)


def gate_errors(draft: OrderDraft, step: CheckoutStep, ctx: CheckoutContext, now: datetime) -> dict[str, str]:
    if step == CheckoutStep.SHIPPING:
        return validate_shipping(draft.address, draft.items, ctx.rules)
    if step == CheckoutStep.DELIVERY:
        zone = draft.zone or ctx.resolver.resolve(draft.address.country, draft.address.city)
        return validate_delivery(draft.delivery, zone, ctx.calculator, now)
    if step == CheckoutStep.PAYMENT:
        return validate_payment(draft.payment, now)
    return {}


def advance(draft: OrderDraft, ctx: CheckoutContext, now: datetime) -> Result[OrderDraft]:
    if draft.step in (CheckoutStep.REVIEW, CheckoutStep.PLACED):
        return Result.failure(
            InvalidTransitionError(draft.step.value, "next", "review is submitted through place_order")
        )
    errors = gate_errors(draft, draft.step, ctx, now)
    if errors:
        return Result.failure(FieldValidationError(errors))
    next_step = STEP_ORDER[STEP_ORDER.index(draft.step) + 1]
    return Result.success(replace(draft, step=next_step))


def back(draft: OrderDraft) -> Result[OrderDraft]:
    if draft.step == CheckoutStep.PLACED:
        return Result.failure(InvalidTransitionError("placed", "back", "order has already been placed"))
    if draft.step == CheckoutStep.SHIPPING:
        return Result.success(draft)
    return Result.success(replace(draft, step=STEP_ORDER[STEP_ORDER.index(draft.step) - 1]))


class CheckoutFlow:
    """Owns one OrderDraft for a checkout session and reprices it after every change."""

    def __init__(self, draft: OrderDraft, ctx: CheckoutContext):
        self.draft = draft
        self.ctx = ctx
        self.order: Order | None = None

    @classmethod
    def start(
        cls,
        items: Iterable[CartItem],
        ctx: CheckoutContext,
        now: datetime,
        tax_rate: Any,
        order_number: str | None = None,
    ) -> CheckoutFlow:
        draft = OrderDraft(
            order_number=order_number or new_order_number(now),
            tax_rate=to_money(tax_rate),
            items=tuple(items),
        )
        return cls(reprice(draft, ctx, now), ctx)

    @property
    def step(self) -> CheckoutStep:
        return self.draft.step

    def _mutate(self, now: datetime, **changes: Any) -> Result[OrderDraft]:
        if self.draft.step == CheckoutStep.PLACED:
            return Result.failure(
                InvalidTransitionError("placed", self.draft.step.value, "order has already been placed")
            )
        self.draft = reprice(replace(self.draft, **changes), self.ctx, now)
        return Result.success(self.draft)

    def set_items(self, items: Iterable[CartItem], now: datetime) -> Result[OrderDraft]:
        return self._mutate(now, items=tuple(items))

    def set_address(self, address: ShippingAddress, now: datetime) -> Result[OrderDraft]:
        return self._mutate(now, address=address)

    def select_delivery(
        self,
        now: datetime,
        method: ShippingMethod = ShippingMethod.STANDARD,
        slot: TimeSlot = TimeSlot.ANY,
        requested_date: date | None = None,
    ) -> Result[OrderDraft]:
        delivery = DeliverySelection(method=method, slot=slot, requested_date=requested_date)
        return self._mutate(now, delivery=delivery)

    def select_payment(self, payment: PaymentSelection, now: datetime) -> Result[OrderDraft]:
        return self._mutate(now, payment=payment)

    def apply_coupon(self, code: str, now: datetime) -> Result[Coupon]:
        if self.draft.step == CheckoutStep.PLACED:
            return Result.failure(InvalidTransitionError("placed", "coupon", "order has already been placed"))
        result = self.ctx.coupon_engine.validate_code(code, self.draft.subtotal, now)
        if not result.ok:
            logger.info("coupon rejected order=%s code=%s: %s", self.draft.order_number, code, result.error)
            return result
        # A new coupon replaces the previous one; discounts never stack.
        self._mutate(now, coupon=result.value)
        return result

    def remove_coupon(self, now: datetime) -> Result[OrderDraft]:
        return self._mutate(now, coupon=None)

    def advance(self, now: datetime) -> Result[OrderDraft]:
        result = advance(self.draft, self.ctx, now)
        if result.ok:
            self.draft = result.value
        return result

    def back(self) -> Result[OrderDraft]:
        result = back(self.draft)
        if result.ok:
            self.draft = result.value
        return result

    def place(
        self,
        persistence: OrderPersistence,
        now: datetime,
        shown_total: Any | None = None,
    ) -> Result[Order]:
        if self.draft.step == CheckoutStep.PLACED and self.order is not None:
            return Result.success(self.order)
        if self.draft.step != CheckoutStep.REVIEW:
            return Result.failure(
                InvalidTransitionError(self.draft.step.value, "placed", "checkout must be on the review step")
            )

        errors: dict[str, str] = {}
        for step in (CheckoutStep.SHIPPING, CheckoutStep.DELIVERY, CheckoutStep.PAYMENT):
            errors.update(gate_errors(self.draft, step, self.ctx, now))
        if errors:
            return Result.failure(FieldValidationError(errors))

        if self.draft.coupon is not None:
            coupon_check = self.ctx.coupon_engine.validate(self.draft.coupon, self.draft.subtotal, now)
            if not coupon_check.ok:
                return Result.failure(coupon_check.error)

        seen = self.draft.pricing
        fresh_draft = reprice(self.draft, self.ctx, now)
        fresh = fresh_draft.pricing
        if fresh is None or fresh_draft.quote is None:
            return Result.failure(FieldValidationError({"method": "No shipping quote for this destination"}))

        seen_total = to_money(shown_total) if shown_total is not None else (seen.rounded().total if seen else None)
        if seen_total is None or abs(fresh.rounded().total - seen_total) > self.ctx.stale_quote_tolerance:
            self.draft = fresh_draft
            logger.warning(
                "stale pricing at placement order=%s shown=%s fresh=%s",
                self.draft.order_number,
                seen_total,
                fresh.rounded().total,
            )
            return Result.failure(StaleQuoteError(seen_total, fresh))

        order = Order.from_parts(
            order_number=fresh_draft.order_number,
            items=fresh_draft.items,
            pricing=fresh,
            shipping_address=fresh_draft.address,
            delivery=fresh_draft.delivery,
            zone=fresh_draft.zone,
            payment=fresh_draft.payment,
            tax_rate=fresh_draft.tax_rate,
            placed_at=ensure_utc(now),
            coupon=fresh_draft.coupon,
        )
        try:
            saved = persistence.save(order)
        except StorefrontError as exc:
            # Draft stays on review with the same order number so a retry is safe.
            logger.warning("order placement failed order=%s: %s", order.order_number, exc)
            return Result.failure(exc)

        self.draft = replace(fresh_draft, step=CheckoutStep.PLACED)
        self.order = saved
        logger.info("order placed order=%s total=%s", saved.order_number, saved.pricing.rounded().total)
        return Result.success(saved)
