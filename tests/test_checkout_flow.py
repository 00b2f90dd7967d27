from __future__ import annotations

import re
from datetime import date, timedelta
from decimal import Decimal

import pytest

from storefront.checkout.flow import CheckoutFlow, OrderDraft, advance, back, new_order_number
from storefront.checkout.models import CheckoutStep, PaymentMethod, PaymentSelection
from storefront.core.errors import (
    ExpiredCouponError,
    FieldValidationError,
    InvalidTransitionError,
    MinimumNotMetError,
    OrderPersistenceError,
    StaleQuoteError,
)
from storefront.orders.aggregates import OrderStatus
from storefront.pricing.coupons import Coupon
from storefront.shipping.rates import ShippingMethod, TimeSlot, Zone


class RecordingStore:
    def __init__(self, fail_times: int = 0):
        self.saved = {}
        self.calls = 0
        self.fail_times = fail_times

    def save(self, order):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise OrderPersistenceError("order service unreachable")
        return self.saved.setdefault(order.order_number, order)


def _to_review(flow, address, payment, now, method=ShippingMethod.STANDARD, slot=TimeSlot.ANY):
    flow.set_address(address, now).unwrap()
    flow.advance(now).unwrap()
    flow.select_delivery(now, method, slot).unwrap()
    flow.advance(now).unwrap()
    flow.select_payment(payment, now).unwrap()
    flow.advance(now).unwrap()
    assert flow.step == CheckoutStep.REVIEW


@pytest.fixture()
def flow(ctx, cart, now):
    return CheckoutFlow.start(cart, ctx, now, "0.10")


def test_new_order_number_format(now):
    number = new_order_number(now)
    assert re.fullmatch(r"ORD-[0-9A-Z]+-[0-9A-Z]{5}", number)
    assert number != new_order_number(now)


def test_start_prices_cart_without_destination(flow):
    assert flow.step == CheckoutStep.SHIPPING
    assert flow.draft.zone is None
    assert flow.draft.pricing.subtotal == Decimal("3999.50")
    assert flow.draft.pricing.shipping_cost == Decimal("0")


def test_shipping_gate_reports_every_bad_field(flow, now):
    result = flow.advance(now)
    assert isinstance(result.error, FieldValidationError)
    assert {"full_name", "email", "phone", "street", "city", "state", "postal_code", "country"} <= set(
        result.error.field_errors
    )
    assert flow.step == CheckoutStep.SHIPPING


@pytest.mark.parametrize("postal_code", ["５４７９２", "5479", "54792a"])
def test_postal_code_takes_ascii_digits_only(flow, lahore_address, now, postal_code):
    flow.set_address(lahore_address.model_copy(update={"postal_code": postal_code}), now)
    assert set(flow.advance(now).error.field_errors) == {"postal_code"}


def test_empty_cart_blocks_shipping_step(ctx, lahore_address, now):
    flow = CheckoutFlow.start([], ctx, now, "0.10")
    flow.set_address(lahore_address, now)
    result = flow.advance(now)
    assert "cart" in result.error.field_errors


def test_full_happy_path(flow, lahore_address, card_payment, now):
    store = RecordingStore()
    _to_review(flow, lahore_address, card_payment, now, ShippingMethod.SAME_DAY, TimeSlot.EVENING)

    assert flow.draft.zone == Zone.LOCAL
    assert flow.draft.pricing.shipping_cost == Decimal("50")
    assert flow.draft.pricing.rounded().total == Decimal("4449.45")

    order = flow.place(store, now).unwrap()

    assert flow.step == CheckoutStep.PLACED
    assert order.order_number == flow.draft.order_number
    assert order.status == OrderStatus.PENDING
    assert len(order.status_history) == 1
    assert order.payment_info == {
        "method": "card",
        "provider": "stripe",
        "cardLast4": "4242",
        "status": "pending",
    }


def test_placing_twice_returns_the_same_order(flow, lahore_address, card_payment, now):
    store = RecordingStore()
    _to_review(flow, lahore_address, card_payment, now)
    first = flow.place(store, now).unwrap()
    second = flow.place(store, now + timedelta(minutes=1)).unwrap()

    assert first is second
    assert store.calls == 1


def test_draft_is_frozen_after_placement(flow, lahore_address, card_payment, cart, now):
    _to_review(flow, lahore_address, card_payment, now)
    flow.place(RecordingStore(), now).unwrap()

    assert isinstance(flow.set_items(cart, now).error, InvalidTransitionError)
    assert isinstance(flow.apply_coupon("SAVE10", now).error, InvalidTransitionError)
    assert isinstance(flow.back().error, InvalidTransitionError)
    assert isinstance(flow.advance(now).error, InvalidTransitionError)


def test_advance_from_review_requires_place(flow, lahore_address, card_payment, now):
    _to_review(flow, lahore_address, card_payment, now)
    assert isinstance(flow.advance(now).error, InvalidTransitionError)
    assert flow.step == CheckoutStep.REVIEW


def test_place_requires_review_step(flow, now):
    result = flow.place(RecordingStore(), now)
    assert isinstance(result.error, InvalidTransitionError)


def test_same_day_outside_local_zone_fails_delivery_gate(flow, lahore_address, now):
    flow.set_address(lahore_address.model_copy(update={"city": "Karachi"}), now)
    flow.advance(now).unwrap()
    flow.select_delivery(now, ShippingMethod.SAME_DAY)

    assert flow.draft.quote is None
    result = flow.advance(now)
    assert "method" in result.error.field_errors
    assert flow.step == CheckoutStep.DELIVERY


def test_requested_date_must_be_an_operating_day(flow, lahore_address, now):
    flow.set_address(lahore_address, now)
    flow.advance(now).unwrap()

    flow.select_delivery(now, requested_date=date(2026, 10, 18))
    assert "requested_date" in flow.advance(now).error.field_errors

    flow.select_delivery(now, requested_date=date(2026, 10, 19))
    assert flow.advance(now).ok


def test_cod_requires_empty_card_fields(flow, lahore_address, now):
    flow.set_address(lahore_address, now)
    flow.advance(now).unwrap()
    flow.advance(now).unwrap()

    flow.select_payment(PaymentSelection(method=PaymentMethod.COD, cvv="123"), now)
    assert "card_number" in flow.advance(now).error.field_errors

    flow.select_payment(PaymentSelection(method=PaymentMethod.COD), now)
    assert flow.advance(now).ok


@pytest.mark.parametrize(
    ("changes", "field"),
    [
        ({"card_number": "4242 4242"}, "card_number"),
        ({"card_number": "４２４２ ４２４２ ４２４２ ４２４２"}, "card_number"),
        ({"card_name": " "}, "card_name"),
        ({"expiry": "09/26"}, "expiry"),
        ({"expiry": "13/29"}, "expiry"),
        ({"cvv": "12"}, "cvv"),
    ],
)
def test_card_payment_gate(flow, lahore_address, card_payment, now, changes, field):
    flow.set_address(lahore_address, now)
    flow.advance(now).unwrap()
    flow.advance(now).unwrap()
    flow.select_payment(card_payment.model_copy(update=changes), now)
    assert field in flow.advance(now).error.field_errors


def test_card_expiring_this_month_is_accepted(flow, lahore_address, card_payment, now):
    flow.set_address(lahore_address, now)
    flow.advance(now).unwrap()
    flow.advance(now).unwrap()
    flow.select_payment(card_payment.model_copy(update={"expiry": "10/26"}), now)
    assert flow.advance(now).ok


def test_no_payment_method_selected(flow, lahore_address, now):
    flow.set_address(lahore_address, now)
    flow.advance(now).unwrap()
    flow.advance(now).unwrap()
    assert "method" in flow.advance(now).error.field_errors


def test_new_coupon_replaces_previous(flow, now):
    flow.apply_coupon("SAVE10", now).unwrap()
    assert flow.draft.pricing.discount == Decimal("399.950")

    flow.apply_coupon("HALFCAP", now).unwrap()
    assert flow.draft.coupon.code == "HALFCAP"
    assert flow.draft.pricing.discount == Decimal("750")


def test_rejected_coupon_keeps_current_pricing(flow, now):
    flow.apply_coupon("SAVE10", now).unwrap()
    before = flow.draft.pricing

    result = flow.apply_coupon("OLD", now)

    assert isinstance(result.error, ExpiredCouponError)
    assert flow.draft.coupon.code == "SAVE10"
    assert flow.draft.pricing == before


def test_remove_coupon(flow, now):
    flow.apply_coupon("SAVE10", now).unwrap()
    flow.remove_coupon(now).unwrap()
    assert flow.draft.coupon is None
    assert flow.draft.pricing.discount == Decimal("0")


def test_coupon_revalidated_at_placement(flow, ctx, lahore_address, card_payment, now):
    ctx.coupon_engine.store.add(
        Coupon(code="FLASH", kind="flat", value=100, expires_at=now + timedelta(hours=1))
    )
    _to_review(flow, lahore_address, card_payment, now)
    flow.apply_coupon("FLASH", now).unwrap()

    result = flow.place(RecordingStore(), now + timedelta(hours=2))
    assert isinstance(result.error, ExpiredCouponError)
    assert flow.step == CheckoutStep.REVIEW


def test_cart_change_can_invalidate_coupon_minimum(flow, lahore_address, card_payment, cart, now):
    _to_review(flow, lahore_address, card_payment, now)
    flow.apply_coupon("FLAT500", now).unwrap()
    flow.set_items(cart[1:], now)

    result = flow.place(RecordingStore(), now)
    assert isinstance(result.error, MinimumNotMetError)


def test_stale_total_is_reported_with_fresh_breakdown(flow, lahore_address, card_payment, now):
    _to_review(flow, lahore_address, card_payment, now)
    store = RecordingStore()

    result = flow.place(store, now, shown_total="4000.00")

    assert isinstance(result.error, StaleQuoteError)
    assert result.error.fresh.rounded().total == Decimal("4399.45")
    assert result.error.to_dict()["pricing"]["totalPrice"] == "4399.45"
    assert store.calls == 0
    assert flow.step == CheckoutStep.REVIEW

    assert flow.place(store, now, shown_total="4399.45").ok


def test_total_within_tolerance_is_accepted(flow, lahore_address, card_payment, now):
    _to_review(flow, lahore_address, card_payment, now)
    assert flow.place(RecordingStore(), now, shown_total="4399.44").ok


def test_persistence_failure_keeps_order_number_for_retry(flow, lahore_address, card_payment, now):
    _to_review(flow, lahore_address, card_payment, now)
    number = flow.draft.order_number
    store = RecordingStore(fail_times=1)

    failed = flow.place(store, now)
    assert isinstance(failed.error, OrderPersistenceError)
    assert flow.step == CheckoutStep.REVIEW
    assert flow.draft.order_number == number

    placed = flow.place(store, now).unwrap()
    assert placed.order_number == number


def test_back_navigation(flow, lahore_address, now):
    assert flow.back().value.step == CheckoutStep.SHIPPING
    flow.set_address(lahore_address, now)
    flow.advance(now).unwrap()
    assert flow.back().value.step == CheckoutStep.SHIPPING


def test_pure_transitions_do_not_mutate_input(ctx, now):
    draft = OrderDraft(order_number="ORD-TEST-00001", tax_rate=Decimal("0.10"))
    result = advance(draft, ctx, now)
    assert not result.ok
    assert draft.step == CheckoutStep.SHIPPING

    at_payment = OrderDraft(order_number="ORD-TEST-00001", tax_rate=Decimal("0.10"), step=CheckoutStep.PAYMENT)
    moved = back(at_payment).unwrap()
    assert moved.step == CheckoutStep.DELIVERY
    assert at_payment.step == CheckoutStep.PAYMENT
