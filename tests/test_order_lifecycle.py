from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.checkout.models import DeliverySelection, PaymentMethod, PaymentSelection
from storefront.core.errors import InvalidTransitionError
from storefront.orders.aggregates import Order, OrderStatus
from storefront.orders.lifecycle import FORWARD_STAGES, NO_LONGER_MODIFIABLE, TERMINAL, OrderLifecycle
from storefront.pricing.aggregator import PricingAggregator
from storefront.shipping.rates import Zone


@pytest.fixture()
def order(cart, lahore_address, now) -> Order:
    return Order.from_parts(
        order_number="ORD-LIFE-00001",
        items=cart,
        pricing=PricingAggregator().compute(cart, None, None, Decimal("0.10")),
        shipping_address=lahore_address,
        delivery=DeliverySelection(),
        zone=Zone.LOCAL,
        payment=PaymentSelection(method=PaymentMethod.COD),
        tax_rate=Decimal("0.10"),
        placed_at=now,
    )


@pytest.fixture()
def lifecycle() -> OrderLifecycle:
    return OrderLifecycle()


def _walk(lifecycle, order, statuses, start):
    for offset, status in enumerate(statuses, start=1):
        order = lifecycle.transition(order, status, start + timedelta(hours=offset)).unwrap()
    return order


def test_new_order_starts_pending(order, lifecycle, now):
    assert order.status == OrderStatus.PENDING
    assert order.status_history[0].timestamp == now
    assert lifecycle.progress(order) == 0


def test_shipped_then_cancelled_then_nothing(order, lifecycle, now):
    order = _walk(lifecycle, order, [OrderStatus.SHIPPED, OrderStatus.CANCELLED], now)

    assert len(order.status_history) == 3
    assert order.status == OrderStatus.CANCELLED

    result = lifecycle.transition(order, OrderStatus.DELIVERED, now + timedelta(days=1))
    assert isinstance(result.error, InvalidTransitionError)
    assert result.error.reason == NO_LONGER_MODIFIABLE
    assert len(order.status_history) == 3


def test_full_forward_walk(order, lifecycle, now):
    order = _walk(lifecycle, order, list(FORWARD_STAGES[1:]), now)
    assert order.status == OrderStatus.DELIVERED
    assert lifecycle.progress(order) == 1
    assert [entry.status for entry in order.status_history] == list(FORWARD_STAGES)


def test_stages_may_be_skipped_but_not_reversed(order, lifecycle, now):
    order = _walk(lifecycle, order, [OrderStatus.PROCESSING], now)
    result = lifecycle.transition(order, OrderStatus.CONFIRMED, now + timedelta(days=1))
    assert result.error.reason == "status cannot move backwards"


def test_same_status_rejected(order, lifecycle, now):
    result = lifecycle.transition(order, "pending", now)
    assert isinstance(result.error, InvalidTransitionError)


def test_return_and_refund_only_after_delivery(order, lifecycle, now):
    for target in (OrderStatus.RETURNED, OrderStatus.REFUNDED):
        result = lifecycle.transition(order, target, now + timedelta(hours=1))
        assert isinstance(result.error, InvalidTransitionError)

    delivered = _walk(lifecycle, order, [OrderStatus.DELIVERED], now)
    assert lifecycle.can_return(delivered, now + timedelta(days=2))
    returned = lifecycle.transition(delivered, OrderStatus.RETURNED, now + timedelta(days=2)).unwrap()
    assert returned.status == OrderStatus.RETURNED
    assert lifecycle.progress(returned) == 1
    assert lifecycle.is_terminal(returned)


def test_return_window(order, lifecycle, now):
    delivered = _walk(lifecycle, order, [OrderStatus.DELIVERED], now)
    late = now + timedelta(days=31, hours=2)
    assert not lifecycle.can_return(delivered, late)
    assert isinstance(lifecycle.transition(delivered, OrderStatus.RETURNED, late).error, InvalidTransitionError)
    assert lifecycle.transition(delivered, OrderStatus.REFUNDED, late).ok


def test_delivered_cannot_be_cancelled(order, lifecycle, now):
    delivered = _walk(lifecycle, order, [OrderStatus.DELIVERED], now)
    assert not lifecycle.can_cancel(delivered)
    result = lifecycle.transition(delivered, OrderStatus.CANCELLED, now + timedelta(days=1))
    assert result.error.reason == NO_LONGER_MODIFIABLE


def test_timestamps_must_strictly_increase(order, lifecycle, now):
    confirmed = lifecycle.transition(order, OrderStatus.CONFIRMED, now + timedelta(hours=2)).unwrap()
    earlier = lifecycle.transition(confirmed, OrderStatus.PROCESSING, now + timedelta(hours=1))
    same_instant = lifecycle.transition(confirmed, OrderStatus.PROCESSING, now + timedelta(hours=2))

    assert isinstance(earlier.error, InvalidTransitionError)
    assert isinstance(same_instant.error, InvalidTransitionError)
    assert lifecycle.transition(confirmed, OrderStatus.PROCESSING, now + timedelta(hours=2, seconds=1)).ok


def test_unknown_status_is_a_failed_result(order, lifecycle, now):
    result = lifecycle.transition(order, "teleported", now + timedelta(hours=1))

    assert not result.ok
    assert isinstance(result.error, InvalidTransitionError)
    assert result.error.reason == "unknown status"
    with pytest.raises(InvalidTransitionError):
        result.unwrap()


def test_notes_and_tracking_are_recorded(order, lifecycle, now):
    shipped = lifecycle.transition(
        order,
        OrderStatus.SHIPPED,
        now + timedelta(hours=1),
        note="handed to courier",
        tracking_info={"carrier": "TCS", "trackingNumber": "TCS123"},
    ).unwrap()
    out = lifecycle.transition(
        shipped,
        OrderStatus.OUT_FOR_DELIVERY,
        now + timedelta(hours=5),
        tracking_info={"trackingNumber": "TCS123-B"},
    ).unwrap()

    assert shipped.status_history[-1].note == "handed to courier"
    assert out.tracking_info == {"carrier": "TCS", "trackingNumber": "TCS123-B"}
    assert order.tracking_info is None


def test_progress_of_cancelled_order_uses_last_stage(order, lifecycle, now):
    cancelled = _walk(lifecycle, order, [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.CANCELLED], now)
    assert lifecycle.progress(cancelled) == pytest.approx(2 / 5)


@pytest.mark.parametrize("terminal", sorted(TERMINAL - {OrderStatus.DELIVERED}, key=lambda s: s.value))
@pytest.mark.parametrize("target", list(OrderStatus))
def test_closed_statuses_reject_every_move(order, lifecycle, now, terminal, target):
    path = {
        OrderStatus.CANCELLED: [OrderStatus.CANCELLED],
        OrderStatus.RETURNED: [OrderStatus.DELIVERED, OrderStatus.RETURNED],
        OrderStatus.REFUNDED: [OrderStatus.DELIVERED, OrderStatus.REFUNDED],
    }[terminal]
    closed = _walk(lifecycle, order, path, now)

    result = lifecycle.transition(closed, target, now + timedelta(days=3))
    assert not result.ok
    assert closed.status == terminal
