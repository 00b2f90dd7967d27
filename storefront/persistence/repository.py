from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.checkout.models import DeliverySelection, ShippingAddress
from storefront.core.canonical import iso_utc, to_canonical_obj
from storefront.core.clock import ensure_utc
from storefront.core.errors import OrderNotFoundError, OrderPersistenceError, Result
from storefront.core.money import to_money
from storefront.orders.aggregates import Order, OrderStatus, StatusEntry
from storefront.orders.commands import order_submission
from storefront.orders.lifecycle import OrderLifecycle
from storefront.persistence.models import CouponModel, OrderModel, OrderStatusHistoryModel
from storefront.pricing.aggregator import CartItem, PricingBreakdown
from storefront.pricing.coupons import Coupon, normalize_code
from storefront.shipping.quotes import ShippingQuoteCalculator
from storefront.shipping.rates import Zone

logger = logging.getLogger(__name__)


def order_snapshot(order: Order) -> dict[str, Any]:
    return {
        "items": [item.model_dump(mode="json") for item in order.items],
        "pricing": to_canonical_obj(asdict(order.pricing)),
        "shipping_address": order.shipping_address.model_dump(mode="json"),
        "delivery": order.delivery.model_dump(mode="json"),
        "zone": order.zone.value,
        "payment_info": dict(order.payment_info),
        "tax_rate": format(order.tax_rate, "f"),
        "placed_at": iso_utc(order.placed_at),
        "coupon": order.coupon.model_dump(mode="json") if order.coupon is not None else None,
    }


def order_from_snapshot(
    order_number: str,
    snapshot: dict[str, Any],
    history: list[StatusEntry],
    tracking_info: dict[str, Any] | None = None,
) -> Order:
    pricing = dict(snapshot["pricing"])
    free_shipping = bool(pricing.pop("free_shipping_applied", False))
    coupon = snapshot.get("coupon")
    return Order(
        order_number=order_number,
        items=tuple(CartItem.model_validate(item) for item in snapshot["items"]),
        pricing=PricingBreakdown(
            **{key: to_money(value) for key, value in pricing.items()},
            free_shipping_applied=free_shipping,
        ),
        shipping_address=ShippingAddress.model_validate(snapshot["shipping_address"]),
        delivery=DeliverySelection.model_validate(snapshot["delivery"]),
        zone=Zone(snapshot["zone"]),
        payment_info=dict(snapshot["payment_info"]),
        tax_rate=to_money(snapshot["tax_rate"]),
        placed_at=ensure_utc(datetime.fromisoformat(snapshot["placed_at"].replace("Z", "+00:00"))),
        coupon=Coupon.model_validate(coupon) if coupon else None,
        status_history=tuple(history),
        tracking_info=tracking_info,
    )


class SqlOrderRepository:
    """Order storage keyed by the client-generated order number."""

    def __init__(
        self,
        session: Session,
        lifecycle: OrderLifecycle | None = None,
        calculator: ShippingQuoteCalculator | None = None,
    ):
        self.session = session
        self.lifecycle = lifecycle or OrderLifecycle()
        self.calculator = calculator or ShippingQuoteCalculator()

    def _row(self, order_number: str) -> OrderModel | None:
        self.session.flush()
        return self.session.scalar(select(OrderModel).where(OrderModel.order_number == order_number))

    def _history(self, row: OrderModel) -> list[StatusEntry]:
        stmt = (
            select(OrderStatusHistoryModel)
            .where(OrderStatusHistoryModel.order_id == row.id)
            .order_by(OrderStatusHistoryModel.seq)
        )
        return [
            StatusEntry(status=OrderStatus(h.status), timestamp=ensure_utc(h.changed_at), note=h.note)
            for h in self.session.scalars(stmt).all()
        ]

    def _to_order(self, row: OrderModel) -> Order:
        return order_from_snapshot(row.order_number, row.snapshot, self._history(row), row.tracking_info)

    def save(self, order: Order) -> Order:
        """Insert once per order number; replays of the same order return the stored copy."""
        submission = order_submission(order, self.calculator)
        fingerprint = submission.fingerprint()

        existing = self._row(order.order_number)
        if existing is not None:
            if existing.fingerprint != fingerprint:
                raise OrderPersistenceError(
                    f"order number {order.order_number} is already used by a different order"
                )
            logger.info("order already stored order=%s", order.order_number)
            return self._to_order(existing)

        row = OrderModel(
            order_number=order.order_number,
            status=order.status.value,
            zone=order.zone.value,
            total=format(order.pricing.rounded().total, "f"),
            snapshot=order_snapshot(order),
            payload=submission.to_wire(),
            fingerprint=fingerprint,
            tracking_info=order.tracking_info,
            placed_at=ensure_utc(order.placed_at),
            updated_at=ensure_utc(order.last_changed_at),
        )
        self.session.add(row)
        self.session.flush()
        for seq, entry in enumerate(order.status_history):
            self._add_history(row, seq, entry)

        if order.coupon is not None:
            SqlCouponStore(self.session).record_use(order.coupon.code)
        logger.info("order stored order=%s total=%s", order.order_number, row.total)
        return order

    def _add_history(self, row: OrderModel, seq: int, entry: StatusEntry) -> None:
        self.session.add(
            OrderStatusHistoryModel(
                order_id=row.id,
                seq=seq,
                status=entry.status.value,
                changed_at=ensure_utc(entry.timestamp),
                note=entry.note,
            )
        )

    def find(self, order_number: str) -> Order | None:
        row = self._row(order_number)
        return self._to_order(row) if row is not None else None

    def get(self, order_number: str) -> Order:
        order = self.find(order_number)
        if order is None:
            raise OrderNotFoundError(f"order {order_number} not found")
        return order

    def apply_status(
        self,
        order_number: str,
        new_status: OrderStatus | str,
        now: datetime,
        note: str | None = None,
        tracking_info: dict[str, Any] | None = None,
    ) -> Result[Order]:
        row = self._row(order_number)
        if row is None:
            return Result.failure(OrderNotFoundError(f"order {order_number} not found"))

        current = self._to_order(row)
        result = self.lifecycle.transition(current, new_status, now, note=note, tracking_info=tracking_info)
        if not result.ok:
            return result

        updated = result.value
        entry = updated.status_history[-1]
        self._add_history(row, len(updated.status_history) - 1, entry)
        row.status = entry.status.value
        row.tracking_info = updated.tracking_info
        row.updated_at = ensure_utc(entry.timestamp)
        return result


class SqlCouponStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, code: str) -> Coupon | None:
        row = self.session.get(CouponModel, normalize_code(code))
        if row is None:
            return None
        return Coupon(
            code=row.code,
            kind=row.kind,
            value=to_money(row.value),
            min_subtotal=to_money(row.min_subtotal) if row.min_subtotal is not None else None,
            max_discount=to_money(row.max_discount) if row.max_discount is not None else None,
            starts_at=row.starts_at,
            expires_at=row.expires_at,
            active=row.active,
            usage_limit=row.usage_limit,
            usage_count=row.usage_count,
            description=row.description,
        )

    def add(self, coupon: Coupon) -> None:
        row = self.session.get(CouponModel, coupon.code)
        if row is None:
            row = CouponModel(code=coupon.code)
            self.session.add(row)
        row.kind = coupon.kind.value
        row.value = format(coupon.value, "f")
        row.min_subtotal = format(coupon.min_subtotal, "f") if coupon.min_subtotal is not None else None
        row.max_discount = format(coupon.max_discount, "f") if coupon.max_discount is not None else None
        row.starts_at = coupon.starts_at
        row.expires_at = coupon.expires_at
        row.active = coupon.active
        row.usage_limit = coupon.usage_limit
        row.usage_count = coupon.usage_count
        row.description = coupon.description
        self.session.flush()

    def record_use(self, code: str) -> None:
        row = self.session.get(CouponModel, normalize_code(code))
        if row is not None:
            row.usage_count += 1
