from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from storefront.core.errors import InvalidMethodForZoneError, Result
from storefront.core.money import ZERO, ceil_half, quantize_money, to_money
from storefront.shipping.rates import RateTable, ShippingMethod, TimeSlot, Zone

logger = logging.getLogger(__name__)

NON_OPERATING_WEEKDAY = 6  # Sunday
DELIVERY_DATE_WINDOW_DAYS = 7


@dataclass(frozen=True)
class ShippingQuote:
    zone: Zone
    method: ShippingMethod
    slot: TimeSlot
    cost: Decimal
    original_cost: Decimal
    free_shipping_applied: bool
    amount_to_free_shipping: Decimal
    min_days: int
    max_days: int
    min_date: date
    max_date: date

    @property
    def estimate_label(self) -> str:
        if self.min_days == self.max_days:
            return f"{self.min_days} day{'s' if self.min_days != 1 else ''}"
        return f"{self.min_days}-{self.max_days} days"

    def to_dict(self) -> dict[str, Any]:
        return {
            "zone": self.zone.value,
            "method": {"type": self.method.value, "name": self.method.spec.name},
            "time_slot": {"id": self.slot.value, "label": self.slot.spec.label},
            "cost": str(quantize_money(self.cost)),
            "original_cost": str(quantize_money(self.original_cost)),
            "free_shipping_applied": self.free_shipping_applied,
            "amount_to_free_shipping": str(quantize_money(self.amount_to_free_shipping)),
            "estimated_delivery": {
                "min_days": self.min_days,
                "max_days": self.max_days,
                "min_date": self.min_date.isoformat(),
                "max_date": self.max_date.isoformat(),
                "formatted": self.estimate_label,
            },
        }


def add_operating_days(start: date, days: int, skip_non_operating: bool = True) -> date:
    if not skip_non_operating:
        return start + timedelta(days=days)
    current = start
    remaining = days
    while remaining > 0:
        current += timedelta(days=1)
        if current.weekday() != NON_OPERATING_WEEKDAY:
            remaining -= 1
    return current


def _as_date(now: datetime | date) -> date:
    return now.date() if isinstance(now, datetime) else now


class ShippingQuoteCalculator:
    def __init__(self, rate_table: RateTable | None = None):
        self.rate_table = rate_table or RateTable()

    def available_methods(self, zone: Zone) -> list[ShippingMethod]:
        return [method for method in ShippingMethod if not method.spec.local_only or zone == Zone.LOCAL]

    def transit_days(self, zone: Zone, method: ShippingMethod) -> tuple[int, int]:
        rate = self.rate_table.rate_for(zone)
        if method == ShippingMethod.EXPRESS:
            return ceil_half(rate.min_days), ceil_half(rate.max_days)
        if method == ShippingMethod.SAME_DAY:
            return 0, 0
        if method == ShippingMethod.PICKUP:
            return 1, 1
        return rate.min_days, rate.max_days

    def quote(
        self,
        zone: Zone,
        method: ShippingMethod,
        slot: TimeSlot,
        cart_subtotal: Any,
        now: datetime | date,
        cart_weight_kg: Any | None = None,
    ) -> Result[ShippingQuote]:
        if method not in self.available_methods(zone):
            logger.warning("rejected shipping method=%s for zone=%s", method.value, zone.value)
            return Result.failure(InvalidMethodForZoneError(method.value, zone.value))

        subtotal = to_money(cart_subtotal)
        rate = self.rate_table.rate_for(zone)
        weight = to_money(cart_weight_kg) if cart_weight_kg is not None else Decimal("1")
        weight_cost = (weight - 1) * rate.per_kg if weight > 1 else ZERO

        original_cost = (rate.base_rate + weight_cost) * method.spec.multiplier + slot.spec.surcharge
        threshold = self.rate_table.free_shipping_threshold
        eligible = subtotal >= threshold and zone != Zone.INTERNATIONAL
        free_applied = eligible and method == ShippingMethod.STANDARD
        cost = ZERO if free_applied else original_cost

        min_days, max_days = self.transit_days(zone, method)
        skip = method != ShippingMethod.SAME_DAY
        today = _as_date(now)

        return Result.success(
            ShippingQuote(
                zone=zone,
                method=method,
                slot=slot,
                cost=cost,
                original_cost=original_cost,
                free_shipping_applied=free_applied,
                amount_to_free_shipping=ZERO if eligible else max(threshold - subtotal, ZERO),
                min_days=min_days,
                max_days=max_days,
                min_date=add_operating_days(today, min_days, skip_non_operating=skip),
                max_date=add_operating_days(today, max_days, skip_non_operating=skip),
            )
        )

    def available_delivery_dates(
        self,
        zone: Zone,
        method: ShippingMethod,
        now: datetime | date,
        window_days: int = DELIVERY_DATE_WINDOW_DAYS,
    ) -> list[date]:
        if method not in self.available_methods(zone):
            return []
        min_days, _ = self.transit_days(zone, method)
        skip = method != ShippingMethod.SAME_DAY
        first = add_operating_days(_as_date(now), min_days, skip_non_operating=skip)
        dates: list[date] = []
        for offset in range(window_days):
            candidate = first + timedelta(days=offset)
            if skip and candidate.weekday() == NON_OPERATING_WEEKDAY:
                continue
            dates.append(candidate)
        return dates
