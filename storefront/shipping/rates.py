from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from enum import Enum


class Zone(str, Enum):
    LOCAL = "local"
    REGIONAL = "regional"
    NATIONAL = "national"
    INTERNATIONAL = "international"


class ShippingMethod(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    SAME_DAY = "same-day"
    PICKUP = "pickup"

    @property
    def spec(self) -> MethodSpec:
        return METHOD_SPECS[self]


class TimeSlot(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    ANY = "any"

    @property
    def spec(self) -> SlotSpec:
        return SLOT_SPECS[self]


@dataclass(frozen=True)
class ZoneRate:
    base_rate: Decimal
    per_kg: Decimal
    min_days: int
    max_days: int


@dataclass(frozen=True)
class MethodSpec:
    name: str
    multiplier: Decimal
    description: str
    local_only: bool = False


@dataclass(frozen=True)
class SlotSpec:
    label: str
    starts: time
    ends: time
    surcharge: Decimal


METHOD_SPECS: dict[ShippingMethod, MethodSpec] = {
    ShippingMethod.STANDARD: MethodSpec("Standard Delivery", Decimal("1"), "Regular delivery"),
    ShippingMethod.EXPRESS: MethodSpec("Express Delivery", Decimal("1.5"), "2x faster delivery"),
    ShippingMethod.SAME_DAY: MethodSpec(
        "Same Day Delivery",
        Decimal("3"),
        "Get it today! (Local only)",
        local_only=True,
    ),
    ShippingMethod.PICKUP: MethodSpec("Store Pickup", Decimal("0"), "Pick up from nearest store"),
}

SLOT_SPECS: dict[TimeSlot, SlotSpec] = {
    TimeSlot.MORNING: SlotSpec("Morning (9AM - 12PM)", time(9), time(12), Decimal("0")),
    TimeSlot.AFTERNOON: SlotSpec("Afternoon (12PM - 5PM)", time(12), time(17), Decimal("0")),
    TimeSlot.EVENING: SlotSpec("Evening (5PM - 9PM)", time(17), time(21), Decimal("50")),
    TimeSlot.ANY: SlotSpec("Any Time", time(9), time(21), Decimal("0")),
}

DEFAULT_ZONE_RATES: dict[Zone, ZoneRate] = {
    Zone.LOCAL: ZoneRate(base_rate=Decimal("0"), per_kg=Decimal("0"), min_days=1, max_days=2),
    Zone.REGIONAL: ZoneRate(base_rate=Decimal("100"), per_kg=Decimal("20"), min_days=2, max_days=4),
    Zone.NATIONAL: ZoneRate(base_rate=Decimal("200"), per_kg=Decimal("30"), min_days=3, max_days=7),
    Zone.INTERNATIONAL: ZoneRate(base_rate=Decimal("1500"), per_kg=Decimal("500"), min_days=7, max_days=21),
}

DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal("5000")


@dataclass(frozen=True)
class RateTable:
    """Zone pricing shared by quote-time and placement-time computation."""

    zone_rates: dict[Zone, ZoneRate] = field(default_factory=lambda: dict(DEFAULT_ZONE_RATES))
    free_shipping_threshold: Decimal = DEFAULT_FREE_SHIPPING_THRESHOLD

    def __post_init__(self) -> None:
        missing = [zone.value for zone in Zone if zone not in self.zone_rates]
        if missing:
            raise ValueError(f"rate table missing zones: {missing}")
        if self.free_shipping_threshold < 0:
            raise ValueError("free shipping threshold must be non-negative")

    def rate_for(self, zone: Zone) -> ZoneRate:
        return self.zone_rates[zone]

    @classmethod
    def from_settings(cls, settings) -> RateTable:
        return cls(free_shipping_threshold=Decimal(settings.free_shipping_threshold))
