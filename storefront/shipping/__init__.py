from storefront.shipping.quotes import ShippingQuote, ShippingQuoteCalculator, add_operating_days
from storefront.shipping.rates import RateTable, ShippingMethod, TimeSlot, Zone, ZoneRate
from storefront.shipping.zones import ZoneResolver

__all__ = [
    "RateTable",
    "ShippingMethod",
    "ShippingQuote",
    "ShippingQuoteCalculator",
    "TimeSlot",
    "Zone",
    "ZoneRate",
    "ZoneResolver",
    "add_operating_days",
]
