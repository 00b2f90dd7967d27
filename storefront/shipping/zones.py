from __future__ import annotations

from storefront.shipping.rates import Zone

CITY_ZONES: dict[str, Zone] = {
    # Punjab
    "lahore": Zone.LOCAL,
    "faisalabad": Zone.REGIONAL,
    "rawalpindi": Zone.REGIONAL,
    "multan": Zone.REGIONAL,
    "gujranwala": Zone.REGIONAL,
    "sialkot": Zone.REGIONAL,
    # Sindh
    "karachi": Zone.REGIONAL,
    "hyderabad": Zone.REGIONAL,
    "sukkur": Zone.NATIONAL,
    # KPK
    "peshawar": Zone.REGIONAL,
    "abbottabad": Zone.REGIONAL,
    "mardan": Zone.NATIONAL,
    # Balochistan
    "quetta": Zone.NATIONAL,
    "gwadar": Zone.NATIONAL,
    # Capital territory
    "islamabad": Zone.REGIONAL,
    # AJK
    "muzaffarabad": Zone.NATIONAL,
    "mirpur": Zone.NATIONAL,
}


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


class ZoneResolver:
    def __init__(self, home_country: str = "Pakistan", city_zones: dict[str, Zone] | None = None):
        self.home_country = _normalize(home_country)
        self.city_zones = {_normalize(k): v for k, v in (city_zones or CITY_ZONES).items()}
        self._resolved: dict[tuple[str, str], Zone] = {}

    def resolve(self, country: str | None, city: str | None) -> Zone:
        key = (_normalize(country), _normalize(city))
        zone = self._resolved.get(key)
        if zone is None:
            zone = self._lookup(*key)
            self._resolved[key] = zone
        return zone

    def _lookup(self, country: str, city: str) -> Zone:
        if country != self.home_country:
            return Zone.INTERNATIONAL
        return self.city_zones.get(city, Zone.NATIONAL)

    @classmethod
    def from_settings(cls, settings) -> ZoneResolver:
        return cls(home_country=settings.home_country)
