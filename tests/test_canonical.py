from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from storefront.core.canonical import CanonicalError, canonical_json, sha256_hex
from storefront.shipping.rates import Zone


def test_canonical_json_stable_key_order():
    obj_a = {"b": 2, "a": 1, "nested": {"y": 2, "x": 1}}
    obj_b = {"nested": {"x": 1, "y": 2}, "a": 1, "b": 2}

    assert canonical_json(obj_a) == canonical_json(obj_b)
    assert sha256_hex(obj_a) == sha256_hex(obj_b)


def test_canonical_json_rejects_float():
    with pytest.raises(CanonicalError):
        canonical_json({"amount": 1.23})


def test_canonical_money_enum_and_dates():
    payload = {
        "total": Decimal("4399.450"),
        "zone": Zone.LOCAL,
        "placed_at": datetime(2026, 1, 1, 13, 0, tzinfo=timezone.utc),
        "requested": date(2026, 1, 2),
    }
    encoded = canonical_json(payload).decode("utf-8")
    assert '"total":"4399.450"' in encoded
    assert '"zone":"local"' in encoded
    assert '"placed_at":"2026-01-01T13:00:00.000000Z"' in encoded
    assert '"requested":"2026-01-02"' in encoded
