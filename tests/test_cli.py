from __future__ import annotations

import json

import pytest

from storefront.cli import main


def test_quote_command(capsys):
    assert main(["quote", "--country", "Pakistan", "--city", "Multan", "--method", "express", "--subtotal", "100"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["zone"] == "regional"
    assert payload["cost"] == "150.00"


def test_quote_command_rejects_same_day_outside_local(capsys):
    assert main(["quote", "--country", "Pakistan", "--city", "Quetta", "--method", "same-day"]) == 1
    assert json.loads(capsys.readouterr().out)["error"] == "invalid_method_for_zone"


def test_coupon_add_then_price(capsys):
    assert main(["coupon-add", "cli20", "--kind", "percentage", "--value", "20", "--max-discount", "100"]) == 0
    capsys.readouterr()

    code = main(
        [
            "price",
            "--country",
            "Pakistan",
            "--city",
            "Lahore",
            "--item",
            "p-1:Scarf:450:2",
            "--coupon",
            "CLI20",
            "--tax-rate",
            "0.05",
        ]
    )
    assert code == 0
    pricing = json.loads(capsys.readouterr().out)["pricing"]
    assert pricing["discountPrice"] == "100.00"
    assert pricing["taxPrice"] == "40.00"
    assert pricing["totalPrice"] == "840.00"


def test_price_command_requires_items():
    with pytest.raises(SystemExit):
        main(["price", "--country", "Pakistan"])
