from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Sequence

from storefront.checkout.models import DeliverySelection, PaymentMethod, PaymentSelection, ShippingAddress
from storefront.pricing.aggregator import CartItem
from storefront.shipping.quotes import ShippingQuoteCalculator
from storefront.shipping.rates import Zone

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/(\d{2})$", re.ASCII)
CVV_RE = re.compile(r"^\d{3,4}$", re.ASCII)
CARD_DIGITS = 16
CARD_RE = re.compile(rf"\d{{{CARD_DIGITS}}}", re.ASCII)


@dataclass(frozen=True)
class ValidationRules:
    postal_code_digits: int = 5
    phone_pattern: str = r"^(\+92|0)3\d{9}$"
    name_min: int = 3
    name_max: int = 50
    street_min: int = 10

    @classmethod
    def from_settings(cls, settings) -> ValidationRules:
        return cls(postal_code_digits=settings.postal_code_digits, phone_pattern=settings.phone_pattern)


def _is_person_name(value: str, low: int, high: int) -> bool:
    return low <= len(value) <= high and all(ch.isalpha() or ch == " " for ch in value)


def validate_shipping(
    address: ShippingAddress,
    cart_items: Sequence[CartItem],
    rules: ValidationRules,
) -> dict[str, str]:
    errors: dict[str, str] = {}

    name = address.full_name.strip()
    if not _is_person_name(name, rules.name_min, rules.name_max):
        errors["full_name"] = f"Name must be {rules.name_min}-{rules.name_max} letters or spaces"
    if not EMAIL_RE.match(address.email.strip()):
        errors["email"] = "Please enter a valid email address"

    phone = re.sub(r"[\s-]", "", address.phone)
    if not re.match(rules.phone_pattern, phone, re.ASCII):
        errors["phone"] = "Please enter a valid phone number"
    if len(address.street.strip()) < rules.street_min:
        errors["street"] = f"Please enter a complete street address (min {rules.street_min} characters)"
    if len(address.city.strip()) < 2:
        errors["city"] = "Please enter a valid city"
    if len(address.state.strip()) < 2:
        errors["state"] = "Please enter a valid state/province"
    if not address.country.strip():
        errors["country"] = "Please select a country"

    postal = address.postal_code.strip()
    if not re.fullmatch(rf"\d{{{rules.postal_code_digits}}}", postal, re.ASCII):
        errors["postal_code"] = f"Please enter a valid {rules.postal_code_digits}-digit postal code"

    if not cart_items:
        errors["cart"] = "Your cart is empty"
    return errors


def validate_delivery(
    delivery: DeliverySelection,
    zone: Zone,
    calculator: ShippingQuoteCalculator,
    now: datetime | date,
) -> dict[str, str]:
    errors: dict[str, str] = {}
    if delivery.method not in calculator.available_methods(zone):
        errors["method"] = f"{delivery.method.spec.name} is not available for {zone.value} deliveries"
        return errors

    if delivery.requested_date is not None:
        allowed = calculator.available_delivery_dates(zone, delivery.method, now)
        if delivery.requested_date not in allowed:
            errors["requested_date"] = "Please pick one of the available delivery dates"
    return errors


def _card_expired(expiry: str, now: datetime | date) -> bool | None:
    match = EXPIRY_RE.match(expiry.strip())
    if match is None:
        return None
    month, year = int(match.group(1)), 2000 + int(match.group(2))
    return (year, month) < (now.year, now.month)


def validate_payment(payment: PaymentSelection, now: datetime | date) -> dict[str, str]:
    errors: dict[str, str] = {}
    if payment.method is None:
        errors["method"] = "Please choose card or cash on delivery"
        return errors

    if payment.method == PaymentMethod.COD:
        if payment.has_card_fields():
            errors["card_number"] = "Card details must be empty for cash on delivery"
        return errors

    digits = payment.card_digits
    if not CARD_RE.fullmatch(digits):
        errors["card_number"] = f"Card number must be {CARD_DIGITS} digits"
    if not payment.card_name.strip():
        errors["card_name"] = "Please enter the name on the card"

    expired = _card_expired(payment.expiry, now)
    if expired is None:
        errors["expiry"] = "Expiry must be MM/YY"
    elif expired:
        errors["expiry"] = "This card has expired"

    if not CVV_RE.match(payment.cvv.strip()):
        errors["cvv"] = "CVV must be 3 or 4 digits"
    return errors
