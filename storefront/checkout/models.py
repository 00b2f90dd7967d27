from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from storefront.shipping.rates import ShippingMethod, TimeSlot


class CheckoutStep(str, Enum):
    SHIPPING = "shipping"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    REVIEW = "review"
    PLACED = "placed"


STEP_ORDER: tuple[CheckoutStep, ...] = (
    CheckoutStep.SHIPPING,
    CheckoutStep.DELIVERY,
    CheckoutStep.PAYMENT,
    CheckoutStep.REVIEW,
    CheckoutStep.PLACED,
)


class PaymentMethod(str, Enum):
    CARD = "card"
    COD = "cod"


class ShippingAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str = ""
    email: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""

    def to_shipping_info(self) -> dict[str, Any]:
        first, _, last = self.full_name.strip().partition(" ")
        return {
            "firstName": first,
            "lastName": last.strip(),
            "email": self.email,
            "phone": self.phone,
            "address": {
                "street": self.street,
                "city": self.city,
                "state": self.state,
                "country": self.country,
                "zipCode": self.postal_code,
            },
        }


class DeliverySelection(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: ShippingMethod = ShippingMethod.STANDARD
    slot: TimeSlot = TimeSlot.ANY
    requested_date: date | None = None


class PaymentSelection(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: PaymentMethod | None = None
    card_number: str = ""
    card_name: str = ""
    expiry: str = ""
    cvv: str = ""

    @property
    def card_digits(self) -> str:
        return re.sub(r"[\s-]", "", self.card_number)

    def has_card_fields(self) -> bool:
        return any(value.strip() for value in (self.card_number, self.card_name, self.expiry, self.cvv))

    def to_payment_info(self) -> dict[str, Any]:
        if self.method == PaymentMethod.CARD:
            return {
                "method": "card",
                "provider": "stripe",
                "cardLast4": self.card_digits[-4:],
                "status": "pending",
            }
        return {"method": "cod", "provider": "cod", "status": "pending"}
