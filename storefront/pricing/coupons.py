from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefront.core.clock import ensure_utc
from storefront.core.errors import (
    CouponError,
    CouponInactiveError,
    CouponNotYetActiveError,
    CouponUsageExhaustedError,
    ExpiredCouponError,
    MinimumNotMetError,
    Result,
    UnknownCouponError,
)
from storefront.core.money import ZERO, clamp, quantize_money, to_money

logger = logging.getLogger(__name__)


class CouponKind(str, Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


def normalize_code(code: str) -> str:
    return code.strip().upper()


class Coupon(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str = Field(min_length=1, max_length=64)
    kind: CouponKind
    value: Decimal = Field(ge=0)
    min_subtotal: Decimal | None = Field(default=None, ge=0)
    max_discount: Decimal | None = Field(default=None, ge=0)
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    active: bool = True
    usage_limit: int | None = Field(default=None, ge=0)
    usage_count: int = Field(default=0, ge=0)
    description: str = ""

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return normalize_code(value)

    @field_validator("kind", mode="before")
    @classmethod
    def _accept_fixed_alias(cls, value: Any) -> Any:
        # The coupon service calls flat coupons "fixed".
        if isinstance(value, str) and value.lower() == "fixed":
            return CouponKind.FLAT
        return value

    @field_validator("starts_at", "expires_at")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _percentage_range(self) -> Coupon:
        if self.kind == CouponKind.PERCENTAGE and self.value > 100:
            raise ValueError("percentage coupons are expressed 0-100")
        return self

    def to_summary(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind.value,
            "value": str(self.value),
            "max_discount": str(self.max_discount) if self.max_discount is not None else None,
            "description": self.description,
        }


class CouponStore(Protocol):
    def get(self, code: str) -> Coupon | None:
        ...


class InMemoryCouponStore:
    def __init__(self, coupons: list[Coupon] | None = None):
        self._coupons: dict[str, Coupon] = {}
        for coupon in coupons or []:
            self.add(coupon)

    def add(self, coupon: Coupon) -> None:
        self._coupons[coupon.code] = coupon

    def get(self, code: str) -> Coupon | None:
        return self._coupons.get(normalize_code(code))


class CouponEngine:
    def __init__(self, store: CouponStore | None = None):
        self.store = store or InMemoryCouponStore()

    def validate(self, coupon: Coupon, cart_subtotal: Any, now: datetime) -> Result[Coupon]:
        subtotal = to_money(cart_subtotal)
        now = ensure_utc(now)

        if not coupon.active:
            return Result.failure(CouponInactiveError("This coupon is no longer active", coupon.code))
        if coupon.starts_at is not None and now < coupon.starts_at:
            return Result.failure(CouponNotYetActiveError("This coupon is not yet active", coupon.code))
        if coupon.expires_at is not None and now > coupon.expires_at:
            return Result.failure(ExpiredCouponError("This coupon has expired", coupon.code))
        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            return Result.failure(
                CouponUsageExhaustedError("This coupon has reached its usage limit", coupon.code)
            )
        if coupon.min_subtotal is not None and subtotal < coupon.min_subtotal:
            return Result.failure(
                MinimumNotMetError(
                    f"Minimum purchase of {quantize_money(coupon.min_subtotal)} required",
                    coupon.code,
                )
            )
        return Result.success(coupon)

    def validate_code(self, code: str, cart_subtotal: Any, now: datetime) -> Result[Coupon]:
        normalized = normalize_code(code or "")
        if not normalized:
            return Result.failure(UnknownCouponError("Please provide a coupon code"))
        try:
            coupon = self.store.get(normalized)
        except CouponError as exc:
            logger.warning("coupon lookup failed code=%s: %s", normalized, exc)
            return Result.failure(exc)
        if coupon is None:
            return Result.failure(UnknownCouponError("Invalid coupon code", normalized))
        return self.validate(coupon, cart_subtotal, now)

    def apply(self, coupon: Coupon, cart_subtotal: Any) -> Decimal:
        subtotal = to_money(cart_subtotal)
        if coupon.kind == CouponKind.PERCENTAGE:
            discount = subtotal * coupon.value / 100
        else:
            discount = min(coupon.value, subtotal)
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
        return clamp(discount, ZERO, max(subtotal, ZERO))
