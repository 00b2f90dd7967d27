from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from storefront.pricing.aggregator import PricingBreakdown

T = TypeVar("T")


class StorefrontError(Exception):
    code = "storefront_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class FieldValidationError(StorefrontError):
    code = "validation_error"

    def __init__(self, field_errors: dict[str, str]) -> None:
        fields = ", ".join(sorted(field_errors))
        super().__init__(f"invalid fields: {fields}")
        self.field_errors = dict(field_errors)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["fields"] = self.field_errors
        return data


class CouponError(StorefrontError):
    code = "coupon_error"

    def __init__(self, message: str, coupon_code: str | None = None) -> None:
        super().__init__(message)
        self.coupon_code = coupon_code


class UnknownCouponError(CouponError):
    code = "unknown_coupon"


class ExpiredCouponError(CouponError):
    code = "expired_coupon"


class MinimumNotMetError(CouponError):
    code = "minimum_not_met"


class CouponInactiveError(CouponError):
    code = "coupon_inactive"


class CouponNotYetActiveError(CouponError):
    code = "coupon_not_yet_active"


class CouponUsageExhaustedError(CouponError):
    code = "coupon_usage_exhausted"


class CouponStoreUnavailableError(CouponError):
    code = "coupon_store_unavailable"


class InvalidMethodForZoneError(StorefrontError):
    code = "invalid_method_for_zone"

    def __init__(self, method: str, zone: str) -> None:
        super().__init__(f"shipping method {method} is not available for zone {zone}")
        self.method = method
        self.zone = zone


class InvalidTransitionError(StorefrontError):
    code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str, reason: str) -> None:
        super().__init__(f"cannot move from {from_status} to {to_status}: {reason}")
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason


class StaleQuoteError(StorefrontError):
    code = "stale_quote"

    def __init__(self, shown_total: Any, fresh: PricingBreakdown) -> None:
        shown_fresh = fresh.rounded()
        super().__init__(f"pricing changed since it was shown: shown={shown_total} now={shown_fresh.total}")
        self.shown_total = shown_total
        self.fresh = fresh

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["pricing"] = self.fresh.to_dict()
        return data


class OrderNotFoundError(StorefrontError):
    code = "order_not_found"


class OrderPersistenceError(StorefrontError):
    code = "order_persistence_failed"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success value or a StorefrontError, never both."""

    value: T | None = None
    error: StorefrontError | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: StorefrontError) -> Result[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
