from __future__ import annotations

import logging
from typing import Any

import httpx

from storefront.core.config import Settings, get_settings
from storefront.core.errors import CouponStoreUnavailableError, OrderPersistenceError
from storefront.orders.aggregates import Order
from storefront.orders.commands import StatusUpdateRequest, order_submission
from storefront.pricing.coupons import Coupon, CouponStore, InMemoryCouponStore, normalize_code

logger = logging.getLogger(__name__)


class _RemoteClient:
    def __init__(self, base_url: str, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.base_url = base_url.rstrip("/")
        self.timeout = max(1, self.settings.remote_timeout_seconds)
        self.max_retries = self.settings.remote_max_retries

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.remote_api_key:
            headers["X-API-Key"] = self.settings.remote_api_key
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        attempt = 0
        while True:
            try:
                with httpx.Client(timeout=self.timeout) as client:
                    return client.request(method, url, headers=self._headers(headers), json=json_body)
            except httpx.TransportError as exc:
                if attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.warning("retrying %s %s attempt=%s: %s", method, url, attempt, exc)


class HttpCouponStore(_RemoteClient):
    def __init__(self, settings: Settings | None = None):
        cfg = settings or get_settings()
        super().__init__(cfg.coupon_api_base_url, cfg)

    def get(self, code: str) -> Coupon | None:
        normalized = normalize_code(code)
        try:
            response = self._request("GET", f"/api/coupons/{normalized}")
        except httpx.TransportError as exc:
            raise CouponStoreUnavailableError("Coupon service is unavailable", normalized) from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise CouponStoreUnavailableError(
                f"Coupon service returned {response.status_code}", normalized
            )

        payload = response.json()
        data = payload.get("coupon", payload) if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise CouponStoreUnavailableError(f"unexpected coupon payload: {payload}", normalized)
        return Coupon(
            code=data.get("code", normalized),
            kind=data.get("discountType") or data.get("kind"),
            value=str(data.get("discountValue", data.get("value", "0"))),
            min_subtotal=data.get("minPurchase", data.get("min_subtotal")),
            max_discount=data.get("maxDiscount", data.get("max_discount")),
            starts_at=data.get("startDate", data.get("starts_at")),
            expires_at=data.get("expiresAt", data.get("expires_at")),
            active=bool(data.get("isActive", data.get("active", True))),
            usage_limit=data.get("usageLimit", data.get("usage_limit")),
            usage_count=int(data.get("usageCount", data.get("usage_count", 0)) or 0),
            description=data.get("description") or "",
        )


class HttpOrderGateway(_RemoteClient):
    """Submits placed orders to the order service; the order number is the idempotency key."""

    def __init__(self, settings: Settings | None = None):
        cfg = settings or get_settings()
        super().__init__(cfg.order_api_base_url, cfg)

    def save(self, order: Order) -> Order:
        body = order_submission(order).to_wire()
        try:
            response = self._request(
                "POST",
                "/api/orders",
                json_body=body,
                headers={"Idempotency-Key": order.order_number},
            )
        except httpx.TransportError as exc:
            raise OrderPersistenceError(f"order service unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise OrderPersistenceError(
                f"order service rejected {order.order_number}: {response.status_code} {response.text}"
            )
        logger.info("order submitted order=%s status=%s", order.order_number, response.status_code)
        return order

    def update_status(self, request: StatusUpdateRequest) -> dict[str, Any]:
        try:
            response = self._request(
                "PUT",
                f"/api/orders/{request.order_id}/status",
                json_body=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            )
        except httpx.TransportError as exc:
            raise OrderPersistenceError(f"order service unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise OrderPersistenceError(
                f"status update rejected for {request.order_id}: {response.status_code}"
            )
        payload = response.json()
        return payload if isinstance(payload, dict) else {"result": payload}


def build_coupon_store(settings: Settings | None = None) -> CouponStore:
    cfg = settings or get_settings()
    if cfg.coupon_backend == "http":
        return HttpCouponStore(cfg)
    return InMemoryCouponStore()
