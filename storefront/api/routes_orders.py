from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.api.utils import checkout_context, now_utc, order_view
from storefront.checkout.flow import CheckoutFlow
from storefront.checkout.models import DeliverySelection, PaymentSelection, ShippingAddress
from storefront.core.config import get_settings
from storefront.core.errors import OrderPersistenceError
from storefront.orders.aggregates import Order, OrderStatus
from storefront.orders.lifecycle import OrderLifecycle
from storefront.persistence.pg import get_session
from storefront.persistence.repository import SqlOrderRepository
from storefront.pricing.aggregator import CartItem
from storefront.pricing.coupons import normalize_code

router = APIRouter(tags=["orders"])


class PlaceOrderRequest(BaseModel):
    order_number: str | None = Field(default=None, min_length=1, max_length=64)
    items: list[CartItem] = Field(min_length=1)
    address: ShippingAddress
    delivery: DeliverySelection = Field(default_factory=DeliverySelection)
    payment: PaymentSelection
    coupon_code: str | None = None
    shown_total: Decimal | None = Field(default=None, ge=0)


class StatusChangeRequest(BaseModel):
    status: OrderStatus
    note: str | None = None
    tracking_info: dict[str, Any] | None = None


def _repository(session: Session) -> tuple[SqlOrderRepository, OrderLifecycle]:
    lifecycle = OrderLifecycle.from_settings(get_settings())
    return SqlOrderRepository(session, lifecycle=lifecycle), lifecycle


def _same_submission(order: Order, request: PlaceOrderRequest) -> bool:
    coupon_code = order.coupon.code if order.coupon is not None else None
    requested_code = normalize_code(request.coupon_code) if request.coupon_code else None
    return (
        list(order.items) == request.items
        and order.shipping_address == request.address
        and coupon_code == requested_code
    )


@router.post("/orders", status_code=201)
def place_order(request: PlaceOrderRequest, session: Session = Depends(get_session)):
    settings = get_settings()
    ctx = checkout_context(session)
    repository, lifecycle = _repository(session)
    now = now_utc()

    # A retried placement must not re-run coupon checks against usage it already consumed.
    if request.order_number:
        existing = repository.find(request.order_number)
        if existing is not None:
            if not _same_submission(existing, request):
                raise OrderPersistenceError(
                    f"order number {request.order_number} is already used by a different order"
                )
            return order_view(existing, lifecycle)

    flow = CheckoutFlow.start(request.items, ctx, now, settings.tax_rate, order_number=request.order_number)
    flow.set_address(request.address, now).unwrap()
    flow.advance(now).unwrap()
    flow.select_delivery(
        now, request.delivery.method, request.delivery.slot, request.delivery.requested_date
    ).unwrap()
    flow.advance(now).unwrap()
    flow.select_payment(request.payment, now).unwrap()
    flow.advance(now).unwrap()
    if request.coupon_code:
        flow.apply_coupon(request.coupon_code, now).unwrap()

    order = flow.place(repository, now, shown_total=request.shown_total).unwrap()
    return order_view(order, lifecycle)


@router.get("/orders/{order_number}")
def get_order(order_number: str, session: Session = Depends(get_session)):
    repository, lifecycle = _repository(session)
    return order_view(repository.get(order_number), lifecycle)


@router.put("/orders/{order_number}/status")
def change_order_status(
    order_number: str,
    request: StatusChangeRequest,
    session: Session = Depends(get_session),
):
    repository, lifecycle = _repository(session)
    order = repository.apply_status(
        order_number,
        request.status,
        now_utc(),
        note=request.note,
        tracking_info=request.tracking_info,
    ).unwrap()
    return order_view(order, lifecycle)
