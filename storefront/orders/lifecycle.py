from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from storefront.core.clock import ensure_utc
from storefront.core.errors import InvalidTransitionError, Result
from storefront.orders.aggregates import Order, OrderStatus, StatusEntry

logger = logging.getLogger(__name__)

FORWARD_STAGES: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)
AFTER_DELIVERY: frozenset[OrderStatus] = frozenset({OrderStatus.RETURNED, OrderStatus.REFUNDED})
CLOSED: frozenset[OrderStatus] = frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED, OrderStatus.REFUNDED})
TERMINAL: frozenset[OrderStatus] = CLOSED | {OrderStatus.DELIVERED}

NO_LONGER_MODIFIABLE = "order can no longer be modified"


class OrderLifecycle:
    """Post-placement status machine; every accepted move appends to status_history."""

    def __init__(self, return_window_days: int = 30):
        self.return_window = timedelta(days=return_window_days)

    @classmethod
    def from_settings(cls, settings) -> OrderLifecycle:
        return cls(return_window_days=settings.return_window_days)

    def is_terminal(self, order: Order) -> bool:
        return order.status in TERMINAL

    def can_cancel(self, order: Order) -> bool:
        return order.status not in TERMINAL

    def can_return(self, order: Order, now: datetime) -> bool:
        if order.status != OrderStatus.DELIVERED:
            return False
        delivered_at = order.reached_at(OrderStatus.DELIVERED) or order.last_changed_at
        return ensure_utc(now) - ensure_utc(delivered_at) <= self.return_window

    def _reject_reason(self, order: Order, target: OrderStatus, now: datetime) -> str | None:
        current = order.status
        if target == current:
            return f"order is already {current.value}"
        if current in CLOSED:
            return NO_LONGER_MODIFIABLE
        if current == OrderStatus.DELIVERED:
            if target not in AFTER_DELIVERY:
                return NO_LONGER_MODIFIABLE
            if target == OrderStatus.RETURNED and not self.can_return(order, now):
                return f"return window of {self.return_window.days} days has elapsed"
            return None
        if target in AFTER_DELIVERY:
            return "only delivered orders can be returned or refunded"
        if target == OrderStatus.CANCELLED:
            return None
        if FORWARD_STAGES.index(target) < FORWARD_STAGES.index(current):
            return "status cannot move backwards"
        return None

    def transition(
        self,
        order: Order,
        new_status: OrderStatus | str,
        now: datetime,
        note: str | None = None,
        tracking_info: dict[str, Any] | None = None,
    ) -> Result[Order]:
        try:
            target = OrderStatus(new_status)
        except ValueError:
            logger.warning("rejected status change order=%s to unknown status %r", order.order_number, new_status)
            return Result.failure(InvalidTransitionError(order.status.value, str(new_status), "unknown status"))
        now = ensure_utc(now)

        reason = self._reject_reason(order, target, now)
        if reason is None and now <= ensure_utc(order.last_changed_at):
            reason = "timestamp must be later than the last status change"
        if reason is not None:
            logger.warning(
                "rejected status change order=%s from=%s to=%s: %s",
                order.order_number,
                order.status.value,
                target.value,
                reason,
            )
            return Result.failure(InvalidTransitionError(order.status.value, target.value, reason))

        merged_tracking = order.tracking_info
        if tracking_info:
            merged_tracking = {**(order.tracking_info or {}), **tracking_info}

        updated = replace(
            order,
            status_history=order.status_history + (StatusEntry(status=target, timestamp=now, note=note),),
            tracking_info=merged_tracking,
        )
        logger.info("order=%s status %s -> %s", order.order_number, order.status.value, target.value)
        return Result.success(updated)

    def progress(self, order: Order) -> float:
        stage = OrderStatus.PENDING
        for entry in order.status_history:
            if entry.status in FORWARD_STAGES:
                stage = entry.status
        if order.status in AFTER_DELIVERY:
            stage = OrderStatus.DELIVERED
        return FORWARD_STAGES.index(stage) / (len(FORWARD_STAGES) - 1)
