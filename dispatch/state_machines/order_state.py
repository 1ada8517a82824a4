from typing import Dict, FrozenSet, Optional
from orders.models import OrderStatus

class OrderStateException(Exception):
    """Raised when an invalid state transition is attempted."""
    pass

# Canonical lifecycle:
#   PROCESSING -> ACCEPTED -> OUT_FOR_DELIVERY -> DELIVERED
#   PROCESSING -> CANCELLED
#   DELIVERED -> REFUND_REQUESTED -> REFUND_SUCCEEDED
# A rider may also claim an order straight from PROCESSING.
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.ACCEPTED,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUND_REQUESTED}),
    OrderStatus.REFUND_REQUESTED: frozenset({OrderStatus.REFUND_SUCCEEDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUND_SUCCEEDED: frozenset(),
}

# Statuses a rider can claim, in the order claims are attempted.
ASSIGNABLE_STATUSES = (OrderStatus.ACCEPTED, OrderStatus.PROCESSING)


def _as_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise OrderStateException(f"Unknown order status: {value!r}")


def can_transition(current, target) -> bool:
    return _as_status(target) in ALLOWED_TRANSITIONS[_as_status(current)]


def ensure_transition(current, target, order_id: Optional[str] = None) -> OrderStatus:
    """
    Validates current -> target and returns the target as an OrderStatus.
    """
    current_status = _as_status(current)
    target_status = _as_status(target)
    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        label = f"order {order_id}" if order_id else "order"
        raise OrderStateException(
            f"Cannot move {label} from {current_status.value} to {target_status.value}"
        )
    return target_status


def is_assignable(status) -> bool:
    return _as_status(status) in ASSIGNABLE_STATUSES


def is_terminal(status) -> bool:
    return not ALLOWED_TRANSITIONS[_as_status(status)]


def commits_stock(current, target) -> bool:
    """
    Stock leaves the shelf when the seller hands the order over (ACCEPTED),
    or when a rider claims an order the seller never accepted.
    """
    current_status = _as_status(current)
    target_status = _as_status(target)
    if target_status == OrderStatus.ACCEPTED:
        return True
    return current_status == OrderStatus.PROCESSING and target_status == OrderStatus.OUT_FOR_DELIVERY


def restores_stock(target) -> bool:
    return _as_status(target) == OrderStatus.REFUND_SUCCEEDED
