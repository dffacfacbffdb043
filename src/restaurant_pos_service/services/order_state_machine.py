"""Order lifecycle state machine.

The full transition graph lives in ``TRANSITION_TABLE``, keyed by
``(current status, order type)``. Callers request a target status and the
machine either returns a new Order or raises InvalidTransition; it never
mutates its input, so a caller that lost an optimistic-concurrency race can
simply re-read the order and apply the same request again.
"""

from datetime import UTC, datetime

from restaurant_pos_service.errors import InvalidTransition
from restaurant_pos_service.models.order_models import (
    Order,
    OrderStatus,
    OrderType,
    RefundStatus,
    StatusChange,
)

_NEW = OrderStatus.NEW
_IN_PREPARATION = OrderStatus.IN_PREPARATION
_READY = OrderStatus.READY
_OUT_FOR_DELIVERY = OrderStatus.OUT_FOR_DELIVERY
_COMPLETED = OrderStatus.COMPLETED
_CANCELLED = OrderStatus.CANCELLED

TRANSITION_TABLE: dict[tuple[OrderStatus, OrderType], frozenset[OrderStatus]] = {
    # Delivery orders have an out-for-delivery leg after READY
    (_NEW, OrderType.DELIVERY): frozenset({_IN_PREPARATION, _CANCELLED}),
    (_IN_PREPARATION, OrderType.DELIVERY): frozenset({_READY, _CANCELLED}),
    (_READY, OrderType.DELIVERY): frozenset({_OUT_FOR_DELIVERY, _COMPLETED, _CANCELLED}),
    (_OUT_FOR_DELIVERY, OrderType.DELIVERY): frozenset({_COMPLETED, _CANCELLED}),
    (_COMPLETED, OrderType.DELIVERY): frozenset(),
    (_CANCELLED, OrderType.DELIVERY): frozenset(),
    # Pickup
    (_NEW, OrderType.PICKUP): frozenset({_IN_PREPARATION, _CANCELLED}),
    (_IN_PREPARATION, OrderType.PICKUP): frozenset({_READY, _CANCELLED}),
    (_READY, OrderType.PICKUP): frozenset({_COMPLETED, _CANCELLED}),
    (_OUT_FOR_DELIVERY, OrderType.PICKUP): frozenset(),
    (_COMPLETED, OrderType.PICKUP): frozenset(),
    (_CANCELLED, OrderType.PICKUP): frozenset(),
    # Dine-in
    (_NEW, OrderType.DINE_IN): frozenset({_IN_PREPARATION, _CANCELLED}),
    (_IN_PREPARATION, OrderType.DINE_IN): frozenset({_READY, _CANCELLED}),
    (_READY, OrderType.DINE_IN): frozenset({_COMPLETED, _CANCELLED}),
    (_OUT_FOR_DELIVERY, OrderType.DINE_IN): frozenset(),
    (_COMPLETED, OrderType.DINE_IN): frozenset(),
    (_CANCELLED, OrderType.DINE_IN): frozenset(),
}


def allowed_transitions(status: OrderStatus, order_type: OrderType) -> frozenset[OrderStatus]:
    return TRANSITION_TABLE.get((status, order_type), frozenset())


def can_transition(order: Order, target: OrderStatus) -> bool:
    return target in allowed_transitions(order.status, order.order_type)


def transition(
    order: Order,
    target: OrderStatus,
    at: datetime | None = None,
    acting_role: str | None = None,
    notes: str | None = None,
) -> Order:
    """Move an order to ``target``.

    Args:
        order: Current order state
        target: Requested status
        at: Transition timestamp (defaults to now, UTC)
        acting_role: Role that requested the change, kept in the history
        notes: Optional operator notes for the history entry

    Returns:
        A new Order with the status changed and one history entry appended.
        Cancelling an order that already holds payments keeps the payments
        and flags ``refund_status`` as PENDING for the void workflow.

    Raises:
        InvalidTransition: If ``target`` is not allowed from the current
            status for this order type
    """
    if not can_transition(order, target):
        raise InvalidTransition(
            from_status=order.status.value,
            to_status=target.value,
            order_type=order.order_type.value,
        )

    change = StatusChange(
        status=target,
        changed_at=at or datetime.now(UTC),
        acting_role=acting_role,
        notes=notes,
    )
    update: dict = {
        "status": target,
        "status_history": [*order.status_history, change],
    }

    if target == OrderStatus.CANCELLED and order.payments:
        update["refund_status"] = RefundStatus.PENDING

    return order.model_copy(update=update)
