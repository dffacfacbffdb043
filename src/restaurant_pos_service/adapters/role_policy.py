"""Static role-to-transition policy."""

import logging

from restaurant_pos_service.adapters.base_adapter import TransitionPolicy
from restaurant_pos_service.models.order_models import Order, OrderStatus

logger = logging.getLogger(__name__)

DEFAULT_ROLE_GRANTS: dict[str, frozenset[OrderStatus]] = {
    "manager": frozenset(OrderStatus),
    "cashier": frozenset(
        {
            OrderStatus.IN_PREPARATION,
            OrderStatus.READY,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.COMPLETED,
        }
    ),
    "kitchen": frozenset({OrderStatus.IN_PREPARATION, OrderStatus.READY}),
    "courier": frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.COMPLETED}),
}


class StaticRolePolicy(TransitionPolicy):
    """Role policy backed by an in-memory grants table.

    Only managers may cancel with the default grants. Role names are matched
    case-insensitively; unknown roles are denied everything.
    """

    def __init__(self, grants: dict[str, frozenset[OrderStatus]] | None = None) -> None:
        source = grants if grants is not None else DEFAULT_ROLE_GRANTS
        self.grants = {role.lower(): frozenset(targets) for role, targets in source.items()}

    async def is_allowed(self, acting_role: str, order: Order, target: OrderStatus) -> bool:
        allowed = target in self.grants.get(acting_role.lower(), frozenset())
        if not allowed:
            logger.info(
                f"Role {acting_role} denied {target.value} on order {order.order_id}"
            )
        return allowed
