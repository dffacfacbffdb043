"""Ports for the external collaborators of the order manager.

The core defers two decisions to services it does not own: whether a role
may request a status change, and how captured payments on a cancelled order
are voided. Expected failures are reported through return values (False) rather than
exceptions, and the orchestration layer decides what to do with them.
"""

from abc import ABC, abstractmethod

from restaurant_pos_service.models.order_models import Order, OrderStatus


class TransitionPolicy(ABC):
    """Decides which roles may request which status transitions.

    The policy only answers the authorization question. Whether the
    transition is valid for the order's current status and type is enforced
    by the state machine regardless of the policy's answer.
    """

    @abstractmethod
    async def is_allowed(self, acting_role: str, order: Order, target: OrderStatus) -> bool:
        """Check whether ``acting_role`` may move ``order`` to ``target``.

        Args:
            acting_role: Role of the operator making the request
            order: Order as currently stored
            target: Requested status

        Returns:
            bool: True if the role may request the transition
        """
        pass


class RefundGateway(ABC):
    """Starts the refund/void workflow for payments on a cancelled order."""

    def __init__(self, gateway_name: str) -> None:
        """Initialize the refund gateway.

        Args:
            gateway_name: Name of the payments provider behind the gateway
        """
        self.gateway_name = gateway_name

    @abstractmethod
    async def request_void(self, order: Order, reason: str) -> bool:
        """Ask the payments provider to void or refund an order's payments.

        Args:
            order: Cancelled order still carrying its captured payments
            reason: Operator-facing reason recorded with the request

        Returns:
            bool: True if the request was accepted, False otherwise

        Note:
            Returns False on expected failures (API errors, network issues).
            The order keeps its payments either way; the service records the
            outcome in ``refund_status``.
        """
        pass
