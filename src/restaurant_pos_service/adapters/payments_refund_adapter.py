"""Refund gateway backed by the Payments Service API.

Voids are requested per order; the Payments Service owns the actual
reversal of card, PIX and voucher captures and the cash refund record.
"""

import logging
from typing import Any

import httpx

from restaurant_pos_service.adapters.base_adapter import RefundGateway
from restaurant_pos_service.models.order_models import Order

logger = logging.getLogger(__name__)


class PaymentsServiceRefundGateway(RefundGateway):
    """Adapter for the Payments Service void endpoint.

    Authenticates with a service API key in the ``X-API-Key`` header.
    """

    def __init__(self, base_url: str, api_key: str, timeout_seconds: float = 10.0) -> None:
        """Initialize the refund gateway.

        Args:
            base_url: Base URL of the Payments Service API
            api_key: API key for service-to-service authentication
            timeout_seconds: Request timeout
        """
        super().__init__("payments-service")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    def build_void_request(self, order: Order, reason: str) -> dict[str, Any]:
        """Build the void request body for an order.

        Amounts are sent in minor units with their currency.

        Args:
            order: Cancelled order carrying captured payments
            reason: Cancellation reason

        Returns:
            dict: Request payload
        """
        return {
            "order_id": order.order_id,
            "order_code": order.code,
            "scope_id": order.scope_id,
            "reason": reason,
            "currency": order.currency,
            "change_given": order.change_given.amount if order.change_given else 0,
            "payments": [
                {
                    "method": payment.method.value,
                    "amount": payment.amount.amount,
                    "reference": payment.reference,
                }
                for payment in order.payments
            ],
        }

    async def request_void(self, order: Order, reason: str) -> bool:
        """Post a void request to the Payments Service.

        The order id doubles as the idempotency key so a retried cancellation
        never voids twice.

        Args:
            order: Cancelled order carrying captured payments
            reason: Cancellation reason

        Returns:
            bool: True if the request was accepted, False otherwise
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.base_url}/voids",
                    json=self.build_void_request(order, reason),
                    headers={
                        "X-API-Key": self.api_key,
                        "Idempotency-Key": f"void-{order.order_id}",
                    },
                )

                if response.status_code in (200, 201, 202):
                    logger.info(f"Void requested for order {order.order_id}")
                    return True

                logger.error(
                    f"Void request for order {order.order_id} failed: {response.status_code}"
                )
                return False

        except httpx.HTTPError as e:
            logger.error(f"Void request for order {order.order_id} failed: {e}")
            return False
