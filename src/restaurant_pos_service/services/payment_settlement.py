"""Multi-instrument payment settlement.

Pure functions over an order total and a list of proposed payments. Nothing
here touches storage: ``confirm`` returns a new Order that the caller persists
under an optimistic version check.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from restaurant_pos_service.errors import (
    InsufficientPayment,
    InvalidAmount,
    InvalidTransition,
    OrderAlreadySettled,
)
from restaurant_pos_service.models.money import Money
from restaurant_pos_service.models.order_models import (
    Order,
    OrderStatus,
    Payment,
    PaymentMethod,
)

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    """Outcome of a confirmed settlement."""

    order: Order
    change_due: Money
    amount_paid: Money


def total_paid(payments: Sequence[Payment], currency: str) -> Money:
    return Money.total((payment.amount for payment in payments), currency)


def remaining(total: Money, payments: Sequence[Payment]) -> Money:
    """Total minus everything paid; negative means overpayment."""
    return total.subtract(total_paid(payments, total.currency))


def add_payment(
    payments: Sequence[Payment],
    method: PaymentMethod,
    amount: Money,
    reference: str | None = None,
) -> list[Payment]:
    """Append a payment entry.

    There is no upper bound per entry; overpaying in cash is how change
    happens.

    Returns:
        A new list with the payment appended

    Raises:
        InvalidAmount: If the amount is zero or negative
    """
    if not amount.is_positive:
        raise InvalidAmount(amount.amount)
    return [*payments, Payment(method=method, amount=amount, reference=reference)]


def is_settled(total: Money, payments: Sequence[Payment]) -> bool:
    return not remaining(total, payments).is_positive


def change_due(total: Money, payments: Sequence[Payment]) -> Money:
    """Change owed to the customer.

    Non-cash instruments are applied to the total first and never produce
    change. Change is the aggregate of the cash entries minus whatever of the
    total the non-cash entries left uncovered, floored at zero.
    """
    currency = total.currency
    zero = Money.zero(currency)

    non_cash = total_paid([p for p in payments if p.method != PaymentMethod.CASH], currency)
    cash = total_paid([p for p in payments if p.method == PaymentMethod.CASH], currency)

    cash_due = max(total - non_cash, zero)
    return max(cash - cash_due, zero)


def confirm(order: Order, payments: Sequence[Payment], at: datetime | None = None) -> SettlementResult:
    """Attach payments to an order once they cover its total.

    Args:
        order: Order being settled
        payments: Complete list of payment entries for the order
        at: Settlement timestamp (defaults to now, UTC)

    Returns:
        SettlementResult with the settled order and the change to hand back

    Raises:
        InvalidAmount: If any payment entry is zero or negative
        InvalidTransition: If the order is cancelled
        OrderAlreadySettled: If payments were already confirmed for the order
        InsufficientPayment: With the remaining amount, if payments fall short
    """
    for payment in payments:
        if not payment.amount.is_positive:
            raise InvalidAmount(payment.amount.amount, "payment amounts must be positive")

    if order.status == OrderStatus.CANCELLED:
        raise InvalidTransition(
            from_status=order.status.value,
            to_status="SETTLED",
            order_type=order.order_type.value,
        )

    if order.is_settled:
        raise OrderAlreadySettled(order.order_id)

    outstanding = remaining(order.total, payments)
    if outstanding.is_positive:
        logger.warning(f"Order {order.order_id} is short by {outstanding.format()}")
        raise InsufficientPayment(outstanding)

    change = change_due(order.total, payments)
    settled = order.model_copy(
        update={
            "payments": list(payments),
            "change_given": change,
            "settled_at": at or datetime.now(UTC),
        }
    )

    return SettlementResult(
        order=settled,
        change_due=change,
        amount_paid=total_paid(payments, order.currency),
    )
