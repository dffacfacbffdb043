"""Custom metrics for the POS order manager."""

from opentelemetry import metrics

meter = metrics.get_meter("pos-svc")

orders_submitted_counter = meter.create_counter(
    name="pos_orders_submitted_total",
    description="Total number of orders submitted by order type",
    unit="1",
)

transitions_counter = meter.create_counter(
    name="pos_order_transitions_total",
    description="Status transitions applied, by target status",
    unit="1",
)

transitions_rejected_counter = meter.create_counter(
    name="pos_order_transitions_rejected_total",
    description="Status transitions rejected by the state machine or role policy",
    unit="1",
)

settlements_counter = meter.create_counter(
    name="pos_settlements_total",
    description="Orders settled, by payment method mix",
    unit="1",
)

insufficient_payment_counter = meter.create_counter(
    name="pos_insufficient_payment_total",
    description="Settlement attempts rejected for insufficient payment",
    unit="1",
)

concurrency_conflict_counter = meter.create_counter(
    name="pos_concurrency_conflicts_total",
    description="Optimistic concurrency conflicts by entity",
    unit="1",
)

cash_sessions_counter = meter.create_counter(
    name="pos_cash_sessions_total",
    description="Cash sessions opened and closed",
    unit="1",
)

open_cash_sessions = meter.create_up_down_counter(
    name="pos_open_cash_sessions",
    description="Current number of open cash sessions",
    unit="1",
)

fold_deferred_counter = meter.create_counter(
    name="pos_cash_folds_deferred_total",
    description="Stored orders whose cash session fold failed and awaits a re-run",
    unit="1",
)

change_given_histogram = meter.create_histogram(
    name="pos_change_given_minor_units",
    description="Cash change handed back per settled order",
    unit="1",
)


def record_order_submitted(order_type: str) -> None:
    orders_submitted_counter.add(1, {"order_type": order_type})


def record_transition(order_type: str, to_status: str) -> None:
    """Record an applied status transition.

    Args:
        order_type: DELIVERY, PICKUP or DINE_IN
        to_status: Status the order moved to
    """
    transitions_counter.add(1, {"order_type": order_type, "to_status": to_status})


def record_transition_rejected(to_status: str, reason: str) -> None:
    """Record a rejected transition request.

    Args:
        to_status: Requested target status
        reason: Error code of the rejection
    """
    transitions_rejected_counter.add(1, {"to_status": to_status, "reason": reason})


def record_settlement(methods: list[str], change_minor_units: int, currency: str) -> None:
    """Record a confirmed settlement and the change handed back.

    Args:
        methods: Payment methods used, e.g. ["CASH", "PIX"]
        change_minor_units: Change due in minor units
        currency: Currency of the change amount
    """
    settlements_counter.add(1, {"methods": "+".join(sorted(set(methods)))})
    change_given_histogram.record(change_minor_units, {"currency": currency})


def record_insufficient_payment() -> None:
    insufficient_payment_counter.add(1)


def record_concurrency_conflict(entity: str) -> None:
    concurrency_conflict_counter.add(1, {"entity": entity})


def record_cash_session_opened() -> None:
    cash_sessions_counter.add(1, {"event": "opened"})
    open_cash_sessions.add(1)


def record_cash_session_closed() -> None:
    cash_sessions_counter.add(1, {"event": "closed"})
    open_cash_sessions.add(-1)


def record_fold_deferred(reason: str) -> None:
    fold_deferred_counter.add(1, {"reason": reason})
