"""Cash session reconciliation.

The module-level functions are the pure session rules: each takes a
CashSession and returns a new one or raises. ``CashSessionService`` applies
them against the store under optimistic concurrency, one scope at a time.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from restaurant_pos_service.errors import (
    ConcurrentModification,
    CurrencyMismatch,
    InsufficientPayment,
    InvalidAmount,
    SessionAlreadyClosed,
    SessionAlreadyOpen,
    SessionNotFound,
    SessionNotOpen,
)
from restaurant_pos_service.models.cash_models import (
    CashMovement,
    CashMovementType,
    CashSession,
    CashSessionStatus,
)
from restaurant_pos_service.models.money import Money
from restaurant_pos_service.models.order_models import Order, PaymentMethod
from restaurant_pos_service.observability import metrics
from restaurant_pos_service.observability.decorators import traced
from restaurant_pos_service.repositories.pos_repositories import CashSessionRepository
from restaurant_pos_service.services.payment_settlement import remaining

logger = logging.getLogger(__name__)


def open_session(
    scope_id: str, opening_balance: Money, at: datetime | None = None
) -> CashSession:
    """Create a new OPEN session for a scope.

    Whether the scope already has an open session is a store question; see
    ``CashSessionService.open_session``.

    Raises:
        InvalidAmount: If the opening balance is negative
    """
    if opening_balance.is_negative:
        raise InvalidAmount(opening_balance.amount, "opening balance cannot be negative")

    return CashSession(
        scope_id=scope_id,
        status=CashSessionStatus.OPEN,
        opened_at=at or datetime.now(UTC),
        opening_balance=opening_balance,
        cash_sales=Money.zero(opening_balance.currency),
    )


def record_settled_order(session: CashSession, order: Order) -> CashSession:
    """Fold a settled order's payments into the session.

    Cash is folded net of the change handed back, so the expected balance
    only moves by what stayed in the drawer. Every method, cash included, is
    tracked in ``sales_by_method`` for reporting. Recording an order that is
    already in the session returns the session unchanged.

    Args:
        session: Session the sale belongs to
        order: Order with confirmed payments

    Returns:
        Updated session, or ``session`` itself if the order was already recorded

    Raises:
        SessionNotOpen: If the session is closed
        InsufficientPayment: If the order has not been settled
        CurrencyMismatch: If the order and session currencies differ
    """
    if not session.is_open:
        raise SessionNotOpen(session.scope_id, session.session_id)

    if order.order_id in session.settled_orders:
        return session

    if not order.is_settled:
        raise InsufficientPayment(remaining(order.total, order.payments))

    if order.currency != session.currency:
        raise CurrencyMismatch(session.currency, order.currency)

    change = order.change_given or Money.zero(session.currency)
    by_method = dict(session.sales_by_method)

    for payment in order.payments:
        current = by_method.get(payment.method, Money.zero(session.currency))
        by_method[payment.method] = current + payment.amount

    cash_received = Money.total(
        (p.amount for p in order.payments if p.method == PaymentMethod.CASH), session.currency
    )
    net_cash = cash_received - change

    if not change.is_zero:
        by_method[PaymentMethod.CASH] = by_method[PaymentMethod.CASH] - change

    return session.model_copy(
        update={
            "settled_orders": [*session.settled_orders, order.order_id],
            "cash_sales": session.cash_sales + net_cash,
            "sales_by_method": by_method,
        }
    )


def record_movement(
    session: CashSession,
    movement_type: CashMovementType,
    amount: Money,
    description: str,
    at: datetime | None = None,
) -> CashSession:
    """Record a withdrawal from or supply into the drawer.

    Raises:
        SessionNotOpen: If the session is closed
        InvalidAmount: If the amount is not positive
        CurrencyMismatch: If the amount is not in the session currency
    """
    if not session.is_open:
        raise SessionNotOpen(session.scope_id, session.session_id)

    if not amount.is_positive:
        raise InvalidAmount(amount.amount)

    if amount.currency != session.currency:
        raise CurrencyMismatch(session.currency, amount.currency)

    movement = CashMovement(
        movement_type=movement_type,
        amount=amount,
        description=description,
        created_at=at or datetime.now(UTC),
    )
    return session.model_copy(update={"movements": [*session.movements, movement]})


def close_session(
    session: CashSession,
    counted_balance: Money | None = None,
    at: datetime | None = None,
    notes: str | None = None,
) -> CashSession:
    """Close a session and freeze its expected balance.

    Args:
        session: Open session
        counted_balance: Cash counted in the drawer, if counted
        at: Close timestamp (defaults to now, UTC)
        notes: Optional closing notes

    Returns:
        Closed session; ``difference`` is available when a count was given

    Raises:
        SessionAlreadyClosed: If the session is already closed
        CurrencyMismatch: If the counted balance is in another currency
    """
    if not session.is_open:
        raise SessionAlreadyClosed(session.session_id)

    if counted_balance is not None and counted_balance.currency != session.currency:
        raise CurrencyMismatch(session.currency, counted_balance.currency)

    return session.model_copy(
        update={
            "status": CashSessionStatus.CLOSED,
            "closed_at": at or datetime.now(UTC),
            "final_expected_balance": session.expected_balance,
            "counted_balance": counted_balance,
            "notes": notes if notes is not None else session.notes,
        }
    )


class CashSessionService:
    """Store-backed cash session operations.

    Sessions are addressed by an explicit scope key (terminal or shift id);
    there is no global current session.
    """

    def __init__(self, session_repository: CashSessionRepository, max_retries: int = 3) -> None:
        """Initialize the CashSessionService.

        Args:
            session_repository: Repository for cash sessions
            max_retries: Attempts per operation on concurrent modification
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.session_repository = session_repository
        self.max_retries = max_retries

    @traced("open_cash_session")
    async def open_session(self, scope_id: str, opening_balance: Money) -> CashSession:
        """Open a session for a scope.

        Raises:
            SessionAlreadyOpen: If the scope already has an open session
            InvalidAmount: If the opening balance is negative
        """
        existing = self.session_repository.get_open_session(scope_id)
        if existing is not None:
            raise SessionAlreadyOpen(scope_id, existing.session_id)

        session = open_session(scope_id, opening_balance)

        # The lock item settles races between two terminals opening at once
        if not self.session_repository.create_session(session):
            raise SessionAlreadyOpen(scope_id)

        metrics.record_cash_session_opened()
        logger.info(
            f"Cash session {session.session_id} opened for {scope_id} "
            f"with {opening_balance.format()}"
        )
        return session

    async def get_open_session(self, scope_id: str) -> CashSession | None:
        return self.session_repository.get_open_session(scope_id)

    async def require_open_session(self, scope_id: str) -> CashSession:
        """Return the scope's open session.

        Raises:
            SessionNotOpen: If the scope has no open session
        """
        session = self.session_repository.get_open_session(scope_id)
        if session is None:
            raise SessionNotOpen(scope_id)
        return session

    async def get_session(self, session_id: str) -> CashSession:
        """Return a session by ID.

        Raises:
            SessionNotFound: If no such session exists
        """
        session = self.session_repository.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def list_sessions(self, scope_id: str, limit: int = 20) -> list[CashSession]:
        return self.session_repository.list_sessions_for_scope(scope_id, limit=limit)

    async def _update_open_session(
        self, scope_id: str, change: Callable[[CashSession], CashSession]
    ) -> CashSession:
        """Apply a pure change to the scope's open session, retrying on conflicts."""
        for attempt in range(1, self.max_retries + 1):
            session = await self.require_open_session(scope_id)
            updated = change(session)

            if updated is session:
                return session

            updated = updated.model_copy(update={"version": session.version + 1})
            try:
                self.session_repository.save_session(updated, expected_version=session.version)
                return updated
            except ConcurrentModification:
                metrics.record_concurrency_conflict("CashSession")
                if attempt == self.max_retries:
                    raise
                logger.warning(
                    f"Cash session {session.session_id} changed concurrently, "
                    f"retrying ({attempt}/{self.max_retries})"
                )

        raise AssertionError("unreachable")  # pragma: no cover

    @traced("record_settled_order")
    async def record_settled_order(self, scope_id: str, order: Order) -> CashSession:
        """Fold a settled order into the scope's open session.

        Raises:
            SessionNotOpen: If the scope has no open session
        """
        session = await self._update_open_session(
            scope_id, lambda current: record_settled_order(current, order)
        )
        logger.info(f"Order {order.order_id} recorded in cash session {session.session_id}")
        return session

    @traced("record_cash_movement")
    async def record_movement(
        self,
        scope_id: str,
        movement_type: CashMovementType,
        amount: Money,
        description: str,
    ) -> CashSession:
        """Record a withdrawal or supply in the scope's open session.

        Raises:
            SessionNotOpen: If the scope has no open session
            InvalidAmount: If the amount is not positive
        """
        session = await self._update_open_session(
            scope_id,
            lambda current: record_movement(current, movement_type, amount, description),
        )
        logger.info(
            f"{movement_type.value} of {amount.format()} recorded in cash session "
            f"{session.session_id}"
        )
        return session

    @traced("close_cash_session")
    async def close_session(
        self,
        session_id: str,
        counted_balance: Money | None = None,
        notes: str | None = None,
    ) -> CashSession:
        """Close a session, freezing its expected balance.

        Args:
            session_id: Session to close
            counted_balance: Cash counted in the drawer, if counted
            notes: Optional closing notes

        Returns:
            The closed session

        Raises:
            SessionNotFound: If no such session exists
            SessionAlreadyClosed: If the session is already closed
        """
        for attempt in range(1, self.max_retries + 1):
            session = await self.get_session(session_id)
            closed = close_session(session, counted_balance, notes=notes)
            closed = closed.model_copy(update={"version": session.version + 1})

            try:
                self.session_repository.close_session(closed, expected_version=session.version)
            except ConcurrentModification:
                metrics.record_concurrency_conflict("CashSession")
                if attempt == self.max_retries:
                    raise
                logger.warning(
                    f"Cash session {session_id} changed while closing, "
                    f"retrying ({attempt}/{self.max_retries})"
                )
                continue

            metrics.record_cash_session_closed()
            difference = closed.difference
            logger.info(
                f"Cash session {session_id} closed with expected balance "
                f"{closed.expected_balance.format()}"
                + (f", difference {difference.format()}" if difference is not None else "")
            )
            return closed

        raise AssertionError("unreachable")  # pragma: no cover
