"""Order orchestration: submission, settlement and status transitions."""

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from restaurant_pos_service.adapters.base_adapter import RefundGateway, TransitionPolicy
from restaurant_pos_service.errors import (
    ConcurrentModification,
    CurrencyMismatch,
    InsufficientPayment,
    InvalidAmount,
    InvalidOrderRequest,
    InvalidTransition,
    OrderNotFound,
    POSError,
    ProductUnavailable,
    TransitionNotPermitted,
    UnknownOption,
)
from restaurant_pos_service.models.catalog_models import Product
from restaurant_pos_service.models.money import DEFAULT_CURRENCY, Money
from restaurant_pos_service.models.order_models import (
    CartLineItem,
    Order,
    OrderStatus,
    OrderType,
    Payment,
    RefundStatus,
    StatusChange,
    compute_total,
)
from restaurant_pos_service.observability import metrics
from restaurant_pos_service.observability.decorators import traced
from restaurant_pos_service.repositories.pos_repositories import OrderRepository
from restaurant_pos_service.services import order_state_machine, payment_settlement
from restaurant_pos_service.services.cash_session_service import CashSessionService
from restaurant_pos_service.services.catalog_service_client import CatalogServiceClient
from restaurant_pos_service.services.modifier_selector import resolve_selection
from restaurant_pos_service.services.payment_settlement import SettlementResult

logger = logging.getLogger(__name__)

BOARD_STATUSES = (
    OrderStatus.NEW,
    OrderStatus.IN_PREPARATION,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
)


def new_order_id() -> str:
    return str(uuid.uuid4())


class OrderService:
    """Service composing the pure order rules with the order store.

    Every mutation follows the same pattern: read the order, apply a pure
    function, write the result back conditioned on the version that was read.
    A lost race raises ConcurrentModification from the store; the operation is
    then re-read and re-applied up to ``max_retries`` times before the
    conflict is surfaced to the caller.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        cash_session_service: CashSessionService,
        catalog_client: CatalogServiceClient,
        transition_policy: TransitionPolicy,
        refund_gateway: RefundGateway,
        max_retries: int = 3,
        currency: str = DEFAULT_CURRENCY,
    ) -> None:
        """Initialize the OrderService.

        Args:
            order_repository: Repository for orders and order codes
            cash_session_service: Service owning the scope cash sessions
            catalog_client: Client used to re-validate submitted line items
            transition_policy: Role policy for status transitions
            refund_gateway: Collaborator that voids payments of cancelled orders
            max_retries: Attempts per operation on concurrent modification
            currency: Currency every order of this service is priced in
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.order_repository = order_repository
        self.cash_session_service = cash_session_service
        self.catalog_client = catalog_client
        self.transition_policy = transition_policy
        self.refund_gateway = refund_gateway
        self.max_retries = max_retries
        self.currency = currency

    async def get_order(self, order_id: str) -> Order:
        """Return an order from the store.

        Raises:
            OrderNotFound: If no such order exists
        """
        order = self.order_repository.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def list_board(
        self, statuses: list[OrderStatus] | None = None, limit: int = 50
    ) -> dict[OrderStatus, list[Order]]:
        """Orders grouped by status for the status board.

        The board polls this; it is a snapshot of the store and may be stale
        by the next poll.

        Args:
            statuses: Columns to load (defaults to every non-terminal status)
            limit: Maximum orders per column

        Returns:
            Mapping of status to its most recent orders
        """
        columns = statuses if statuses else list(BOARD_STATUSES)
        return {
            status: self.order_repository.list_orders_by_status(status, limit=limit)
            for status in columns
        }

    def _check_line_currency(self, line: CartLineItem) -> None:
        if line.unit_price.currency != self.currency:
            raise CurrencyMismatch(self.currency, line.unit_price.currency)
        for option in line.selected_options:
            if option.price_delta.currency != self.currency:
                raise CurrencyMismatch(self.currency, option.price_delta.currency)

    def _revalidate_line(self, line: CartLineItem, product: Product | None) -> None:
        """Check a client-built line against the current catalog definition.

        Prices stay as snapshotted in the cart; what is checked is that the
        product is sellable and that the selections satisfy every group.
        """
        if product is None or not product.available:
            raise ProductUnavailable(line.product_id)

        self._check_line_currency(line)

        for option in line.selected_options:
            if product.get_group(option.group_id) is None:
                raise UnknownOption(option.group_id, option.id)

        for group in product.option_groups:
            option_ids = [o.id for o in line.selected_options if o.group_id == group.id]
            resolve_selection(group, option_ids)

    @traced("submit_order")
    async def submit_order(
        self,
        scope_id: str,
        order_type: OrderType,
        line_items: list[CartLineItem],
        delivery_fee: Money | None = None,
        table_ref: str | None = None,
        service_fee_bps: int = 0,
        notes: str | None = None,
    ) -> Order:
        """Create an order in NEW from a terminal's cart.

        The total is computed here, once, and never recomputed afterwards.

        Args:
            scope_id: Terminal or shift submitting the order
            order_type: DELIVERY, PICKUP or DINE_IN
            line_items: Cart line items (snapshots taken by the terminal)
            delivery_fee: Delivery fee (DELIVERY only)
            table_ref: Table identifier (DINE_IN only)
            service_fee_bps: Service fee in basis points of the subtotal (DINE_IN only)
            notes: Optional order notes

        Returns:
            The stored order

        Raises:
            InvalidOrderRequest: If the cart is empty or fields do not fit the order type
            InvalidAmount: If a fee is negative or the order total is not positive
            ProductUnavailable: If a product no longer exists or cannot be sold
            UnknownOption: If a selection does not belong to the product
            TooManySelections: If a group has more selections than allowed
            MissingRequiredSelection: If a required group is under-selected
        """
        if not line_items:
            raise InvalidOrderRequest("An order needs at least one line item")

        zero = Money.zero(self.currency)
        delivery_fee = delivery_fee or zero

        if order_type != OrderType.DELIVERY and not delivery_fee.is_zero:
            raise InvalidOrderRequest("delivery_fee only applies to DELIVERY orders")
        if delivery_fee.is_negative:
            raise InvalidAmount(delivery_fee.amount, "delivery fee cannot be negative")
        if delivery_fee.currency != self.currency:
            raise CurrencyMismatch(self.currency, delivery_fee.currency)
        if order_type != OrderType.DINE_IN and table_ref is not None:
            raise InvalidOrderRequest("table_ref only applies to DINE_IN orders")
        if order_type != OrderType.DINE_IN and service_fee_bps:
            raise InvalidOrderRequest("A service fee only applies to DINE_IN orders")
        if service_fee_bps < 0:
            raise InvalidAmount(service_fee_bps, "service fee cannot be negative")

        products = await self.catalog_client.get_products([line.product_id for line in line_items])
        for line in line_items:
            self._revalidate_line(line, products.get(line.product_id))

        subtotal = Money.total((line.line_total for line in line_items), self.currency)
        service_fee = subtotal.percent_of(service_fee_bps) if order_type == OrderType.DINE_IN else zero
        total = compute_total(line_items, order_type, delivery_fee, service_fee, self.currency)
        if not total.is_positive:
            raise InvalidAmount(total.amount, "order total must be greater than zero")

        created_at = datetime.now(UTC)
        code = self.order_repository.next_order_code(scope_id, created_at.date())

        order = Order(
            order_id=new_order_id(),
            code=code,
            scope_id=scope_id,
            order_type=order_type,
            status=OrderStatus.NEW,
            line_items=line_items,
            delivery_fee=delivery_fee,
            service_fee=service_fee,
            table_ref=table_ref,
            total=total,
            created_at=created_at,
            status_history=[StatusChange(status=OrderStatus.NEW, changed_at=created_at)],
            notes=notes,
        )
        self.order_repository.create_order(order)

        metrics.record_order_submitted(order_type.value)
        logger.info(
            f"Order {order.order_id} ({code}) submitted by {scope_id}: "
            f"{order_type.value} {total.format()}"
        )
        return order

    @staticmethod
    def _fold_due(order: Order) -> bool:
        return (
            order.status == OrderStatus.COMPLETED
            and order.is_settled
            and order.cash_session_id is None
        )

    async def _require_session_if_fold_due(self, order: Order) -> None:
        """Fail before the order write when the sale has no session to go to.

        Raises:
            SessionNotOpen: If the order will need folding and its scope has
                no open cash session
        """
        if self._fold_due(order):
            await self.cash_session_service.require_open_session(order.scope_id)

    @traced("fold_settled_order")
    async def fold_settled_order(self, order_id: str) -> Order:
        """Record a stored, settled and completed order in its scope's cash session.

        Runs after the order write, against the stored order, so the session
        only ever sees payments that were actually persisted. Both steps are
        idempotent: the session ignores an order id it already holds, and the
        order keeps the first ``cash_session_id`` written. A fold that failed
        part way can therefore simply be run again.

        Returns:
            The stored order, with ``cash_session_id`` set once folded

        Raises:
            OrderNotFound: If no such order exists
            SessionNotOpen: If the scope has no open cash session
        """
        order = await self.get_order(order_id)
        if not self._fold_due(order):
            return order

        session = await self.cash_session_service.record_settled_order(order.scope_id, order)

        async def change(current: Order) -> Order:
            if current.cash_session_id is not None:
                return current
            return current.model_copy(update={"cash_session_id": session.session_id})

        return await self._mutate_with_retry(order_id, change)

    async def _fold_after_write(self, order: Order) -> Order:
        """Fold a just-stored order, leaving it for a later re-run on failure.

        The order write already succeeded, so a failure here must not be
        reported as a failed operation.
        """
        if not self._fold_due(order):
            return order

        try:
            return await self.fold_settled_order(order.order_id)
        except POSError as e:
            metrics.record_fold_deferred(e.code)
            logger.error(
                f"Order {order.order_id} is stored but not yet recorded in a cash session "
                f"of {order.scope_id}; run fold_settled_order again: {e}"
            )
            return order

    async def _mutate_with_retry(
        self, order_id: str, change: Callable[[Order], Awaitable[Order]]
    ) -> Order:
        """Read, change and conditionally write an order, retrying on conflict.

        Args:
            order_id: Order to change
            change: Async function from the current order to the new one;
                exceptions it raises abort the operation with nothing written

        Returns:
            The stored new order
        """
        for attempt in range(1, self.max_retries + 1):
            current = await self.get_order(order_id)
            updated = await change(current)
            updated = updated.model_copy(update={"version": current.version + 1})

            try:
                self.order_repository.save_order(updated, expected_version=current.version)
                return updated
            except ConcurrentModification:
                metrics.record_concurrency_conflict("Order")
                if attempt == self.max_retries:
                    logger.warning(f"Order {order_id} still conflicting after {attempt} attempts")
                    raise
                logger.info(f"Order {order_id} changed concurrently, retrying ({attempt})")

        raise AssertionError("unreachable")  # pragma: no cover

    @traced("settle_order")
    async def settle_order(self, order_id: str, payments: list[Payment]) -> SettlementResult:
        """Confirm payments for an order.

        Args:
            order_id: Order being paid
            payments: Every payment entry for the order

        Returns:
            SettlementResult with the stored order and the change to hand back

        Raises:
            InsufficientPayment: With the remaining amount; nothing is stored
            OrderAlreadySettled: If the order was already paid
            InvalidTransition: If the order is cancelled
            SessionNotOpen: If the order is already completed and its scope has
                no open cash session to record the sale in
        """
        results: list[SettlementResult] = []

        async def change(order: Order) -> Order:
            try:
                result = payment_settlement.confirm(order, payments)
            except InsufficientPayment:
                metrics.record_insufficient_payment()
                raise
            results.append(result)
            await self._require_session_if_fold_due(result.order)
            return result.order

        stored = await self._mutate_with_retry(order_id, change)
        stored = await self._fold_after_write(stored)
        result = results[-1]

        metrics.record_settlement(
            [payment.method.value for payment in payments],
            result.change_due.amount,
            result.change_due.currency,
        )
        logger.info(
            f"Order {order_id} settled with {result.amount_paid.format()}, "
            f"change {result.change_due.format()}"
        )
        return SettlementResult(order=stored, change_due=result.change_due, amount_paid=result.amount_paid)

    @traced("request_transition")
    async def request_transition(
        self,
        order_id: str,
        target_status: OrderStatus,
        acting_role: str,
        notes: str | None = None,
    ) -> Order:
        """Move an order to ``target_status`` on behalf of a role.

        Args:
            order_id: Order to change
            target_status: Requested status
            acting_role: Role of the requesting operator
            notes: Optional notes kept in the status history

        Returns:
            The stored order

        Raises:
            TransitionNotPermitted: If the role may not request the target
            InvalidTransition: If the target is not allowed from the current
                status for this order type
            SessionNotOpen: If completing a paid order with no open cash session
        """

        async def change(order: Order) -> Order:
            if not await self.transition_policy.is_allowed(acting_role, order, target_status):
                metrics.record_transition_rejected(target_status.value, TransitionNotPermitted.code)
                raise TransitionNotPermitted(acting_role, target_status.value)

            try:
                moved = order_state_machine.transition(
                    order, target_status, acting_role=acting_role, notes=notes
                )
            except InvalidTransition:
                metrics.record_transition_rejected(target_status.value, InvalidTransition.code)
                raise

            await self._require_session_if_fold_due(moved)
            return moved

        stored = await self._mutate_with_retry(order_id, change)
        stored = await self._fold_after_write(stored)

        metrics.record_transition(stored.order_type.value, stored.status.value)
        logger.info(f"Order {order_id} moved to {stored.status.value} by {acting_role}")

        if stored.status == OrderStatus.CANCELLED and stored.refund_status == RefundStatus.PENDING:
            stored = await self._request_refund(stored, notes or "Order cancelled")

        return stored

    async def _request_refund(self, order: Order, reason: str) -> Order:
        """Hand a cancelled, paid order to the refund gateway and record the outcome."""
        accepted = await self.refund_gateway.request_void(order, reason)
        outcome = RefundStatus.REQUESTED if accepted else RefundStatus.FAILED

        if not accepted:
            logger.error(f"Void request for cancelled order {order.order_id} was not accepted")

        async def change(current: Order) -> Order:
            return current.model_copy(update={"refund_status": outcome})

        return await self._mutate_with_retry(order.order_id, change)
