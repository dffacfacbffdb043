"""Component tests for the order lifecycle across the POS services.

The services run against in-memory stores that keep the same version
contract as the DynamoDB repositories.
"""

from collections.abc import Iterable
from datetime import date

import pytest

from restaurant_pos_service.adapters.base_adapter import RefundGateway
from restaurant_pos_service.adapters.role_policy import StaticRolePolicy
from restaurant_pos_service.errors import (
    ConcurrentModification,
    InsufficientPayment,
    InvalidAmount,
    ProductUnavailable,
    SessionNotOpen,
    TransitionNotPermitted,
)
from restaurant_pos_service.models.cash_models import CashMovementType, CashSession
from restaurant_pos_service.models.catalog_models import Product
from restaurant_pos_service.models.money import Money
from restaurant_pos_service.models.order_models import (
    Order,
    OrderStatus,
    OrderType,
    Payment,
    PaymentMethod,
    RefundStatus,
)
from restaurant_pos_service.services.cart import Cart
from restaurant_pos_service.services.cash_session_service import CashSessionService
from restaurant_pos_service.services.modifier_selector import ModifierSelector
from restaurant_pos_service.services.order_service import OrderService


class InMemoryOrderStore:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.counters: dict[tuple[str, date], int] = {}

    def get_order(self, order_id: str) -> Order | None:
        return self.orders.get(order_id)

    def create_order(self, order: Order) -> None:
        self.orders[order.order_id] = order

    def save_order(self, order: Order, expected_version: int) -> None:
        if self.orders[order.order_id].version != expected_version:
            raise ConcurrentModification("Order", order.order_id, expected_version)
        self.orders[order.order_id] = order

    def list_orders_by_status(self, status: OrderStatus, limit: int = 50) -> list[Order]:
        return [o for o in self.orders.values() if o.status == status][:limit]

    def next_order_code(self, scope_id: str, business_date: date) -> str:
        key = (scope_id, business_date)
        self.counters[key] = self.counters.get(key, 0) + 1
        return f"{self.counters[key]:03d}"


class ConflictingOrderStore(InMemoryOrderStore):
    """Order store whose conditional writes lose every race once armed."""

    def __init__(self) -> None:
        super().__init__()
        self.conflicting = False

    def save_order(self, order: Order, expected_version: int) -> None:
        if self.conflicting:
            raise ConcurrentModification("Order", order.order_id, expected_version)
        super().save_order(order, expected_version)


class InMemorySessionStore:
    def __init__(self) -> None:
        self.sessions: dict[str, CashSession] = {}

    def create_session(self, session: CashSession) -> bool:
        if self.get_open_session(session.scope_id) is not None:
            return False
        self.sessions[session.session_id] = session
        return True

    def get_session(self, session_id: str) -> CashSession | None:
        return self.sessions.get(session_id)

    def get_open_session(self, scope_id: str) -> CashSession | None:
        for session in self.sessions.values():
            if session.scope_id == scope_id and session.is_open:
                return session
        return None

    def save_session(self, session: CashSession, expected_version: int) -> None:
        if self.sessions[session.session_id].version != expected_version:
            raise ConcurrentModification("CashSession", session.session_id, expected_version)
        self.sessions[session.session_id] = session

    def close_session(self, session: CashSession, expected_version: int) -> None:
        self.save_session(session, expected_version)

    def list_sessions_for_scope(self, scope_id: str, limit: int = 20) -> list[CashSession]:
        return [s for s in self.sessions.values() if s.scope_id == scope_id][:limit]


class ConflictingSessionStore(InMemorySessionStore):
    def __init__(self) -> None:
        super().__init__()
        self.conflicting = False

    def save_session(self, session: CashSession, expected_version: int) -> None:
        if self.conflicting:
            raise ConcurrentModification("CashSession", session.session_id, expected_version)
        super().save_session(session, expected_version)


class FakeCatalog:
    def __init__(self, products: Iterable[Product]) -> None:
        self.products = {p.id: p for p in products}

    async def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        return {pid: self.products[pid] for pid in set(product_ids) if pid in self.products}


class RecordingRefundGateway(RefundGateway):
    def __init__(self) -> None:
        super().__init__("recording")
        self.voided: list[tuple[str, str]] = []

    async def request_void(self, order: Order, reason: str) -> bool:
        self.voided.append((order.order_id, reason))
        return True


def brl(amount: int) -> Money:
    return Money(amount=amount)


@pytest.mark.component
class TestOrderFlow:
    """End-to-end order lifecycle through cart, settlement, board and cash session."""

    @pytest.fixture
    def catalog(self, burger: Product, pizza: Product, soda: Product) -> FakeCatalog:
        return FakeCatalog([burger, pizza, soda])

    @pytest.fixture
    def order_store(self) -> ConflictingOrderStore:
        return ConflictingOrderStore()

    @pytest.fixture
    def session_store(self) -> ConflictingSessionStore:
        return ConflictingSessionStore()

    @pytest.fixture
    def sessions(self, session_store: ConflictingSessionStore) -> CashSessionService:
        return CashSessionService(session_repository=session_store)

    @pytest.fixture
    def refunds(self) -> RecordingRefundGateway:
        return RecordingRefundGateway()

    @pytest.fixture
    def orders(
        self,
        order_store: ConflictingOrderStore,
        catalog: FakeCatalog,
        sessions: CashSessionService,
        refunds: RecordingRefundGateway,
    ) -> OrderService:
        return OrderService(
            order_repository=order_store,
            cash_session_service=sessions,
            catalog_client=catalog,
            transition_policy=StaticRolePolicy(),
            refund_gateway=refunds,
        )

    @pytest.mark.asyncio
    async def test_pickup_paid_in_cash_closes_with_difference(
        self,
        orders: OrderService,
        sessions: CashSessionService,
        burger: Product,
        soda: Product,
        mock_scope_id: str,
    ) -> None:
        """Test a pickup order from cart to a counted session close."""
        session = await sessions.open_session(mock_scope_id, brl(5000))

        cart = Cart()
        selector = ModifierSelector(burger.option_groups)
        selector.select("grp_extras", "opt_bacon")
        cart.add_product(burger, quantity=2, selector=selector)
        cart.add_product(soda)
        assert cart.subtotal() == brl(5200)

        order = await orders.submit_order(mock_scope_id, OrderType.PICKUP, cart.items)
        assert order.code == "001"
        assert order.total == brl(5200)

        with pytest.raises(InsufficientPayment):
            await orders.settle_order(order.order_id, [Payment(method=PaymentMethod.CASH, amount=brl(5000))])

        result = await orders.settle_order(
            order.order_id, [Payment(method=PaymentMethod.CASH, amount=brl(6000))]
        )
        assert result.change_due == brl(800)

        for target, role in [
            (OrderStatus.IN_PREPARATION, "kitchen"),
            (OrderStatus.READY, "kitchen"),
            (OrderStatus.COMPLETED, "cashier"),
        ]:
            order = await orders.request_transition(order.order_id, target, role)

        assert order.status == OrderStatus.COMPLETED
        assert order.cash_session_id == session.session_id

        await sessions.record_movement(
            mock_scope_id, CashMovementType.WITHDRAWAL, brl(1000), "Bank deposit"
        )
        current = await sessions.require_open_session(mock_scope_id)
        assert current.cash_sales == brl(5200)
        assert current.expected_balance == brl(9200)

        closed = await sessions.close_session(session.session_id, counted_balance=brl(9000))
        assert closed.final_expected_balance == brl(9200)
        assert closed.difference == brl(-200)

        with pytest.raises(SessionNotOpen):
            await sessions.require_open_session(mock_scope_id)

    @pytest.mark.asyncio
    async def test_completion_waits_for_open_session(
        self,
        orders: OrderService,
        sessions: CashSessionService,
        pizza: Product,
        mock_scope_id: str,
    ) -> None:
        """Test that a paid order cannot complete until its scope has a session."""
        cart = Cart()
        selector = ModifierSelector(pizza.option_groups)
        selector.select("grp_size", "opt_large")
        cart.add_product(pizza, selector=selector)

        order = await orders.submit_order(
            mock_scope_id,
            OrderType.DINE_IN,
            cart.items,
            table_ref="T12",
            service_fee_bps=1000,
        )
        assert order.service_fee == brl(480)
        assert order.total == brl(5280)

        await orders.settle_order(order.order_id, [Payment(method=PaymentMethod.PIX, amount=brl(5280))])
        await orders.request_transition(order.order_id, OrderStatus.IN_PREPARATION, "kitchen")
        await orders.request_transition(order.order_id, OrderStatus.READY, "kitchen")

        with pytest.raises(SessionNotOpen):
            await orders.request_transition(order.order_id, OrderStatus.COMPLETED, "cashier")

        stored = await orders.get_order(order.order_id)
        assert stored.status == OrderStatus.READY
        assert stored.cash_session_id is None

        session = await sessions.open_session(mock_scope_id, brl(0))
        completed = await orders.request_transition(order.order_id, OrderStatus.COMPLETED, "cashier")

        assert completed.cash_session_id == session.session_id
        current = await sessions.require_open_session(mock_scope_id)
        assert current.sales_by_method == {PaymentMethod.PIX: brl(5280)}
        assert current.cash_sales == brl(0)
        assert current.settled_orders == [order.order_id]

    @pytest.mark.asyncio
    async def test_cancelling_paid_order_requests_void(
        self,
        orders: OrderService,
        refunds: RecordingRefundGateway,
        soda: Product,
        mock_scope_id: str,
    ) -> None:
        """Test that a paid order cancelled by a manager goes to the refund gateway."""
        cart = Cart()
        cart.add_product(soda, quantity=3)
        order = await orders.submit_order(mock_scope_id, OrderType.PICKUP, cart.items)
        await orders.settle_order(
            order.order_id, [Payment(method=PaymentMethod.DEBIT_CARD, amount=brl(1800))]
        )

        with pytest.raises(TransitionNotPermitted):
            await orders.request_transition(order.order_id, OrderStatus.CANCELLED, "cashier")

        cancelled = await orders.request_transition(
            order.order_id, OrderStatus.CANCELLED, "manager", notes="customer left"
        )

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.payments[0].amount == brl(1800)
        assert cancelled.refund_status == RefundStatus.REQUESTED
        assert refunds.voided == [(order.order_id, "customer left")]

    @pytest.mark.asyncio
    async def test_board_groups_orders_and_codes_increase(
        self,
        orders: OrderService,
        catalog: FakeCatalog,
        soda: Product,
        mock_scope_id: str,
    ) -> None:
        """Test per-scope order codes and the status board columns."""
        cart = Cart()
        cart.add_product(soda)

        first = await orders.submit_order(mock_scope_id, OrderType.PICKUP, cart.items)
        second = await orders.submit_order(mock_scope_id, OrderType.PICKUP, cart.items)
        other = await orders.submit_order("terminal-2", OrderType.PICKUP, cart.items)
        await orders.request_transition(second.order_id, OrderStatus.IN_PREPARATION, "kitchen")

        assert (first.code, second.code, other.code) == ("001", "002", "001")

        board = await orders.list_board()
        assert {o.order_id for o in board[OrderStatus.NEW]} == {first.order_id, other.order_id}
        assert [o.order_id for o in board[OrderStatus.IN_PREPARATION]] == [second.order_id]
        assert board[OrderStatus.READY] == []

        catalog.products[soda.id] = soda.model_copy(update={"available": False})
        with pytest.raises(ProductUnavailable):
            await orders.submit_order(mock_scope_id, OrderType.PICKUP, cart.items)

    async def _completed_unpaid_soda(self, orders: OrderService, soda: Product, scope_id: str) -> Order:
        cart = Cart()
        cart.add_product(soda)
        order = await orders.submit_order(scope_id, OrderType.PICKUP, cart.items)
        for target, role in [
            (OrderStatus.IN_PREPARATION, "kitchen"),
            (OrderStatus.READY, "kitchen"),
            (OrderStatus.COMPLETED, "cashier"),
        ]:
            order = await orders.request_transition(order.order_id, target, role)
        return order

    @pytest.mark.asyncio
    async def test_lost_order_write_leaves_drawer_untouched(
        self,
        orders: OrderService,
        sessions: CashSessionService,
        order_store: ConflictingOrderStore,
        soda: Product,
        mock_scope_id: str,
    ) -> None:
        """Test that a settlement whose order write never lands is not counted as a sale."""
        await sessions.open_session(mock_scope_id, brl(5000))
        order = await self._completed_unpaid_soda(orders, soda, mock_scope_id)

        order_store.conflicting = True
        with pytest.raises(ConcurrentModification):
            await orders.settle_order(
                order.order_id, [Payment(method=PaymentMethod.CASH, amount=brl(600))]
            )

        current = await sessions.require_open_session(mock_scope_id)
        assert current.settled_orders == []
        assert current.cash_sales == brl(0)
        assert current.expected_balance == brl(5000)

        stored = await orders.get_order(order.order_id)
        assert not stored.is_settled
        assert stored.cash_session_id is None

    @pytest.mark.asyncio
    async def test_negative_payment_leaves_drawer_untouched(
        self,
        orders: OrderService,
        sessions: CashSessionService,
        soda: Product,
        mock_scope_id: str,
    ) -> None:
        """Test that a negative PIX entry cannot inflate the cash drawer."""
        await sessions.open_session(mock_scope_id, brl(0))
        order = await self._completed_unpaid_soda(orders, soda, mock_scope_id)

        with pytest.raises(InvalidAmount):
            await orders.settle_order(
                order.order_id,
                [
                    Payment(method=PaymentMethod.CASH, amount=brl(1200)),
                    Payment(method=PaymentMethod.PIX, amount=brl(-600)),
                ],
            )

        current = await sessions.require_open_session(mock_scope_id)
        assert current.cash_sales == brl(0)
        assert current.settled_orders == []
        assert not (await orders.get_order(order.order_id)).is_settled

    @pytest.mark.asyncio
    async def test_deferred_fold_can_be_run_again(
        self,
        orders: OrderService,
        sessions: CashSessionService,
        session_store: ConflictingSessionStore,
        soda: Product,
        mock_scope_id: str,
    ) -> None:
        """Test that a sale the session could not take is recorded once on a later run."""
        session = await sessions.open_session(mock_scope_id, brl(0))
        order = await self._completed_unpaid_soda(orders, soda, mock_scope_id)

        session_store.conflicting = True
        result = await orders.settle_order(
            order.order_id, [Payment(method=PaymentMethod.CASH, amount=brl(600))]
        )
        session_store.conflicting = False

        assert result.order.is_settled
        assert result.order.cash_session_id is None
        assert (await sessions.require_open_session(mock_scope_id)).settled_orders == []

        folded = await orders.fold_settled_order(order.order_id)
        again = await orders.fold_settled_order(order.order_id)

        assert folded.cash_session_id == session.session_id
        assert again.cash_session_id == session.session_id
        current = await sessions.require_open_session(mock_scope_id)
        assert current.settled_orders == [order.order_id]
        assert current.cash_sales == brl(600)
