"""Shared pytest fixtures and configuration for all tests."""

import os
from collections.abc import Callable
from datetime import UTC, datetime

import pytest

# Keep main.py and lambda_handler.py from building real clients at import
os.environ.setdefault("ENVIRONMENT", "test")

from restaurant_pos_service.models.catalog_models import (  # noqa: E402
    Option,
    OptionGroup,
    Product,
    SelectionType,
)
from restaurant_pos_service.models.money import Money  # noqa: E402
from restaurant_pos_service.models.order_models import (  # noqa: E402
    CartLineItem,
    Order,
    OrderStatus,
    OrderType,
    Payment,
    StatusChange,
)


def brl(amount: int) -> Money:
    return Money(amount=amount, currency="BRL")


@pytest.fixture
def mock_scope_id() -> str:
    """Fixture providing a standard terminal scope ID."""
    return "terminal-1"


@pytest.fixture
def extras_group() -> OptionGroup:
    """Optional MULTIPLE group with up to two extras."""
    return OptionGroup(
        id="grp_extras",
        name="Extras",
        selection_type=SelectionType.MULTIPLE,
        is_required=False,
        min_options=0,
        max_options=2,
        options=[
            Option(id="opt_bacon", name="Bacon", price_delta=brl(300)),
            Option(id="opt_cheese", name="Cheddar", price_delta=brl(500)),
            Option(id="opt_egg", name="Egg", price_delta=brl(200)),
        ],
    )


@pytest.fixture
def size_group() -> OptionGroup:
    """Required SINGLE group."""
    return OptionGroup(
        id="grp_size",
        name="Size",
        selection_type=SelectionType.SINGLE,
        is_required=True,
        min_options=1,
        max_options=1,
        options=[
            Option(id="opt_small", name="Small", price_delta=brl(0)),
            Option(id="opt_large", name="Large", price_delta=brl(800)),
        ],
    )


@pytest.fixture
def burger(extras_group: OptionGroup) -> Product:
    """R$ 20,00 burger with optional extras."""
    return Product(id="prod_burger", name="X-Burger", price=brl(2000), option_groups=[extras_group])


@pytest.fixture
def pizza(size_group: OptionGroup) -> Product:
    """R$ 40,00 pizza with a required size."""
    return Product(id="prod_pizza", name="Pizza", price=brl(4000), option_groups=[size_group])


@pytest.fixture
def soda() -> Product:
    """Plain R$ 6,00 soda without option groups."""
    return Product(id="prod_soda", name="Soda", price=brl(600))


@pytest.fixture
def order_factory() -> Callable[..., Order]:
    """Factory for consistent orders.

    The order has a single line of ``unit_price`` x ``quantity``; fees are
    added to the total according to the order type.
    """

    def build(
        order_type: OrderType = OrderType.PICKUP,
        status: OrderStatus = OrderStatus.NEW,
        unit_price: int = 10000,
        quantity: int = 1,
        delivery_fee: int = 0,
        service_fee: int = 0,
        payments: list[Payment] | None = None,
        settled: bool = False,
        change_given: int | None = None,
        order_id: str = "order_1",
        scope_id: str = "terminal-1",
        version: int = 0,
        **overrides: object,
    ) -> Order:
        created_at = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)
        line = CartLineItem(
            line_id="line_1",
            product_id="prod_meal",
            product_name="Meal",
            quantity=quantity,
            unit_price=brl(unit_price),
        )

        total = unit_price * quantity
        if order_type == OrderType.DELIVERY:
            total += delivery_fee
        if order_type == OrderType.DINE_IN:
            total += service_fee

        history = [StatusChange(status=OrderStatus.NEW, changed_at=created_at)]
        if status != OrderStatus.NEW:
            history.append(StatusChange(status=status, changed_at=created_at))

        data: dict = {
            "order_id": order_id,
            "code": "001",
            "scope_id": scope_id,
            "order_type": order_type,
            "status": status,
            "line_items": [line],
            "delivery_fee": brl(delivery_fee),
            "service_fee": brl(service_fee),
            "total": brl(total),
            "payments": payments or [],
            "created_at": created_at,
            "status_history": history,
            "version": version,
        }
        if settled:
            data["settled_at"] = created_at
            data["change_given"] = brl(change_given or 0)
        data.update(overrides)
        return Order(**data)

    return build
