"""Client-side cart for an order that has not been submitted yet."""

import logging

from restaurant_pos_service.errors import (
    CurrencyMismatch,
    InvalidOrderRequest,
    InvalidQuantity,
    ProductUnavailable,
)
from restaurant_pos_service.models.catalog_models import Product
from restaurant_pos_service.models.money import DEFAULT_CURRENCY, Money
from restaurant_pos_service.models.order_models import CartLineItem
from restaurant_pos_service.services.modifier_selector import ModifierSelector

logger = logging.getLogger(__name__)


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity(quantity)


class Cart:
    """An in-progress collection of line items.

    Items are snapshots of the catalog product at add time. A product with
    option groups can only be added through a ModifierSelector whose groups all
    validate. Repeated plain additions (no options, no notes) of the same
    product are merged into one line.
    """

    def __init__(self, currency: str = DEFAULT_CURRENCY) -> None:
        self.currency = currency
        self._items: list[CartLineItem] = []

    @property
    def items(self) -> list[CartLineItem]:
        return list(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def add_product(
        self,
        product: Product,
        quantity: int = 1,
        selector: ModifierSelector | None = None,
        notes: str | None = None,
    ) -> CartLineItem:
        """Add a product snapshot to the cart.

        Args:
            product: Catalog product, as currently returned by the catalog
            quantity: Units to add
            selector: Modifier selections for products with option groups
            notes: Optional kitchen notes for the line

        Returns:
            The new or merged line item

        Raises:
            ProductUnavailable: If the product is flagged unavailable
            InvalidQuantity: If quantity is not a positive integer
            InvalidOrderRequest: If the selector does not match the product
            MissingRequiredSelection: If a required option group is incomplete
        """
        _check_quantity(quantity)

        if not product.available:
            raise ProductUnavailable(product.id)

        if product.price.currency != self.currency:
            raise CurrencyMismatch(self.currency, product.price.currency)

        if selector is None:
            selector = ModifierSelector(product.option_groups, self.currency)
        elif {g.id for g in selector.groups} != {g.id for g in product.option_groups}:
            raise InvalidOrderRequest(
                f"Modifier selection does not match the option groups of product {product.id}"
            )

        selector.validate()
        selected_options = selector.selected_options()

        if not selected_options and notes is None:
            for index, existing in enumerate(self._items):
                if (
                    existing.product_id == product.id
                    and not existing.selected_options
                    and existing.notes is None
                    and existing.unit_price == product.price
                ):
                    merged = existing.model_copy(update={"quantity": existing.quantity + quantity})
                    self._items[index] = merged
                    return merged

        line = CartLineItem(
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            unit_price=product.price,
            selected_options=selected_options,
            notes=notes,
        )
        self._items.append(line)
        logger.debug(f"Added {quantity} x {product.name} to cart ({line.line_total.format()})")
        return line

    def get_line(self, line_id: str) -> CartLineItem | None:
        for line in self._items:
            if line.line_id == line_id:
                return line
        return None

    def update_quantity(self, line_id: str, quantity: int) -> CartLineItem | None:
        """Set a line's quantity; zero or less removes the line.

        Returns:
            The updated line, or None if the line was removed
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidQuantity(quantity)

        if quantity <= 0:
            self.remove(line_id)
            return None

        for index, line in enumerate(self._items):
            if line.line_id == line_id:
                updated = line.model_copy(update={"quantity": quantity})
                self._items[index] = updated
                return updated

        raise InvalidOrderRequest(f"Line {line_id} is not in the cart")

    def remove(self, line_id: str) -> None:
        remaining = [line for line in self._items if line.line_id != line_id]
        if len(remaining) == len(self._items):
            raise InvalidOrderRequest(f"Line {line_id} is not in the cart")
        self._items = remaining

    def clear(self) -> None:
        self._items = []

    def subtotal(self) -> Money:
        return Money.total((line.line_total for line in self._items), self.currency)
