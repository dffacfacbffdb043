"""Unit tests for catalog snapshot models."""

import pytest
from pydantic import ValidationError

from restaurant_pos_service.models.catalog_models import (
    Option,
    OptionGroup,
    Product,
    SelectionType,
)
from restaurant_pos_service.models.money import Money


def _option(option_id: str, delta: int = 0, currency: str = "BRL") -> Option:
    return Option(id=option_id, name=option_id.title(), price_delta=Money(amount=delta, currency=currency))


@pytest.mark.unit
class TestOptionGroup:
    """Tests for OptionGroup cardinality invariants."""

    def test_valid_multiple_group(self) -> None:
        """Test creating a valid MULTIPLE group."""
        group = OptionGroup(
            id="grp_1",
            name="Extras",
            selection_type=SelectionType.MULTIPLE,
            min_options=0,
            max_options=3,
            options=[_option("a"), _option("b")],
        )

        assert group.get_option("a") is not None
        assert group.get_option("missing") is None

    def test_negative_option_delta_rejected(self) -> None:
        """Test that an option cannot lower the product price."""
        with pytest.raises(ValidationError, match="price_delta must be non-negative"):
            _option("discount", -500)

    def test_currency_follows_option_prices(self) -> None:
        """Test the group currency, with the default for groups without options."""
        usd = OptionGroup(
            id="grp_usd",
            name="Sides",
            selection_type=SelectionType.MULTIPLE,
            options=[_option("fries", 250, "USD")],
        )
        empty = OptionGroup(id="grp_empty", name="Empty", selection_type=SelectionType.SINGLE)

        assert usd.currency == "USD"
        assert empty.currency == "BRL"

    def test_min_greater_than_max_rejected(self) -> None:
        """Test that min_options may not exceed max_options."""
        with pytest.raises(ValidationError, match="exceeds max_options"):
            OptionGroup(
                id="grp_1",
                name="Extras",
                selection_type=SelectionType.MULTIPLE,
                min_options=3,
                max_options=2,
            )

    def test_required_group_needs_min_one(self) -> None:
        """Test that a required group must require at least one selection."""
        with pytest.raises(ValidationError, match="min_options >= 1"):
            OptionGroup(
                id="grp_1",
                name="Size",
                selection_type=SelectionType.SINGLE,
                is_required=True,
                min_options=0,
                max_options=1,
            )

    def test_single_group_max_must_be_one(self) -> None:
        """Test that SINGLE groups allow exactly one selection."""
        with pytest.raises(ValidationError, match="SINGLE"):
            OptionGroup(
                id="grp_1",
                name="Size",
                selection_type=SelectionType.SINGLE,
                max_options=2,
            )

    def test_duplicate_option_ids_rejected(self) -> None:
        """Test that option ids are unique within a group."""
        with pytest.raises(ValidationError, match="duplicate option ids"):
            OptionGroup(
                id="grp_1",
                name="Extras",
                selection_type=SelectionType.MULTIPLE,
                max_options=2,
                options=[_option("a"), _option("a")],
            )

    def test_negative_min_rejected(self) -> None:
        """Test that min_options cannot be negative."""
        with pytest.raises(ValidationError):
            OptionGroup(
                id="grp_1",
                name="Extras",
                selection_type=SelectionType.MULTIPLE,
                min_options=-1,
                max_options=2,
            )


@pytest.mark.unit
class TestProduct:
    """Tests for Product."""

    def test_get_group(self, burger: Product) -> None:
        """Test looking up an option group by id."""
        assert burger.get_group("grp_extras") is not None
        assert burger.get_group("grp_missing") is None

    def test_available_by_default(self, soda: Product) -> None:
        """Test the default availability flag."""
        assert soda.available is True

    def test_option_currency_must_match_product(self) -> None:
        """Test that option prices share the product currency."""
        group = OptionGroup(
            id="grp_1",
            name="Extras",
            selection_type=SelectionType.MULTIPLE,
            max_options=1,
            options=[_option("a", 100, "USD")],
        )

        with pytest.raises(ValidationError, match="priced in USD"):
            Product(id="p", name="P", price=Money(amount=1000, currency="BRL"), option_groups=[group])

    def test_negative_price_rejected(self) -> None:
        """Test that a product cannot have a negative price."""
        with pytest.raises(ValidationError, match="non-negative"):
            Product(id="p", name="P", price=Money(amount=-1))
