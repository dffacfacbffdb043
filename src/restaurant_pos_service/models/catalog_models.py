"""Catalog snapshot models.

The catalog service owns products and their option groups; the order manager
only ever keeps copies of them taken at cart-composition time. These models
describe what the catalog service returns.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from restaurant_pos_service.models.money import DEFAULT_CURRENCY, Money


class SelectionType(str, Enum):
    """How many options of a group may be chosen at once."""

    SINGLE = "SINGLE"
    MULTIPLE = "MULTIPLE"


class Option(BaseModel):
    """A single add-on inside an option group."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Option identifier")
    name: str = Field(..., description="Option name shown to the operator")
    price_delta: Money = Field(..., description="Price added to the line's unit price")

    @field_validator("price_delta")
    @classmethod
    def validate_price_delta(cls, value: Money) -> Money:
        if value.is_negative:
            raise ValueError("option price_delta must be non-negative")
        return value


class OptionGroup(BaseModel):
    """A named set of add-ons with selection cardinality rules.

    Invariants:
        - 0 <= min_options <= max_options
        - is_required implies min_options >= 1
        - SINGLE groups have max_options == 1
        - option ids are unique within the group
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Option group identifier")
    name: str = Field(..., description="Group name (e.g. 'Extras')")
    selection_type: SelectionType = Field(..., description="SINGLE or MULTIPLE")
    is_required: bool = Field(default=False, description="Whether a selection is mandatory")
    min_options: int = Field(default=0, description="Minimum selections when required", ge=0)
    max_options: int = Field(default=1, description="Maximum selections allowed", ge=0)
    options: list[Option] = Field(default_factory=list, description="Available options")

    @model_validator(mode="after")
    def validate_cardinality(self) -> "OptionGroup":
        """Enforce the group's cardinality invariants."""
        if self.min_options > self.max_options:
            raise ValueError(
                f"min_options ({self.min_options}) exceeds max_options ({self.max_options})"
            )
        if self.is_required and self.min_options < 1:
            raise ValueError("required option groups need min_options >= 1")
        if self.selection_type == SelectionType.SINGLE and self.max_options != 1:
            raise ValueError("SINGLE option groups must have max_options == 1")

        option_ids = [option.id for option in self.options]
        if len(option_ids) != len(set(option_ids)):
            raise ValueError(f"duplicate option ids in group {self.id}")

        return self

    @property
    def currency(self) -> str:
        """Currency of the group's option prices; groups without options use the default."""
        return self.options[0].price_delta.currency if self.options else DEFAULT_CURRENCY

    def get_option(self, option_id: str) -> Option | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


class Product(BaseModel):
    """Catalog product as returned by the catalog service."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Product identifier")
    name: str = Field(..., description="Product name")
    price: Money = Field(..., description="Base unit price")
    option_groups: list[OptionGroup] = Field(default_factory=list)
    available: bool = Field(default=True, description="Whether the product can be sold now")

    @model_validator(mode="after")
    def validate_prices(self) -> "Product":
        """All option prices must share the product's currency."""
        if self.price.amount < 0:
            raise ValueError("product price must be non-negative")
        for group in self.option_groups:
            for option in group.options:
                if option.price_delta.currency != self.price.currency:
                    raise ValueError(
                        f"option {option.id} is priced in {option.price_delta.currency}, "
                        f"product in {self.price.currency}"
                    )
        return self

    def get_group(self, group_id: str) -> OptionGroup | None:
        for group in self.option_groups:
            if group.id == group_id:
                return group
        return None
