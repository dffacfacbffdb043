"""Option group selection and pricing for a single line item."""

import logging
from collections.abc import Sequence

from restaurant_pos_service.errors import (
    MissingRequiredSelection,
    TooManySelections,
    UnknownOption,
)
from restaurant_pos_service.models.catalog_models import Option, OptionGroup, SelectionType
from restaurant_pos_service.models.money import DEFAULT_CURRENCY, Money
from restaurant_pos_service.models.order_models import SelectedOption

logger = logging.getLogger(__name__)


def validate(group: OptionGroup, selection: Sequence[Option]) -> None:
    """Check that a required group has enough selections.

    Fails iff the group is required and fewer than ``min_options`` options are
    selected. Optional groups always pass.

    Raises:
        MissingRequiredSelection: With the number of missing selections
    """
    if group.is_required and len(selection) < group.min_options:
        raise MissingRequiredSelection(
            group_id=group.id,
            group_name=group.name,
            required=group.min_options,
            selected=len(selection),
        )


def is_valid(group: OptionGroup, selection: Sequence[Option]) -> bool:
    try:
        validate(group, selection)
    except MissingRequiredSelection:
        return False
    return True


def price_contribution(
    group: OptionGroup, selection: Sequence[Option], currency: str | None = None
) -> Money:
    """Sum of the price deltas of the selected options, in the group's currency by default."""
    return Money.total((option.price_delta for option in selection), currency or group.currency)


def resolve_selection(group: OptionGroup, option_ids: Sequence[str]) -> list[Option]:
    """Resolve and fully validate option ids submitted for a group.

    Used server-side, where the selection may be stale or tampered with: on top
    of ``validate`` it rejects unknown and duplicate ids and counts above
    ``max_options``.

    Args:
        group: Current catalog definition of the group
        option_ids: Option ids claimed to be selected in this group

    Returns:
        The resolved options, in submission order

    Raises:
        UnknownOption: If an id does not belong to the group
        TooManySelections: If more than ``max_options`` distinct options, or any
            duplicate, are submitted
        MissingRequiredSelection: If a required group is under-selected
    """
    if len(set(option_ids)) != len(option_ids):
        raise TooManySelections(group.id, group.name, group.max_options, len(option_ids))

    options: list[Option] = []
    for option_id in option_ids:
        option = group.get_option(option_id)
        if option is None:
            raise UnknownOption(group.id, option_id)
        options.append(option)

    if len(options) > group.max_options:
        raise TooManySelections(group.id, group.name, group.max_options, len(options))

    validate(group, options)
    return options


class ModifierSelector:
    """Tracks the options chosen for one product across its option groups.

    SINGLE groups hold at most one option: selecting replaces. MULTIPLE groups
    accept new options only while below ``max_options``; a select beyond that
    returns False and changes nothing, which callers surface as a UI-level
    rejection rather than an error.
    """

    def __init__(self, option_groups: Sequence[OptionGroup], currency: str = DEFAULT_CURRENCY) -> None:
        self.currency = currency
        self._groups: dict[str, OptionGroup] = {group.id: group for group in option_groups}
        self._selected: dict[str, list[str]] = {group.id: [] for group in option_groups}

    @property
    def groups(self) -> list[OptionGroup]:
        return list(self._groups.values())

    def _group(self, group_id: str) -> OptionGroup:
        group = self._groups.get(group_id)
        if group is None:
            raise UnknownOption(group_id)
        return group

    def _option(self, group: OptionGroup, option_id: str) -> Option:
        option = group.get_option(option_id)
        if option is None:
            raise UnknownOption(group.id, option_id)
        return option

    def select(self, group_id: str, option_id: str) -> bool:
        """Select an option.

        Returns:
            True if the option is selected after the call, False if the group
            is already at ``max_options`` and the call was ignored
        """
        group = self._group(group_id)
        self._option(group, option_id)
        current = self._selected[group_id]

        if option_id in current:
            return True

        if group.selection_type == SelectionType.SINGLE:
            self._selected[group_id] = [option_id]
            return True

        if len(current) >= group.max_options:
            logger.debug(f"Group {group_id} is at its limit of {group.max_options}, ignoring {option_id}")
            return False

        current.append(option_id)
        return True

    def deselect(self, group_id: str, option_id: str) -> bool:
        """Remove an option; returns whether it had been selected."""
        group = self._group(group_id)
        self._option(group, option_id)
        current = self._selected[group_id]

        if option_id not in current:
            return False

        current.remove(option_id)
        return True

    def toggle(self, group_id: str, option_id: str) -> bool:
        """Flip an option the way the order screen does.

        MULTIPLE options are removed when already selected; SINGLE groups
        always end up with the clicked option.

        Returns:
            Whether the option is selected after the call
        """
        group = self._group(group_id)
        if (
            group.selection_type == SelectionType.MULTIPLE
            and option_id in self._selected[group_id]
        ):
            self.deselect(group_id, option_id)
            return False
        return self.select(group_id, option_id)

    def selection(self, group_id: str) -> list[Option]:
        group = self._group(group_id)
        return [self._option(group, option_id) for option_id in self._selected[group_id]]

    def selected_options(self) -> list[SelectedOption]:
        """Snapshots of every selected option, in group order."""
        snapshots: list[SelectedOption] = []
        for group in self._groups.values():
            for option in self.selection(group.id):
                snapshots.append(SelectedOption.snapshot(group.id, group.name, option))
        return snapshots

    def validate(self) -> None:
        """Validate every group; raises on the first under-selected group."""
        for group in self._groups.values():
            validate(group, self.selection(group.id))

    def is_valid(self) -> bool:
        return all(is_valid(group, self.selection(group.id)) for group in self._groups.values())

    def price_contribution(self) -> Money:
        return Money.total(
            (
                price_contribution(group, self.selection(group.id), self.currency)
                for group in self._groups.values()
            ),
            self.currency,
        )

    def clear(self) -> None:
        for group_id in self._selected:
            self._selected[group_id] = []
