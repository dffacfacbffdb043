"""Error taxonomy for the POS order manager.

Errors fall into four families that callers handle differently:

- ValidationError: malformed input, rejected before any mutation. Safe to retry
  once the input is corrected.
- StateError: a workflow fault (invalid transition, session lifecycle misuse).
  Surfaced to the operator, never retried automatically.
- ConcurrencyError: another terminal changed the entity first. Re-read and retry.
- SettlementError: an expected business condition (not enough payment yet).
  Surfaced as a prompt for more payment.

Every error carries a stable ``code`` and a ``details()`` mapping with the
numbers an operator acts on (remaining amount, missing selection count, ...).
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from restaurant_pos_service.models.money import Money


class POSError(Exception):
    """Base class for all order manager errors."""

    code = "pos_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        """Structured details for API responses and logs."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details()}


# Validation errors


class ValidationError(POSError):
    code = "validation_error"


class InvalidAmount(ValidationError):
    code = "invalid_amount"

    def __init__(self, amount: Any, reason: str = "amount must be greater than zero") -> None:
        super().__init__(f"Invalid amount {amount}: {reason}")
        self.amount = amount
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {"amount": str(self.amount), "reason": self.reason}


class InvalidQuantity(ValidationError):
    code = "invalid_quantity"

    def __init__(self, quantity: Any) -> None:
        super().__init__(f"Invalid quantity {quantity}: quantity must be a positive integer")
        self.quantity = quantity

    def details(self) -> dict[str, Any]:
        return {"quantity": self.quantity}


class CurrencyMismatch(ValidationError):
    code = "currency_mismatch"

    def __init__(self, left: str, right: str) -> None:
        super().__init__(f"Currency mismatch: {left} vs {right}")
        self.left = left
        self.right = right

    def details(self) -> dict[str, Any]:
        return {"left": self.left, "right": self.right}


class MissingRequiredSelection(ValidationError):
    code = "missing_required_selection"

    def __init__(self, group_id: str, group_name: str, required: int, selected: int) -> None:
        self.group_id = group_id
        self.group_name = group_name
        self.required = required
        self.selected = selected
        super().__init__(
            f"Select at least {required} option(s) in '{group_name}' "
            f"({self.missing} missing)"
        )

    @property
    def missing(self) -> int:
        return self.required - self.selected

    def details(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "group_name": self.group_name,
            "required": self.required,
            "selected": self.selected,
            "missing": self.missing,
        }


class TooManySelections(ValidationError):
    code = "too_many_selections"

    def __init__(self, group_id: str, group_name: str, max_options: int, selected: int) -> None:
        super().__init__(
            f"At most {max_options} option(s) allowed in '{group_name}', got {selected}"
        )
        self.group_id = group_id
        self.group_name = group_name
        self.max_options = max_options
        self.selected = selected

    def details(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "group_name": self.group_name,
            "max_options": self.max_options,
            "selected": self.selected,
        }


class UnknownOption(ValidationError):
    code = "unknown_option"

    def __init__(self, group_id: str, option_id: str | None = None) -> None:
        if option_id is None:
            message = f"Unknown option group '{group_id}'"
        else:
            message = f"Option '{option_id}' does not belong to group '{group_id}'"
        super().__init__(message)
        self.group_id = group_id
        self.option_id = option_id

    def details(self) -> dict[str, Any]:
        return {"group_id": self.group_id, "option_id": self.option_id}


class ProductUnavailable(ValidationError):
    code = "product_unavailable"

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product '{product_id}' is not available in the catalog")
        self.product_id = product_id

    def details(self) -> dict[str, Any]:
        return {"product_id": self.product_id}


class InvalidOrderRequest(ValidationError):
    code = "invalid_order_request"


# State errors


class StateError(POSError):
    code = "state_error"


class InvalidTransition(StateError):
    code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str, order_type: str) -> None:
        super().__init__(
            f"Cannot change a {order_type} order from {from_status} to {to_status}"
        )
        self.from_status = from_status
        self.to_status = to_status
        self.order_type = order_type

    def details(self) -> dict[str, Any]:
        return {
            "from": self.from_status,
            "to": self.to_status,
            "order_type": self.order_type,
        }


class OrderAlreadySettled(StateError):
    code = "order_already_settled"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} already has confirmed payments")
        self.order_id = order_id

    def details(self) -> dict[str, Any]:
        return {"order_id": self.order_id}


class SessionNotOpen(StateError):
    code = "session_not_open"

    def __init__(self, scope_id: str, session_id: str | None = None) -> None:
        if session_id is None:
            message = f"No open cash session for scope '{scope_id}'"
        else:
            message = f"Cash session {session_id} for scope '{scope_id}' is not open"
        super().__init__(message)
        self.scope_id = scope_id
        self.session_id = session_id

    def details(self) -> dict[str, Any]:
        return {"scope_id": self.scope_id, "session_id": self.session_id}


class SessionAlreadyOpen(StateError):
    code = "session_already_open"

    def __init__(self, scope_id: str, session_id: str | None = None) -> None:
        super().__init__(
            f"Scope '{scope_id}' already has an open cash session. "
            "Close it before opening a new one."
        )
        self.scope_id = scope_id
        self.session_id = session_id

    def details(self) -> dict[str, Any]:
        return {"scope_id": self.scope_id, "session_id": self.session_id}


class SessionAlreadyClosed(StateError):
    code = "session_already_closed"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Cash session {session_id} is already closed")
        self.session_id = session_id

    def details(self) -> dict[str, Any]:
        return {"session_id": self.session_id}


# Concurrency errors


class ConcurrencyError(POSError):
    code = "concurrency_error"


class ConcurrentModification(ConcurrencyError):
    code = "concurrent_modification"

    def __init__(self, entity: str, entity_id: str, expected_version: int) -> None:
        super().__init__(
            f"{entity} {entity_id} was modified by another terminal "
            f"(expected version {expected_version}); re-read and retry"
        )
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version

    def details(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "entity_id": self.entity_id,
            "expected_version": self.expected_version,
        }


# Settlement errors


class SettlementError(POSError):
    code = "settlement_error"


class InsufficientPayment(SettlementError):
    code = "insufficient_payment"

    def __init__(self, remaining: "Money") -> None:
        super().__init__(f"Payment incomplete: {remaining.format()} remaining")
        self.remaining = remaining

    def details(self) -> dict[str, Any]:
        return {"remaining": self.remaining.amount, "currency": self.remaining.currency}


# Lookup, authorization and storage errors


class NotFoundError(POSError):
    code = "not_found"


class OrderNotFound(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id

    def details(self) -> dict[str, Any]:
        return {"order_id": self.order_id}


class SessionNotFound(NotFoundError):
    code = "session_not_found"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Cash session {session_id} not found")
        self.session_id = session_id

    def details(self) -> dict[str, Any]:
        return {"session_id": self.session_id}


class AuthorizationError(POSError):
    code = "authorization_error"


class TransitionNotPermitted(AuthorizationError):
    code = "transition_not_permitted"

    def __init__(self, acting_role: str, to_status: str) -> None:
        super().__init__(f"Role '{acting_role}' may not move orders to {to_status}")
        self.acting_role = acting_role
        self.to_status = to_status

    def details(self) -> dict[str, Any]:
        return {"acting_role": self.acting_role, "to": self.to_status}


class PersistenceError(POSError):
    code = "persistence_error"
