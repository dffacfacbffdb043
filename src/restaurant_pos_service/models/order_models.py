"""Order, line item and payment models.

An Order is a frozen value: every change (a status transition, attaching
payments) produces a new Order with an incremented storage ``version``. The
total is computed once at submission and only validated afterwards, never
recomputed from line items that could have been edited.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from restaurant_pos_service.errors import CurrencyMismatch
from restaurant_pos_service.models.catalog_models import Option
from restaurant_pos_service.models.money import DEFAULT_CURRENCY, Money


class OrderType(str, Enum):
    """Fulfillment type of an order."""

    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"
    DINE_IN = "DINE_IN"


class OrderStatus(str, Enum):
    """Lifecycle status of a submitted order."""

    NEW = "NEW"
    IN_PREPARATION = "IN_PREPARATION"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class PaymentMethod(str, Enum):
    """Payment instruments accepted at the terminal."""

    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    PIX = "PIX"
    MEAL_VOUCHER = "MEAL_VOUCHER"


class RefundStatus(str, Enum):
    """Progress of the external void workflow for a cancelled, paid order."""

    PENDING = "PENDING"
    REQUESTED = "REQUESTED"
    FAILED = "FAILED"


def _new_line_id() -> str:
    return f"line_{uuid.uuid4().hex[:12]}"


class SelectedOption(Option):
    """Snapshot of a chosen option, with the group it was chosen from."""

    group_id: str = Field(..., description="Option group the option belongs to")
    group_name: str = Field(..., description="Group name at selection time")

    @classmethod
    def snapshot(cls, group_id: str, group_name: str, option: Option) -> "SelectedOption":
        return cls(
            id=option.id,
            name=option.name,
            price_delta=option.price_delta,
            group_id=group_id,
            group_name=group_name,
        )


class CartLineItem(BaseModel):
    """One product entry with quantity and selected modifiers.

    Product name, unit price and options are copies taken when the item was
    added; later catalog changes never reach an existing line.
    """

    model_config = ConfigDict(frozen=True)

    line_id: str = Field(default_factory=_new_line_id, description="Line identifier")
    product_id: str = Field(..., description="Catalog product identifier")
    product_name: str = Field(..., description="Product name snapshot")
    quantity: int = Field(..., description="Quantity ordered", ge=1)
    unit_price: Money = Field(..., description="Unit price snapshot")
    selected_options: list[SelectedOption] = Field(default_factory=list)
    notes: str | None = Field(None, description="Free-text kitchen notes")

    @field_validator("unit_price")
    @classmethod
    def validate_unit_price(cls, value: Money) -> Money:
        if value.is_negative:
            raise ValueError("unit_price must be non-negative")
        return value

    @property
    def options_total(self) -> Money:
        return Money.total(
            (option.price_delta for option in self.selected_options),
            self.unit_price.currency,
        )

    @property
    def unit_total(self) -> Money:
        """Unit price plus all option deltas."""
        return self.unit_price.add(self.options_total)

    @property
    def line_total(self) -> Money:
        return self.unit_total.scale(self.quantity)

    def to_dynamodb_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "line_id": self.line_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price.to_dynamodb(),
            "selected_options": [
                {
                    "id": option.id,
                    "name": option.name,
                    "price_delta": option.price_delta.to_dynamodb(),
                    "group_id": option.group_id,
                    "group_name": option.group_name,
                }
                for option in self.selected_options
            ],
        }

        if self.notes is not None:
            item["notes"] = self.notes

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "CartLineItem":
        return cls(
            line_id=item["line_id"],
            product_id=item["product_id"],
            product_name=item["product_name"],
            quantity=int(item["quantity"]),
            unit_price=Money.from_dynamodb(item["unit_price"]),
            selected_options=[
                SelectedOption(
                    id=option["id"],
                    name=option["name"],
                    price_delta=Money.from_dynamodb(option["price_delta"]),
                    group_id=option["group_id"],
                    group_name=option["group_name"],
                )
                for option in item.get("selected_options", [])
            ],
            notes=item.get("notes"),
        )


class Payment(BaseModel):
    """A single payment entry; an order may carry several (split payment)."""

    model_config = ConfigDict(frozen=True)

    method: PaymentMethod = Field(..., description="Payment instrument")
    amount: Money = Field(..., description="Amount tendered with this instrument")
    reference: str | None = Field(None, description="Card authorization code or PIX id")

    def to_dynamodb_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "method": self.method.value,
            "amount": self.amount.to_dynamodb(),
        }
        if self.reference is not None:
            item["reference"] = self.reference
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "Payment":
        return cls(
            method=PaymentMethod(item["method"]),
            amount=Money.from_dynamodb(item["amount"]),
            reference=item.get("reference"),
        )


class StatusChange(BaseModel):
    """An entry of the append-only status history."""

    model_config = ConfigDict(frozen=True)

    status: OrderStatus
    changed_at: datetime
    acting_role: str | None = None
    notes: str | None = None

    def to_dynamodb_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "status": self.status.value,
            "changed_at": self.changed_at.isoformat(),
        }
        if self.acting_role is not None:
            item["acting_role"] = self.acting_role
        if self.notes is not None:
            item["notes"] = self.notes
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "StatusChange":
        return cls(
            status=OrderStatus(item["status"]),
            changed_at=datetime.fromisoformat(item["changed_at"]),
            acting_role=item.get("acting_role"),
            notes=item.get("notes"),
        )


def compute_total(
    line_items: list[CartLineItem],
    order_type: OrderType,
    delivery_fee: Money,
    service_fee: Money,
    currency: str = DEFAULT_CURRENCY,
) -> Money:
    """Order total: line totals plus the fee that applies to the order type."""
    total = Money.total((item.line_total for item in line_items), currency)
    if order_type == OrderType.DELIVERY:
        total = total.add(delivery_fee)
    if order_type == OrderType.DINE_IN:
        total = total.add(service_fee)
    return total


class Order(BaseModel):
    """A submitted order.

    Stored in DynamoDB with ``order_id`` as partition key. ``version`` is the
    optimistic concurrency counter checked on every write.
    """

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(..., description="Unique order identifier")
    code: str = Field(..., description="Human-readable daily order code")
    scope_id: str = Field(..., description="Terminal or shift that submitted the order")
    order_type: OrderType = Field(..., description="DELIVERY, PICKUP or DINE_IN")
    status: OrderStatus = Field(default=OrderStatus.NEW)
    line_items: list[CartLineItem] = Field(..., min_length=1)
    delivery_fee: Money = Field(default_factory=lambda: Money.zero(DEFAULT_CURRENCY))
    service_fee: Money = Field(default_factory=lambda: Money.zero(DEFAULT_CURRENCY))
    table_ref: str | None = Field(None, description="Table identifier for DINE_IN orders")
    total: Money = Field(..., description="Total computed once at submission")
    payments: list[Payment] = Field(default_factory=list)
    change_given: Money | None = Field(None, description="Cash change handed back")
    settled_at: datetime | None = Field(None, description="When payments were confirmed")
    created_at: datetime = Field(..., description="Submission timestamp")
    status_history: list[StatusChange] = Field(..., min_length=1)
    cash_session_id: str | None = Field(None, description="Session the sale was folded into")
    refund_status: RefundStatus | None = Field(None)
    notes: str | None = Field(None)
    version: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_order(self) -> "Order":
        """Check type-specific fields and the total invariant."""
        if self.order_type != OrderType.DELIVERY and not self.delivery_fee.is_zero:
            raise ValueError("delivery_fee only applies to DELIVERY orders")
        if self.order_type != OrderType.DINE_IN and not self.service_fee.is_zero:
            raise ValueError("service_fee only applies to DINE_IN orders")
        if self.order_type != OrderType.DINE_IN and self.table_ref is not None:
            raise ValueError("table_ref only applies to DINE_IN orders")

        try:
            expected = compute_total(
                self.line_items,
                self.order_type,
                self.delivery_fee,
                self.service_fee,
                currency=self.total.currency,
            )
        except CurrencyMismatch as e:
            raise ValueError(e.message) from e

        if expected != self.total:
            raise ValueError(
                f"total {self.total.amount} does not match line items and fees ({expected.amount})"
            )

        if self.status_history[-1].status != self.status:
            raise ValueError("status_history must end with the current status")

        return self

    @property
    def currency(self) -> str:
        return self.total.currency

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None

    @property
    def amount_paid(self) -> Money:
        return Money.total((payment.amount for payment in self.payments), self.currency)

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "order_id": self.order_id,
            "code": self.code,
            "scope_id": self.scope_id,
            "order_type": self.order_type.value,
            "status": self.status.value,
            "line_items": [line.to_dynamodb_item() for line in self.line_items],
            "delivery_fee": self.delivery_fee.to_dynamodb(),
            "service_fee": self.service_fee.to_dynamodb(),
            "total": self.total.to_dynamodb(),
            "payments": [payment.to_dynamodb_item() for payment in self.payments],
            "created_at": self.created_at.isoformat(),
            "status_history": [change.to_dynamodb_item() for change in self.status_history],
            "version": self.version,
        }

        if self.table_ref is not None:
            item["table_ref"] = self.table_ref

        if self.change_given is not None:
            item["change_given"] = self.change_given.to_dynamodb()

        if self.settled_at is not None:
            item["settled_at"] = self.settled_at.isoformat()

        if self.cash_session_id is not None:
            item["cash_session_id"] = self.cash_session_id

        if self.refund_status is not None:
            item["refund_status"] = self.refund_status.value

        if self.notes is not None:
            item["notes"] = self.notes

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "Order":
        """Create Order from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Order: Parsed model instance
        """
        data: dict[str, Any] = {
            "order_id": item["order_id"],
            "code": item["code"],
            "scope_id": item["scope_id"],
            "order_type": OrderType(item["order_type"]),
            "status": OrderStatus(item["status"]),
            "line_items": [CartLineItem.from_dynamodb_item(line) for line in item["line_items"]],
            "delivery_fee": Money.from_dynamodb(item["delivery_fee"]),
            "service_fee": Money.from_dynamodb(item["service_fee"]),
            "total": Money.from_dynamodb(item["total"]),
            "payments": [Payment.from_dynamodb_item(p) for p in item.get("payments", [])],
            "created_at": datetime.fromisoformat(item["created_at"]),
            "status_history": [
                StatusChange.from_dynamodb_item(change) for change in item["status_history"]
            ],
            "version": int(item.get("version", 0)),
        }

        if "table_ref" in item:
            data["table_ref"] = item["table_ref"]

        if "change_given" in item:
            data["change_given"] = Money.from_dynamodb(item["change_given"])

        if "settled_at" in item:
            data["settled_at"] = datetime.fromisoformat(item["settled_at"])

        if "cash_session_id" in item:
            data["cash_session_id"] = item["cash_session_id"]

        if "refund_status" in item:
            data["refund_status"] = RefundStatus(item["refund_status"])

        if "notes" in item:
            data["notes"] = item["notes"]

        return cls(**data)
