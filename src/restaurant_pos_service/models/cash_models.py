"""Cash session models.

A cash session is a bounded accounting period (a shift) for one scope (a
terminal or a shift key). Cash sales accumulate against the opening balance;
card, PIX and voucher sales are tracked per method for reporting but never
change the expected drawer balance.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from restaurant_pos_service.models.money import DEFAULT_CURRENCY, Money
from restaurant_pos_service.models.order_models import PaymentMethod


class CashSessionStatus(str, Enum):
    """Lifecycle status of a cash session."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CashMovementType(str, Enum):
    """Manual drawer movements outside of sales."""

    WITHDRAWAL = "WITHDRAWAL"
    SUPPLY = "SUPPLY"


def new_session_id() -> str:
    return f"cs_{uuid.uuid4().hex[:12]}"


def new_movement_id() -> str:
    return f"mv_{uuid.uuid4().hex[:12]}"


class CashMovement(BaseModel):
    """A withdrawal from, or supply into, the cash drawer."""

    model_config = ConfigDict(frozen=True)

    movement_id: str = Field(default_factory=new_movement_id)
    movement_type: CashMovementType
    amount: Money
    description: str
    created_at: datetime

    def to_dynamodb_item(self) -> dict[str, Any]:
        return {
            "movement_id": self.movement_id,
            "movement_type": self.movement_type.value,
            "amount": self.amount.to_dynamodb(),
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "CashMovement":
        return cls(
            movement_id=item["movement_id"],
            movement_type=CashMovementType(item["movement_type"]),
            amount=Money.from_dynamodb(item["amount"]),
            description=item["description"],
            created_at=datetime.fromisoformat(item["created_at"]),
        )


class CashSession(BaseModel):
    """Open/close scoped accumulator of settled sales for one scope.

    Stored in DynamoDB with ``session_id`` as partition key. While a session is
    open, a lock item keyed by the scope points at it, so a scope can never
    hold two open sessions.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(default_factory=new_session_id)
    scope_id: str = Field(..., description="Terminal or shift key the session belongs to")
    status: CashSessionStatus = Field(default=CashSessionStatus.OPEN)
    opened_at: datetime
    closed_at: datetime | None = None
    opening_balance: Money
    settled_orders: list[str] = Field(default_factory=list)
    cash_sales: Money = Field(
        default_factory=lambda: Money.zero(DEFAULT_CURRENCY),
        description="Cash received net of change",
    )
    sales_by_method: dict[PaymentMethod, Money] = Field(default_factory=dict)
    movements: list[CashMovement] = Field(default_factory=list)
    counted_balance: Money | None = Field(None, description="Drawer count at close")
    final_expected_balance: Money | None = Field(None, description="Frozen at close")
    notes: str | None = None
    version: int = Field(default=0, ge=0)

    @property
    def currency(self) -> str:
        return self.opening_balance.currency

    @property
    def is_open(self) -> bool:
        return self.status == CashSessionStatus.OPEN

    @property
    def total_withdrawals(self) -> Money:
        return Money.total(
            (m.amount for m in self.movements if m.movement_type == CashMovementType.WITHDRAWAL),
            self.currency,
        )

    @property
    def total_supplies(self) -> Money:
        return Money.total(
            (m.amount for m in self.movements if m.movement_type == CashMovementType.SUPPLY),
            self.currency,
        )

    @property
    def expected_balance(self) -> Money:
        """Cash that should be in the drawer.

        Frozen at close; while open it is derived from the opening balance,
        net cash sales and manual movements.
        """
        if self.final_expected_balance is not None:
            return self.final_expected_balance
        return (
            self.opening_balance
            + self.cash_sales
            + self.total_supplies
            - self.total_withdrawals
        )

    @property
    def total_sales(self) -> Money:
        return Money.total(self.sales_by_method.values(), self.currency)

    @property
    def difference(self) -> Money | None:
        """Counted minus expected balance, once the drawer has been counted."""
        if self.counted_balance is None:
            return None
        return self.counted_balance - self.expected_balance

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "session_id": self.session_id,
            "scope_id": self.scope_id,
            "status": self.status.value,
            "opened_at": self.opened_at.isoformat(),
            "opening_balance": self.opening_balance.to_dynamodb(),
            "settled_orders": list(self.settled_orders),
            "cash_sales": self.cash_sales.to_dynamodb(),
            "sales_by_method": {
                method.value: amount.to_dynamodb()
                for method, amount in self.sales_by_method.items()
            },
            "movements": [movement.to_dynamodb_item() for movement in self.movements],
            "version": self.version,
        }

        if self.closed_at is not None:
            item["closed_at"] = self.closed_at.isoformat()

        if self.counted_balance is not None:
            item["counted_balance"] = self.counted_balance.to_dynamodb()

        if self.final_expected_balance is not None:
            item["final_expected_balance"] = self.final_expected_balance.to_dynamodb()

        if self.notes is not None:
            item["notes"] = self.notes

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "CashSession":
        """Create CashSession from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            CashSession: Parsed model instance
        """
        data: dict[str, Any] = {
            "session_id": item["session_id"],
            "scope_id": item["scope_id"],
            "status": CashSessionStatus(item["status"]),
            "opened_at": datetime.fromisoformat(item["opened_at"]),
            "opening_balance": Money.from_dynamodb(item["opening_balance"]),
            "settled_orders": list(item.get("settled_orders", [])),
            "cash_sales": Money.from_dynamodb(item["cash_sales"]),
            "sales_by_method": {
                PaymentMethod(method): Money.from_dynamodb(amount)
                for method, amount in item.get("sales_by_method", {}).items()
            },
            "movements": [
                CashMovement.from_dynamodb_item(movement) for movement in item.get("movements", [])
            ],
            "version": int(item.get("version", 0)),
        }

        if "closed_at" in item:
            data["closed_at"] = datetime.fromisoformat(item["closed_at"])

        if "counted_balance" in item:
            data["counted_balance"] = Money.from_dynamodb(item["counted_balance"])

        if "final_expected_balance" in item:
            data["final_expected_balance"] = Money.from_dynamodb(item["final_expected_balance"])

        if "notes" in item:
            data["notes"] = item["notes"]

        return cls(**data)
