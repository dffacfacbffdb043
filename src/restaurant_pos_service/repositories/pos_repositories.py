"""DynamoDB repository classes for orders and cash sessions.

Listing queries keep the simple return-value convention (an empty list on
failure, logged). Single-item reads feed mutations, so they raise
PersistenceError instead of reporting an outage as a missing item. Writes
raise ConcurrentModification when the optimistic version check fails and
PersistenceError on any other storage failure.
"""

import logging
from datetime import date
from typing import Any

from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from restaurant_pos_service.errors import ConcurrentModification, PersistenceError
from restaurant_pos_service.models.cash_models import CashSession
from restaurant_pos_service.models.order_models import Order, OrderStatus

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
TRANSACTION_CANCELED = "TransactionCanceledException"


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _condition_failed(error: ClientError) -> bool:
    """Whether a write or transaction failed on a condition expression."""
    code = _error_code(error)
    if code == CONDITIONAL_CHECK_FAILED:
        return True
    if code == TRANSACTION_CANCELED:
        reasons = error.response.get("CancellationReasons", [])
        return any(reason.get("Code") == "ConditionalCheckFailed" for reason in reasons)
    return False


class OrderRepository:
    """Repository for submitted orders.

    Orders live in DynamoDB with ``order_id`` as partition key and a
    ``status-index`` GSI (``status`` / ``created_at``) for the status board.
    Daily order codes come from an atomic counter in a separate table.
    """

    def __init__(
        self,
        dynamodb_resource: DynamoDBServiceResource,
        table_name: str,
        counters_table_name: str,
    ) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the orders table
            counters_table_name: Name of the counters table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)
        self.counters_table: Table = dynamodb_resource.Table(counters_table_name)

    def get_order(self, order_id: str) -> Order | None:
        """Retrieve an order by ID.

        Args:
            order_id: Order identifier

        Returns:
            Order if found, None otherwise

        Raises:
            PersistenceError: If the read failed
        """
        try:
            response = self.table.get_item(Key={"order_id": order_id}, ConsistentRead=True)

            if "Item" not in response:
                return None

            return Order.from_dynamodb_item(response["Item"])

        except ClientError as e:
            logger.error(f"Failed to get order {order_id}: {e}")
            raise PersistenceError(f"Could not read order {order_id}") from e

    def create_order(self, order: Order) -> None:
        """Store a newly submitted order.

        Raises:
            PersistenceError: If the order id already exists or the write failed
        """
        try:
            self.table.put_item(
                Item=order.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(order_id)",
            )

        except ClientError as e:
            logger.error(f"Failed to create order {order.order_id}: {e}")
            raise PersistenceError(f"Could not store order {order.order_id}") from e

    def save_order(self, order: Order, expected_version: int) -> None:
        """Replace an order if the stored version is still ``expected_version``.

        Args:
            order: New order state (its own ``version`` is the one written)
            expected_version: Version read before the change was computed

        Raises:
            ConcurrentModification: If another writer got there first
            PersistenceError: On any other storage failure
        """
        try:
            self.table.put_item(
                Item=order.to_dynamodb_item(),
                ConditionExpression="version = :expected",
                ExpressionAttributeValues={":expected": expected_version},
            )

        except ClientError as e:
            if _condition_failed(e):
                raise ConcurrentModification("Order", order.order_id, expected_version) from e
            logger.error(f"Failed to save order {order.order_id}: {e}")
            raise PersistenceError(f"Could not save order {order.order_id}") from e

    def list_orders_by_status(self, status: OrderStatus, limit: int = 50) -> list[Order]:
        """List orders in a status, most recent first.

        Uses the ``status-index`` Global Secondary Index.

        Args:
            status: Order status to list
            limit: Maximum number of orders to return

        Returns:
            list: Orders (empty list if none found)
        """
        try:
            response = self.table.query(
                IndexName="status-index",
                KeyConditionExpression="#status = :status",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={":status": status.value},
                Limit=limit,
                ScanIndexForward=False,
            )

            return [Order.from_dynamodb_item(item) for item in response.get("Items", [])]

        except ClientError as e:
            logger.error(f"Failed to list {status.value} orders: {e}")  # pragma: no cover
            return []

    def next_order_code(self, scope_id: str, business_date: date) -> str:
        """Allocate the next human-readable order code for a scope and day.

        Codes restart at ``001`` every business day and grow past three
        digits if needed.

        Raises:
            PersistenceError: If the counter could not be incremented
        """
        counter_id = f"order_code#{scope_id}#{business_date.isoformat()}"

        try:
            response = self.counters_table.update_item(
                Key={"counter_id": counter_id},
                UpdateExpression="ADD current_value :one",
                ExpressionAttributeValues={":one": 1},
                ReturnValues="UPDATED_NEW",
            )

        except ClientError as e:
            logger.error(f"Failed to allocate order code for {counter_id}: {e}")
            raise PersistenceError(f"Could not allocate an order code for {scope_id}") from e

        value = int(response["Attributes"]["current_value"])
        return f"{value:03d}"


class CashSessionRepository:
    """Repository for cash sessions.

    Sessions live in DynamoDB with ``session_id`` as partition key and a
    ``scope_id-index`` GSI (``scope_id`` / ``opened_at``) for history. Each
    open session also owns a lock item keyed ``scope#<scope_id>`` in the same
    table; the lock is created with the session and deleted on close inside
    one transaction, which is what keeps a scope to one open session.
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the cash sessions table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)
        self.serializer = TypeSerializer()

    @staticmethod
    def lock_key(scope_id: str) -> str:
        return f"scope#{scope_id}"

    def _serialize(self, item: dict[str, Any]) -> dict[str, Any]:
        return {key: self.serializer.serialize(value) for key, value in item.items()}

    def _transact(self, items: list[dict[str, Any]]) -> None:
        self.dynamodb.meta.client.transact_write_items(TransactItems=items)

    def create_session(self, session: CashSession) -> bool:
        """Store a new open session together with its scope lock.

        Args:
            session: Newly opened session

        Returns:
            bool: True if stored, False if the scope already has an open session

        Raises:
            PersistenceError: On any other storage failure
        """
        lock_item = {
            "session_id": self.lock_key(session.scope_id),
            "open_session_id": session.session_id,
            "lock_scope_id": session.scope_id,
        }

        try:
            self._transact(
                [
                    {
                        "Put": {
                            "TableName": self.table_name,
                            "Item": self._serialize(lock_item),
                            "ConditionExpression": "attribute_not_exists(session_id)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table_name,
                            "Item": self._serialize(session.to_dynamodb_item()),
                            "ConditionExpression": "attribute_not_exists(session_id)",
                        }
                    },
                ]
            )
            return True

        except ClientError as e:
            if _condition_failed(e):
                logger.warning(f"Scope {session.scope_id} already holds an open cash session")
                return False
            logger.error(f"Failed to create cash session {session.session_id}: {e}")
            raise PersistenceError(f"Could not open a cash session for {session.scope_id}") from e

    def get_session(self, session_id: str) -> CashSession | None:
        """Retrieve a cash session by ID.

        Args:
            session_id: Session identifier

        Returns:
            CashSession if found, None otherwise

        Raises:
            PersistenceError: If the read failed
        """
        try:
            response = self.table.get_item(Key={"session_id": session_id}, ConsistentRead=True)

            item = response.get("Item")
            if item is None or "open_session_id" in item:
                return None

            return CashSession.from_dynamodb_item(item)

        except ClientError as e:
            logger.error(f"Failed to get cash session {session_id}: {e}")
            raise PersistenceError(f"Could not read cash session {session_id}") from e

    def get_open_session(self, scope_id: str) -> CashSession | None:
        """Retrieve the open session of a scope through its lock item.

        Args:
            scope_id: Terminal or shift key

        Returns:
            The open CashSession, or None if the scope has none

        Raises:
            PersistenceError: If the read failed
        """
        try:
            response = self.table.get_item(
                Key={"session_id": self.lock_key(scope_id)}, ConsistentRead=True
            )

        except ClientError as e:
            logger.error(f"Failed to read cash session lock for {scope_id}: {e}")
            raise PersistenceError(f"Could not read the cash session of {scope_id}") from e

        if "Item" not in response:
            return None

        return self.get_session(response["Item"]["open_session_id"])

    def save_session(self, session: CashSession, expected_version: int) -> None:
        """Replace a session if the stored version is still ``expected_version``.

        Raises:
            ConcurrentModification: If another writer got there first
            PersistenceError: On any other storage failure
        """
        try:
            self.table.put_item(
                Item=session.to_dynamodb_item(),
                ConditionExpression="version = :expected",
                ExpressionAttributeValues={":expected": expected_version},
            )

        except ClientError as e:
            if _condition_failed(e):
                raise ConcurrentModification(
                    "CashSession", session.session_id, expected_version
                ) from e
            logger.error(f"Failed to save cash session {session.session_id}: {e}")
            raise PersistenceError(f"Could not save cash session {session.session_id}") from e

    def close_session(self, session: CashSession, expected_version: int) -> None:
        """Write a closed session and release its scope lock atomically.

        Args:
            session: Session in CLOSED state
            expected_version: Version read before the session was closed

        Raises:
            ConcurrentModification: If the session changed or the lock moved
            PersistenceError: On any other storage failure
        """
        try:
            self._transact(
                [
                    {
                        "Put": {
                            "TableName": self.table_name,
                            "Item": self._serialize(session.to_dynamodb_item()),
                            "ConditionExpression": "version = :expected",
                            "ExpressionAttributeValues": {
                                ":expected": self.serializer.serialize(expected_version)
                            },
                        }
                    },
                    {
                        "Delete": {
                            "TableName": self.table_name,
                            "Key": self._serialize({"session_id": self.lock_key(session.scope_id)}),
                            "ConditionExpression": "open_session_id = :sid",
                            "ExpressionAttributeValues": {
                                ":sid": self.serializer.serialize(session.session_id)
                            },
                        }
                    },
                ]
            )

        except ClientError as e:
            if _condition_failed(e):
                raise ConcurrentModification(
                    "CashSession", session.session_id, expected_version
                ) from e
            logger.error(f"Failed to close cash session {session.session_id}: {e}")
            raise PersistenceError(f"Could not close cash session {session.session_id}") from e

    def list_sessions_for_scope(self, scope_id: str, limit: int = 20) -> list[CashSession]:
        """List a scope's sessions, most recently opened first.

        Uses the ``scope_id-index`` Global Secondary Index.

        Args:
            scope_id: Terminal or shift key
            limit: Maximum number of sessions to return

        Returns:
            list: CashSession objects (empty list if none found)
        """
        try:
            response = self.table.query(
                IndexName="scope_id-index",
                KeyConditionExpression="scope_id = :scope",
                ExpressionAttributeValues={":scope": scope_id},
                Limit=limit,
                ScanIndexForward=False,
            )

            return [CashSession.from_dynamodb_item(item) for item in response.get("Items", [])]

        except ClientError as e:
            logger.error(f"Failed to list cash sessions for {scope_id}: {e}")  # pragma: no cover
            return []
