"""Shared dependency factory for the Lambda handler.

Dependencies are created once and reused across invocations within the same
Lambda container to keep warm requests cheap.
"""

import logging
import os
from typing import Any

import boto3
from fastapi import FastAPI

from restaurant_pos_service.adapters.payments_refund_adapter import PaymentsServiceRefundGateway
from restaurant_pos_service.adapters.role_policy import StaticRolePolicy
from restaurant_pos_service.handlers.api_handler import create_app
from restaurant_pos_service.models.money import DEFAULT_CURRENCY
from restaurant_pos_service.observability import configure_logging, setup_observability
from restaurant_pos_service.repositories.pos_repositories import (
    CashSessionRepository,
    OrderRepository,
)
from restaurant_pos_service.services.cash_session_service import CashSessionService
from restaurant_pos_service.services.catalog_service_client import CatalogServiceClient
from restaurant_pos_service.services.order_service import OrderService

logger = logging.getLogger(__name__)

# Module-level caches for Lambda container reuse
_dynamodb_resource: Any | None = None
_cash_session_service: CashSessionService | None = None
_order_service: OrderService | None = None
_fastapi_app: FastAPI | None = None


def _max_retries() -> int:
    return int(os.getenv("MAX_CONFLICT_RETRIES", "3"))


def get_dynamodb_resource() -> Any:
    """Create or retrieve cached DynamoDB resource.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    global _dynamodb_resource

    if _dynamodb_resource is not None:
        return _dynamodb_resource

    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        _dynamodb_resource = boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )
    else:
        logger.info(f"Using AWS DynamoDB in region {region}")
        _dynamodb_resource = boto3.resource("dynamodb", region_name=region)

    return _dynamodb_resource


def get_cash_session_service() -> CashSessionService:
    """Create or retrieve cached cash session service.

    Returns:
        Configured CashSessionService instance
    """
    global _cash_session_service

    if _cash_session_service is not None:
        return _cash_session_service

    sessions_table = os.getenv("DYNAMODB_CASH_SESSIONS_TABLE", "pos-cash-sessions")
    session_repository = CashSessionRepository(
        dynamodb_resource=get_dynamodb_resource(), table_name=sessions_table
    )

    _cash_session_service = CashSessionService(
        session_repository=session_repository, max_retries=_max_retries()
    )

    logger.info("Cash session service initialized")
    return _cash_session_service


def get_order_service() -> OrderService:
    """Create or retrieve cached order service.

    Returns:
        Configured OrderService instance

    Raises:
        ValueError: If the catalog or payments service is not configured
    """
    global _order_service

    if _order_service is not None:
        return _order_service

    currency = os.getenv("POS_CURRENCY", DEFAULT_CURRENCY)

    catalog_url = os.getenv("CATALOG_SERVICE_BASE_URL")
    catalog_api_key = os.getenv("CATALOG_SERVICE_API_KEY")
    if not catalog_url or not catalog_api_key:
        raise ValueError(
            "CATALOG_SERVICE_BASE_URL and CATALOG_SERVICE_API_KEY must be set in environment"
        )

    payments_url = os.getenv("PAYMENTS_SERVICE_BASE_URL")
    payments_api_key = os.getenv("PAYMENTS_SERVICE_API_KEY")
    if not payments_url or not payments_api_key:
        raise ValueError(
            "PAYMENTS_SERVICE_BASE_URL and PAYMENTS_SERVICE_API_KEY must be set in environment"
        )

    order_repository = OrderRepository(
        dynamodb_resource=get_dynamodb_resource(),
        table_name=os.getenv("DYNAMODB_ORDERS_TABLE", "pos-orders"),
        counters_table_name=os.getenv("DYNAMODB_COUNTERS_TABLE", "pos-counters"),
    )

    _order_service = OrderService(
        order_repository=order_repository,
        cash_session_service=get_cash_session_service(),
        catalog_client=CatalogServiceClient(
            base_url=catalog_url, api_key=catalog_api_key, currency=currency
        ),
        transition_policy=StaticRolePolicy(),
        refund_gateway=PaymentsServiceRefundGateway(
            base_url=payments_url, api_key=payments_api_key
        ),
        max_retries=_max_retries(),
        currency=currency,
    )

    logger.info("Order service initialized")
    return _order_service


def get_fastapi_app() -> FastAPI:
    """Create or retrieve cached FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    global _fastapi_app

    if _fastapi_app is not None:
        return _fastapi_app

    _fastapi_app = create_app(
        order_service=get_order_service(),
        cash_session_service=get_cash_session_service(),
    )
    setup_observability(_fastapi_app)

    logger.info("FastAPI application initialized")
    return _fastapi_app


def initialize_lambda_environment() -> None:
    """Initialize Lambda environment with logging.

    Should be called once during Lambda cold start.
    """
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    logger.info("Lambda environment initialized")
