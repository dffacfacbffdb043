"""Main application entry point for the restaurant POS service.

This module provides the FastAPI application factory and configuration
for running the service locally or in production.
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


def get_dynamodb_resource() -> Any:
    """Create DynamoDB resource with appropriate configuration.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        # Local DynamoDB - use environment variables or defaults for credentials
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        return boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )

    logger.info(f"Using AWS DynamoDB in region {region}")
    return boto3.resource("dynamodb", region_name=region)


def create_catalog_client(currency: str) -> CatalogServiceClient:
    """Create the catalog client from environment variables.

    Raises:
        ValueError: If the catalog service is not configured
    """
    base_url = os.getenv("CATALOG_SERVICE_BASE_URL")
    api_key = os.getenv("CATALOG_SERVICE_API_KEY")

    if not base_url or not api_key:
        raise ValueError(
            "CATALOG_SERVICE_BASE_URL and CATALOG_SERVICE_API_KEY must be set in environment"
        )

    logger.info(f"Catalog service client configured - URL: {base_url}")
    return CatalogServiceClient(base_url=base_url, api_key=api_key, currency=currency)


def create_refund_gateway() -> PaymentsServiceRefundGateway:
    """Create the refund gateway from environment variables.

    Raises:
        ValueError: If the payments service is not configured
    """
    base_url = os.getenv("PAYMENTS_SERVICE_BASE_URL")
    api_key = os.getenv("PAYMENTS_SERVICE_API_KEY")

    if not base_url or not api_key:
        raise ValueError(
            "PAYMENTS_SERVICE_BASE_URL and PAYMENTS_SERVICE_API_KEY must be set in environment"
        )

    return PaymentsServiceRefundGateway(base_url=base_url, api_key=api_key)


def create_services(dynamodb_resource: Any) -> tuple[OrderService, CashSessionService]:
    """Wire repositories, collaborators and services.

    Args:
        dynamodb_resource: Boto3 DynamoDB resource

    Returns:
        Tuple of (order_service, cash_session_service)
    """
    orders_table = os.getenv("DYNAMODB_ORDERS_TABLE", "pos-orders")
    sessions_table = os.getenv("DYNAMODB_CASH_SESSIONS_TABLE", "pos-cash-sessions")
    counters_table = os.getenv("DYNAMODB_COUNTERS_TABLE", "pos-counters")
    currency = os.getenv("POS_CURRENCY", DEFAULT_CURRENCY)
    max_retries = int(os.getenv("MAX_CONFLICT_RETRIES", "3"))

    order_repository = OrderRepository(
        dynamodb_resource=dynamodb_resource,
        table_name=orders_table,
        counters_table_name=counters_table,
    )
    session_repository = CashSessionRepository(
        dynamodb_resource=dynamodb_resource, table_name=sessions_table
    )

    logger.info(
        f"Repositories configured - orders: {orders_table}, sessions: {sessions_table}, "
        f"counters: {counters_table}"
    )

    cash_session_service = CashSessionService(
        session_repository=session_repository, max_retries=max_retries
    )
    order_service = OrderService(
        order_repository=order_repository,
        cash_session_service=cash_session_service,
        catalog_client=create_catalog_client(currency),
        transition_policy=StaticRolePolicy(),
        refund_gateway=create_refund_gateway(),
        max_retries=max_retries,
        currency=currency,
    )

    logger.info(f"Services initialized (currency {currency}, {max_retries} conflict retries)")
    return order_service, cash_session_service


def create_application() -> FastAPI:
    """Create and configure the FastAPI application with all dependencies.

    This factory function:
    1. Configures logging
    2. Creates AWS clients
    3. Creates repositories, collaborators and services
    4. Creates FastAPI app with the terminal endpoints
    5. Sets up observability

    Returns:
        Configured FastAPI application instance
    """
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    logger.info("Initializing restaurant POS service...")

    dynamodb_resource = get_dynamodb_resource()
    order_service, cash_session_service = create_services(dynamodb_resource)

    app = create_app(order_service=order_service, cash_session_service=cash_session_service)
    setup_observability(app)

    logger.info("Restaurant POS service initialized successfully")
    return app


# Create the FastAPI application instance (only when not in test mode)
# This prevents the app from being created during test collection
if os.getenv("ENVIRONMENT") != "test":  # noqa: SIM108
    app = create_application()
else:
    # Create a placeholder app for test imports
    app = FastAPI()


if __name__ == "__main__":
    """Run the application with uvicorn when executed directly."""
    import uvicorn

    port = int(os.getenv("PORT", "8001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting development server on {host}:{port}")
    logger.info(f"API documentation available at http://{host}:{port}/docs")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
