"""Unit tests for CatalogServiceClient."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from restaurant_pos_service.models.catalog_models import Product, SelectionType
from restaurant_pos_service.models.money import Money
from restaurant_pos_service.services.catalog_service_client import CatalogServiceClient

BURGER_PAYLOAD = {
    "id": "prod_burger",
    "name": "X-Burger",
    "price": "20.00",
    "available": True,
    "option_groups": [
        {
            "id": "grp_extras",
            "name": "Extras",
            "selection_type": "MULTIPLE",
            "is_required": False,
            "min_options": 0,
            "max_options": 2,
            "options": [
                {"id": "opt_bacon", "name": "Bacon", "price_delta": "3.00"},
                {"id": "opt_cheese", "name": "Cheddar", "price_delta": "5.00"},
            ],
        }
    ],
}


def _response(status_code: int, payload: dict[str, Any] | None = None) -> MagicMock:
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = payload or {}
    if status_code >= 400:
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "error", request=MagicMock(), response=mock_response
        )
    return mock_response


@pytest.mark.unit
class TestCatalogServiceClient:
    """Test suite for CatalogServiceClient."""

    @pytest.fixture
    def client(self) -> CatalogServiceClient:
        """Create a CatalogServiceClient with test configuration."""
        return CatalogServiceClient(base_url="https://catalog.test.com/", api_key="test-api-key")

    def test_client_initialization(self, client: CatalogServiceClient) -> None:
        """Test that client strips the trailing slash."""
        assert client.base_url == "https://catalog.test.com"
        assert client.api_key == "test-api-key"
        assert client.currency == "BRL"

    @pytest.mark.asyncio
    async def test_get_product_success(self, client: CatalogServiceClient) -> None:
        """Test parsing a product with option groups."""
        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            return_value=_response(200, BURGER_PAYLOAD),
        ) as mock_get:
            product = await client.get_product("prod_burger")

        assert isinstance(product, Product)
        assert product.price == Money(amount=2000)
        group = product.option_groups[0]
        assert group.selection_type == SelectionType.MULTIPLE
        assert group.options[1].price_delta == Money(amount=500)

        args, kwargs = mock_get.call_args
        assert args[0] == "https://catalog.test.com/products/prod_burger"
        assert kwargs["headers"] == {"X-API-Key": "test-api-key"}

    @pytest.mark.asyncio
    async def test_get_product_not_found(self, client: CatalogServiceClient) -> None:
        """Test that a 404 returns None."""
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(404)):
            product = await client.get_product("prod_missing")

        assert product is None

    @pytest.mark.asyncio
    async def test_get_product_api_error(self, client: CatalogServiceClient) -> None:
        """Test that API errors return None."""
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(500)):
            product = await client.get_product("prod_burger")

        assert product is None

    @pytest.mark.asyncio
    async def test_get_product_network_error(self, client: CatalogServiceClient) -> None:
        """Test that network errors return None."""
        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            side_effect=httpx.ConnectError("Connection failed"),
        ):
            product = await client.get_product("prod_burger")

        assert product is None

    @pytest.mark.asyncio
    async def test_get_product_invalid_price(self, client: CatalogServiceClient) -> None:
        """Test that a price with sub-centavo precision is treated as invalid."""
        payload = {**BURGER_PAYLOAD, "price": "20.001"}

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(200, payload)):
            product = await client.get_product("prod_burger")

        assert product is None

    @pytest.mark.asyncio
    async def test_get_product_negative_option_delta(self, client: CatalogServiceClient) -> None:
        """Test that an option priced below zero makes the product invalid."""
        group = {
            **BURGER_PAYLOAD["option_groups"][0],
            "options": [{"id": "opt_promo", "name": "Promo", "price_delta": "-25.00"}],
        }
        payload = {**BURGER_PAYLOAD, "option_groups": [group]}

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(200, payload)):
            product = await client.get_product("prod_burger")

        assert product is None

    @pytest.mark.asyncio
    async def test_get_products_deduplicates_and_skips_missing(
        self, client: CatalogServiceClient
    ) -> None:
        """Test fetching several products concurrently."""
        soda = {"id": "prod_soda", "name": "Soda", "price": "6.00"}

        async def fake_get(url: str, headers: dict[str, str]) -> MagicMock:
            if url.endswith("/prod_burger"):
                return _response(200, BURGER_PAYLOAD)
            if url.endswith("/prod_soda"):
                return _response(200, soda)
            return _response(404)

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=fake_get) as mock_get:
            products = await client.get_products(
                ["prod_burger", "prod_soda", "prod_burger", "prod_gone"]
            )

        assert set(products) == {"prod_burger", "prod_soda"}
        assert products["prod_soda"].price == Money(amount=600)
        assert products["prod_soda"].option_groups == []
        assert mock_get.await_count == 3
